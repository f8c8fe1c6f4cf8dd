"""Product and category management."""
import logging
from typing import List, Optional

from opentelemetry import trace
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from models import Category, Product, utcnow
from monitoring import products_created_counter
from schemas import ProductCreate, ProductPatch

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for the product catalog and its categories."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    # --- Categories -----------------------------------------------------------

    def create_category(self, db: Session, owner_id: int, name: str) -> Category:
        """
        Create a category with a unique name.

        Raises:
            InvalidInputError: If the name is blank
            InvalidStateError: If a category with this name exists
        """
        name = self._category_name(name)
        if self._name_taken(db, name):
            raise InvalidStateError("Category with this name already exists", status_code=409)

        category = Category(name=name, owner_id=owner_id)
        db.add(category)
        self._commit_category(db, name)
        db.refresh(category)

        logger.info("Category created", extra={"category_id": category.id, "owner_id": owner_id})
        return category

    def list_categories(self, db: Session) -> List[Category]:
        return db.query(Category).order_by(Category.name).all()

    def rename_category(self, db: Session, category_id: int, name: str) -> Category:
        """
        Rename a category.

        Raises:
            InvalidInputError: If the name is blank
            NotFoundError: If the category does not exist
            InvalidStateError: If another category already uses the name
        """
        name = self._category_name(name)
        category = db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        if self._name_taken(db, name, exclude_id=category_id):
            raise InvalidStateError("Category with this name already exists", status_code=409)

        category.name = name
        self._commit_category(db, name)
        db.refresh(category)
        return category

    def delete_category(self, db: Session, category_id: int) -> None:
        """
        Delete a category that no product references.

        Raises:
            NotFoundError: If the category does not exist
            InvalidStateError: If products still belong to the category
        """
        category = db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        in_use = db.query(Product).filter(Product.category_id == category_id).count()
        if in_use:
            raise InvalidStateError(
                f"Category '{category.name}' still has {in_use} product(s)",
                status_code=409
            )

        db.delete(category)
        db.commit()
        logger.info("Category deleted", extra={"category_id": category_id})

    @staticmethod
    def _category_name(name: Optional[str]) -> str:
        if not name or not name.strip():
            raise InvalidInputError("Category name is required")
        return name.strip()

    @staticmethod
    def _name_taken(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(Category).filter(Category.name == name)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def _commit_category(db: Session, name: str) -> None:
        """Commit, mapping a unique-name race to a conflict."""
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning("Category name conflict", extra={"category_name": name, "error": str(e)})
            raise InvalidStateError("Category with this name already exists", status_code=409) from e

    # --- Products -------------------------------------------------------------

    def create_product(self, db: Session, owner_id: int, request: ProductCreate) -> Product:
        """
        Add a product to the catalog.

        Raises:
            InvalidInputError: If a text field is blank
            NotFoundError: If the category does not exist
        """
        self._require_text(
            name=request.name,
            description=request.description,
            product_image=request.product_image
        )
        self._require_category(db, request.category_id)

        product = Product(
            name=request.name.strip(),
            description=request.description.strip(),
            product_image=request.product_image.strip(),
            price=request.price,
            stock=request.stock,
            category_id=request.category_id,
            owner_id=owner_id,
        )
        db.add(product)
        db.commit()
        db.refresh(product)

        products_created_counter.add(1, {"category_id": str(product.category_id)})
        logger.info("Product created", extra={
            "product_id": product.id,
            "owner_id": owner_id,
            "category_id": product.category_id
        })
        return product

    def list_products(self, db: Session, category_id: Optional[int] = None) -> List[Product]:
        """All products, newest first, optionally narrowed to one category."""
        query = db.query(Product)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        return query.order_by(Product.created_at.desc(), Product.id.desc()).all()

    def get_product(self, db: Session, product_id: int) -> Product:
        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = db.get(Product, product_id)
            if product is None:
                db_span.set_attribute("db.rows_returned", 0)
                raise NotFoundError("Product not found")
            db_span.set_attribute("db.rows_returned", 1)
            return product

    def update_product(
        self,
        db: Session,
        user_id: int,
        product_id: int,
        patch: ProductPatch
    ) -> Product:
        """
        Apply a partial update to a product owned by the caller.

        Only the fields present in the patch are written, in a single UPDATE.

        Raises:
            NotFoundError: If the product or the new category does not exist
            ForbiddenError: If the caller does not own the product
            InvalidInputError: If a provided field is null or blank
        """
        product = self.get_product(db, product_id)
        if product.owner_id != user_id:
            raise ForbiddenError("You are not authorized to update this product")

        changes = patch.model_dump(exclude_unset=True)
        nulls = [field for field, value in changes.items() if value is None]
        if nulls:
            raise InvalidInputError(
                "Fields cannot be null",
                errors=[{"field": field, "message": "must not be null"} for field in nulls]
            )
        self._require_text(**{
            field: value for field, value in changes.items()
            if field in ("name", "description", "product_image")
        })
        for field in ("name", "description", "product_image"):
            if field in changes:
                changes[field] = changes[field].strip()
        if "category_id" in changes:
            self._require_category(db, changes["category_id"])

        if changes:
            changes["updated_at"] = utcnow()
            db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            db.refresh(product)

            logger.info("Product updated", extra={
                "product_id": product_id,
                "fields": sorted(k for k in changes if k != "updated_at")
            })
        return product

    def delete_product(self, db: Session, user_id: int, product_id: int) -> None:
        """
        Delete a product owned by the caller.

        Raises:
            NotFoundError: If the product does not exist
            ForbiddenError: If the caller does not own the product
        """
        product = self.get_product(db, product_id)
        if product.owner_id != user_id:
            raise ForbiddenError("You are not authorized to delete this product")

        db.delete(product)
        db.commit()
        logger.info("Product deleted", extra={"product_id": product_id, "owner_id": user_id})

    @staticmethod
    def _require_category(db: Session, category_id: int) -> None:
        if db.get(Category, category_id) is None:
            raise NotFoundError("Category not found")

    @staticmethod
    def _require_text(**fields: str) -> None:
        blank = [field for field, value in fields.items() if not value.strip()]
        if blank:
            raise InvalidInputError(
                "Fields cannot be blank",
                errors=[{"field": field, "message": "must not be blank"} for field in blank]
            )
