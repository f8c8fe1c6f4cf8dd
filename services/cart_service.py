"""Cart management service."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import InvalidInputError, InvalidStateError, NotFoundError
from models import Cart, CartItem, Product, utcnow
from monitoring import cart_additions_counter

logger = logging.getLogger(__name__)


class CartService:
    """
    Service for managing shopping carts.

    A user owns at most one cart. Lines never carry a price: prices are
    resolved from the catalog whenever the cart is read.
    """

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def find_cart(self, db: Session, user_id: int) -> Optional[Cart]:
        """Return the user's cart, or None if they never had one."""
        with self.tracer.start_as_current_span("db.query.get_cart") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "carts")
            db_span.set_attribute("user.id", user_id)

            cart = db.query(Cart).filter(Cart.owner_id == user_id).first()
            db_span.set_attribute("db.rows_returned", 1 if cart else 0)
            return cart

    def get_or_create_cart(self, db: Session, user_id: int) -> Cart:
        """Return the user's cart, creating an empty one on first access."""
        cart = self.find_cart(db, user_id)
        if cart is None:
            cart = Cart(owner_id=user_id, items=[])
            db.add(cart)
            try:
                db.commit()
            except IntegrityError:
                # Another request created it between the lookup and the insert
                db.rollback()
                return self.find_cart(db, user_id)
            db.refresh(cart)
            logger.info("Created cart", extra={"user_id": user_id, "cart_id": cart.id})
        return cart

    def add_item(
        self,
        db: Session,
        user_id: int,
        product_id: int,
        quantity: int = 1
    ) -> Dict[str, Any]:
        """
        Put a product in the user's cart.

        An existing line for the same product has its quantity replaced, not
        incremented. Otherwise the line is appended.

        Args:
            db: Database session
            user_id: User identifier
            product_id: Product identifier
            quantity: Requested quantity, at least 1

        Returns:
            The updated cart view

        Raises:
            InvalidInputError: If quantity is below 1
            NotFoundError: If the product does not exist
            InvalidStateError: If quantity exceeds the current stock
        """
        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)
        span.set_attribute("quantity", quantity)

        if quantity < 1:
            raise InvalidInputError("Quantity must be at least 1")

        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = db.get(Product, product_id)
            if product is None:
                db_span.set_attribute("db.rows_returned", 0)
                raise NotFoundError("Product not found")
            db_span.set_attribute("db.rows_returned", 1)

        if product.stock < quantity:
            raise InvalidStateError(
                "Product is out of stock",
                errors=[{
                    "product_id": product.id,
                    "requested": quantity,
                    "available": product.stock
                }]
            )

        try:
            cart = self._save_line(db, user_id, product_id, quantity)
        except IntegrityError:
            # A concurrent request created the cart or the line first
            db.rollback()
            logger.info("Cart write conflicted, retrying", extra={
                "user_id": user_id,
                "product_id": product_id
            })
            cart = self._save_line(db, user_id, product_id, quantity)

        cart_additions_counter.add(1, {"product_id": str(product_id)})

        logger.info("Added product to cart", extra={
            "user_id": user_id,
            "product_id": product_id,
            "product_name": product.name,
            "quantity": quantity
        })

        return self.build_view(db, cart)

    def get_cart(self, db: Session, user_id: int) -> Dict[str, Any]:
        """
        Get user's cart contents with live prices and the cart total.

        Args:
            db: Database session
            user_id: User identifier

        Returns:
            Cart contents with items and total
        """
        cart = self.get_or_create_cart(db, user_id)
        return self.build_view(db, cart)

    def _save_line(self, db: Session, user_id: int, product_id: int, quantity: int) -> Cart:
        """Replace or append the product's line and commit."""
        cart = self.find_cart(db, user_id)
        if cart is None:
            cart = Cart(owner_id=user_id, items=[CartItem(product_id=product_id, quantity=quantity)])
            db.add(cart)
        else:
            line = next((item for item in cart.items if item.product_id == product_id), None)
            if line is not None:
                line.quantity = quantity
            else:
                cart.items.append(CartItem(product_id=product_id, quantity=quantity))
            cart.updated_at = utcnow()

        with self.tracer.start_as_current_span("db.query.save_cart") as db_span:
            db_span.set_attribute("db.operation", "UPSERT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)
            db.commit()
        return cart

    def remove_item(self, db: Session, user_id: int, product_id: int) -> Dict[str, Any]:
        """
        Drop a product's line from the cart. Removing an absent line is a no-op.

        Raises:
            NotFoundError: If the user has no cart
        """
        cart = self.find_cart(db, user_id)
        if cart is None:
            raise NotFoundError("Cart not found")

        cart.items = [item for item in cart.items if item.product_id != product_id]
        cart.updated_at = utcnow()
        db.commit()

        logger.info("Removed product from cart", extra={
            "user_id": user_id,
            "product_id": product_id
        })
        return self.build_view(db, cart)

    def clear_cart(self, db: Session, user_id: int) -> Dict[str, Any]:
        """
        Empty the user's cart.

        Raises:
            NotFoundError: If the user has no cart
        """
        cart = self.find_cart(db, user_id)
        if cart is None:
            raise NotFoundError("Cart not found")

        with self.tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)
            db_span.set_attribute("db.rows_affected", len(cart.items))

            cart.items = []
            cart.updated_at = utcnow()
            db.commit()

        return self.build_view(db, cart)

    def build_view(self, db: Session, cart: Cart) -> Dict[str, Any]:
        """
        Resolve cart lines against the catalog.

        Lines whose product no longer exists are left out. The total is
        derived here and never stored.
        """
        product_ids = [item.product_id for item in cart.items]
        products = {}
        if product_ids:
            with self.tracer.start_as_current_span("db.query.get_cart_products") as db_span:
                db_span.set_attribute("db.operation", "SELECT")
                db_span.set_attribute("db.table", "products")

                rows = db.query(Product).filter(Product.id.in_(product_ids)).all()
                products = {product.id: product for product in rows}
                db_span.set_attribute("db.rows_returned", len(rows))

        items = []
        total = 0.0
        for item in cart.items:
            product = products.get(item.product_id)
            if product is None:
                continue
            subtotal = product.price * item.quantity
            total += subtotal
            items.append({
                "product_id": product.id,
                "name": product.name,
                "product_image": product.product_image,
                "price": product.price,
                "quantity": item.quantity,
                "subtotal": subtotal
            })

        return {
            "id": cart.id,
            "owner_id": cart.owner_id,
            "items": items,
            "cart_total": total,
            "updated_at": cart.updated_at
        }
