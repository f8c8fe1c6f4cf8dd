"""Products API router."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from opentelemetry import trace

from auth import get_current_user
from database import get_db
from dependencies import get_catalog_service
from models import User
from schemas import ApiResponse, ProductCreate, ProductPatch, ProductResponse, api_response

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ApiResponse[List[ProductResponse]])
def list_products(
    category_id: Optional[int] = Query(None, description="Only products in this category"),
    db: Session = Depends(get_db),
    catalog = Depends(get_catalog_service)
):
    """List the catalog, newest first."""
    products = catalog.list_products(db, category_id=category_id)

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))

    return api_response(
        [ProductResponse.model_validate(product) for product in products],
        "Products fetched successfully"
    )


@router.post("", status_code=201, response_model=ApiResponse[ProductResponse])
def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    catalog = Depends(get_catalog_service)
):
    """Add a product - requires authentication; the caller becomes its owner."""
    product = catalog.create_product(db, current_user.id, request)
    return api_response(ProductResponse.model_validate(product), "Product created successfully", 201)


@router.get("/{product_id}", response_model=ApiResponse[ProductResponse])
def get_product(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    catalog = Depends(get_catalog_service)
):
    """Get product details."""
    product = catalog.get_product(db, product_id)
    return api_response(ProductResponse.model_validate(product), "Product fetched successfully")


@router.patch("/{product_id}", response_model=ApiResponse[ProductResponse])
def update_product(
    patch: ProductPatch,
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    catalog = Depends(get_catalog_service)
):
    """Update a product - owner only."""
    product = catalog.update_product(db, current_user.id, product_id, patch)
    return api_response(ProductResponse.model_validate(product), "Product updated successfully")


@router.delete("/{product_id}", response_model=ApiResponse[dict])
def delete_product(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    catalog = Depends(get_catalog_service)
):
    """Delete a product - owner only."""
    catalog.delete_product(db, current_user.id, product_id)
    return api_response({}, "Product deleted successfully")
