"""Categories API router."""
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_catalog_service
from models import User
from schemas import ApiResponse, CategoryRequest, CategoryResponse, api_response

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=ApiResponse[List[CategoryResponse]])
def list_categories(
    db: Session = Depends(get_db),
    catalog = Depends(get_catalog_service)
):
    """List all categories."""
    categories = catalog.list_categories(db)
    return api_response(
        [CategoryResponse.model_validate(category) for category in categories],
        "Categories fetched successfully"
    )


@router.post("", status_code=201, response_model=ApiResponse[CategoryResponse])
def create_category(
    request: CategoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    catalog = Depends(get_catalog_service)
):
    """Create a category - requires authentication."""
    category = catalog.create_category(db, current_user.id, request.name)
    return api_response(CategoryResponse.model_validate(category), "Category created successfully", 201)


@router.patch("/{category_id}", response_model=ApiResponse[CategoryResponse])
def rename_category(
    request: CategoryRequest,
    category_id: int = Path(..., description="Category ID"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    catalog = Depends(get_catalog_service)
):
    """Rename a category - requires authentication."""
    category = catalog.rename_category(db, category_id, request.name)
    return api_response(CategoryResponse.model_validate(category), "Category updated successfully")


@router.delete("/{category_id}", response_model=ApiResponse[dict])
def delete_category(
    category_id: int = Path(..., description="Category ID"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    catalog = Depends(get_catalog_service)
):
    """Delete an unused category - requires authentication."""
    catalog.delete_category(db, category_id)
    return api_response({}, "Category deleted successfully")
