"""Cart API router."""
from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_cart_service
from models import User
from schemas import AddCartItemRequest, ApiResponse, CartResponse, api_response

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=ApiResponse[CartResponse])
def get_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    cart_service = Depends(get_cart_service)
):
    """Get user's cart with live prices - requires authentication."""
    cart = cart_service.get_cart(db, current_user.id)
    return api_response(cart, "Cart fetched successfully")


@router.post("", response_model=ApiResponse[CartResponse])
def add_item(
    request: AddCartItemRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    cart_service = Depends(get_cart_service)
):
    """Add item to cart or replace its quantity - requires authentication."""
    cart = cart_service.add_item(
        db=db,
        user_id=current_user.id,
        product_id=request.product_id,
        quantity=request.quantity
    )
    return api_response(cart, "Item added to cart")


@router.delete("", response_model=ApiResponse[CartResponse])
def clear_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    cart_service = Depends(get_cart_service)
):
    """Remove every item from the cart - requires authentication."""
    cart = cart_service.clear_cart(db, current_user.id)
    return api_response(cart, "Cart cleared successfully")


@router.delete("/item/{product_id}", response_model=ApiResponse[CartResponse])
def remove_item(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    cart_service = Depends(get_cart_service)
):
    """Remove one product from the cart - requires authentication."""
    cart = cart_service.remove_item(db, current_user.id, product_id)
    return api_response(cart, "Item removed from cart")
