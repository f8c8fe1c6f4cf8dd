"""Orders API router."""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_order_service
from models import User
from schemas import ApiResponse, OrderResponse, PlaceOrderRequest, api_response

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=201, response_model=ApiResponse[OrderResponse])
def place_order(
    request: PlaceOrderRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    order_service = Depends(get_order_service)
):
    """Place an order from the cart - requires authentication."""
    order = order_service.place_order(
        db=db,
        user_id=current_user.id,
        address=request.address,
        payment_id=request.payment_id
    )
    return api_response(order, "Order placed successfully", 201)


@router.get("", response_model=ApiResponse[List[OrderResponse]])
def list_orders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    order_service = Depends(get_order_service)
):
    """Get user's orders, newest first - requires authentication."""
    orders = order_service.list_orders(db, current_user.id)
    return api_response(orders, "Orders fetched successfully")
