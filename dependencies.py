"""Dependency injection for services."""
from services.cart_service import CartService
from services.catalog_service import CatalogService
from services.order_service import OrderService
from services.user_service import UserService


def get_user_service() -> UserService:
    """Get user service instance."""
    return UserService()


def get_catalog_service() -> CatalogService:
    """Get catalog service instance."""
    return CatalogService()


def get_cart_service() -> CartService:
    """Get cart service instance."""
    return CartService()


def get_order_service() -> OrderService:
    """Get order service instance."""
    return OrderService(get_cart_service())
