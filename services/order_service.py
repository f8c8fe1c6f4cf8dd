"""Order management service."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import InternalError, InvalidInputError, InvalidStateError, NotFoundError
from models import Order, OrderItem, OrderStatus, Product, utcnow
from monitoring import order_amount_histogram, orders_placed_counter, stock_conflicts_counter
from services.cart_service import CartService

logger = logging.getLogger(__name__)


class OrderService:
    """Service for turning carts into orders and reading order history."""

    def __init__(self, cart_service: CartService):
        """
        Initialize order service.

        Args:
            cart_service: Cart service instance
        """
        self.cart_service = cart_service
        self.tracer = trace.get_tracer(__name__)

    def place_order(
        self,
        db: Session,
        user_id: int,
        address: Optional[str],
        payment_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Place an order for everything in the user's cart.

        Every line is checked against the live catalog before anything is
        written. The order insert, the stock decrements and the cart reset
        then commit in one transaction. Each decrement is conditional on
        enough stock remaining, so two orders racing for the last units
        cannot both succeed.

        Args:
            db: Database session
            user_id: User identifier
            address: Shipping address
            payment_id: Optional payment reference

        Returns:
            The created order

        Raises:
            InvalidInputError: If the address is missing or blank
            InvalidStateError: If the cart is empty or a product lacks stock
            NotFoundError: If a cart line references a deleted product
            InternalError: If the storage transaction fails
        """
        if address is None or not address.strip():
            raise InvalidInputError("Shipping address is required")

        # Step 1: Load cart
        cart = self.cart_service.find_cart(db, user_id)
        if cart is None or not cart.items:
            raise InvalidStateError("Cart is empty")

        # Step 2: Validate and price every line before any write
        order_items = []
        products = {}
        total_amount = 0.0
        for item in cart.items:
            with self.tracer.start_as_current_span("db.query.get_product") as db_span:
                db_span.set_attribute("db.operation", "SELECT")
                db_span.set_attribute("db.table", "products")
                db_span.set_attribute("product.id", item.product_id)

                product = db.get(Product, item.product_id)
                db_span.set_attribute("db.rows_returned", 1 if product else 0)

            if product is None:
                orders_placed_counter.add(1, {"status": "rejected", "reason": "product_missing"})
                raise NotFoundError(
                    f"Product not found (ID: {item.product_id})",
                    errors=[{"product_id": item.product_id}]
                )

            if product.stock < item.quantity:
                orders_placed_counter.add(1, {"status": "rejected", "reason": "insufficient_stock"})
                raise InvalidStateError(
                    f"Product '{product.name}' is out of stock. Available: {product.stock}",
                    errors=[{
                        "product_id": product.id,
                        "requested": item.quantity,
                        "available": product.stock
                    }]
                )

            # Snapshot the current price
            order_items.append(OrderItem(
                product_id=product.id,
                quantity=item.quantity,
                price=product.price
            ))
            products[product.id] = product
            total_amount += product.price * item.quantity

        # Step 3: Create order, decrement stock and clear cart atomically
        try:
            with self.tracer.start_as_current_span("db.transaction.place_order") as db_span:
                db_span.set_attribute("db.operation", "INSERT")
                db_span.set_attribute("db.table", "orders")
                db_span.set_attribute("user.id", user_id)
                db_span.set_attribute("order.total_amount", total_amount)

                order = Order(
                    customer_id=user_id,
                    order_price=total_amount,
                    address=address.strip(),
                    status=OrderStatus.PENDING.value,
                    payment_id=payment_id,
                    items=order_items
                )
                db.add(order)

                for order_item in order_items:
                    self._decrement_stock(db, order_item.product_id, order_item.quantity)

                cart.items = []
                cart.updated_at = utcnow()

                db.commit()
                db_span.set_attribute("order.id", order.id)
        except InvalidStateError:
            db.rollback()
            orders_placed_counter.add(1, {"status": "rejected", "reason": "stock_conflict"})
            raise
        except SQLAlchemyError as e:
            db.rollback()
            orders_placed_counter.add(1, {"status": "failed", "reason": "storage_error"})
            logger.error("Failed to place order", extra={
                "user_id": user_id,
                "amount": total_amount,
                "item_count": len(order_items),
                "error": str(e)
            })
            raise InternalError("Failed to place order") from e

        orders_placed_counter.add(1, {"status": "completed"})
        order_amount_histogram.record(total_amount)

        logger.info("Order placed", extra={
            "user_id": user_id,
            "order_id": order.id,
            "amount": total_amount,
            "item_count": len(order_items)
        })

        return self._order_view(order, products)

    def _decrement_stock(self, db: Session, product_id: int, quantity: int) -> None:
        """Take stock only if enough remains, in a single UPDATE."""
        with self.tracer.start_as_current_span("db.query.update_product_stock") as update_span:
            update_span.set_attribute("db.operation", "UPDATE")
            update_span.set_attribute("db.table", "products")
            update_span.set_attribute("product.id", product_id)

            result = db.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            update_span.set_attribute("db.rows_affected", result.rowcount)

        if result.rowcount != 1:
            stock_conflicts_counter.add(1, {"product_id": str(product_id)})
            logger.warning("Stock taken by a concurrent order", extra={
                "product_id": product_id,
                "quantity": quantity
            })
            raise InvalidStateError(
                f"Product (ID: {product_id}) no longer has enough stock",
                status_code=409,
                errors=[{"product_id": product_id, "requested": quantity}]
            )

    def list_orders(self, db: Session, user_id: int) -> List[Dict[str, Any]]:
        """
        Get all orders for a user, newest first.

        Args:
            db: Database session
            user_id: User identifier

        Returns:
            List of orders with product name and image on each line
        """
        with self.tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            orders = (
                db.query(Order)
                .filter(Order.customer_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .all()
            )
            db_span.set_attribute("db.rows_returned", len(orders))

        product_ids = {item.product_id for order in orders for item in order.items}
        products = self._products_by_id(db, product_ids)

        return [self._order_view(order, products) for order in orders]

    @staticmethod
    def _products_by_id(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
        product_ids = list(product_ids)
        if not product_ids:
            return {}
        rows = db.query(Product).filter(Product.id.in_(product_ids)).all()
        return {product.id: product for product in rows}

    @staticmethod
    def _order_view(order: Order, products: Dict[int, Product]) -> Dict[str, Any]:
        items = []
        for item in order.items:
            product = products.get(item.product_id)
            items.append({
                "product_id": item.product_id,
                "quantity": item.quantity,
                "price": item.price,
                "name": product.name if product else None,
                "product_image": product.product_image if product else None
            })

        return {
            "id": order.id,
            "customer_id": order.customer_id,
            "items": items,
            "order_price": order.order_price,
            "address": order.address,
            "status": order.status,
            "payment_id": order.payment_id,
            "created_at": order.created_at,
            "updated_at": order.updated_at
        }
