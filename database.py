"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Any, Dict, Generator
import logging

from config import DATABASE_URL, SEED_DEMO_DATA
from models import Base, Category, Product, User, UserRole
from security import hash_password

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Single shared connection so an in-memory database survives across sessions
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_timeout": 30,  # Wait max 30 seconds for a connection
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize database tables and seed data."""
    Base.metadata.create_all(bind=engine)

    if not SEED_DEMO_DATA:
        return

    db = SessionLocal()
    try:
        if db.query(Product).count() == 0:
            seed_demo_data(db)
            logger.info("Seeded database with sample catalog")
    finally:
        db.close()


def seed_demo_data(db: Session) -> None:
    """Demo accounts, categories and products for local runs."""
    seller = User(
        username="demo_seller",
        email="seller@example.com",
        full_name="Demo Seller",
        phone_number="9800000001",
        role=UserRole.SELLER.value,
        password_hash=hash_password("seller123"),
    )
    buyer = User(
        username="demo_buyer",
        email="buyer@example.com",
        full_name="Demo Buyer",
        phone_number="9800000002",
        city="Kathmandu",
        password_hash=hash_password("buyer123"),
    )
    db.add_all([seller, buyer])
    db.flush()

    electronics = Category(name="Electronics", owner_id=seller.id)
    furniture = Category(name="Furniture", owner_id=seller.id)
    db.add_all([electronics, furniture])
    db.flush()

    catalog = [
        ("Laptop", 999.99, 50, electronics),
        ("Smartphone", 599.99, 100, electronics),
        ("Headphones", 99.99, 200, electronics),
        ("Desk Chair", 199.99, 30, furniture),
        ("Monitor", 299.99, 75, electronics),
        ("Keyboard", 79.99, 150, electronics),
    ]
    db.add_all([
        Product(
            name=name,
            description=f"{name} from the demo catalog",
            product_image=f"https://images.example.com/{name.lower().replace(' ', '-')}.jpg",
            price=price,
            stock=stock,
            category_id=category.id,
            owner_id=seller.id,
        )
        for name, price, stock, category in catalog
    ])
    db.commit()
