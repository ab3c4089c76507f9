"""
SQLAlchemy Database Models

Orders are booked for a pickup day and carry their products inline
(product, category, quantity, unit of measure, unit price).

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Enum, Boolean, JSON, ForeignKey
from sqlalchemy.sql import func

from pastificio.database import Base


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ProductCategory(str, enum.Enum):
    PASTA = "pasta"
    DOLCI = "dolci"
    PANADAS = "panadas"


class UnitOfMeasure(str, enum.Enum):
    KG = "kg"
    G = "g"
    UNIT = "unit"
    PIECES = "pieces"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    OPERATOR = "operator"


class Order(Base):
    """
    Main Order table - one row per customer booking.

    `items` holds a JSON list of
    {"product", "category", "quantity", "unit", "price"} objects.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # CUSTOMER
    # =========================================================================
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False, index=True)

    # =========================================================================
    # PICKUP
    # =========================================================================
    pickup_date = Column(DateTime, nullable=False, index=True)
    pickup_time = Column(String(5), nullable=False)  # "HH:MM"
    takeaway = Column(Boolean, default=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    total = Column(Float, nullable=False, default=0.0)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.NEW,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Order #{self.id} - {self.customer_name} - {self.status.value}>"


class Customer(Base):
    """Registered customers with contact details and loyalty points."""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    points = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Customer #{self.id} - {self.name}>"


class User(Base):
    """Staff accounts. The password hash never leaves the database."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.OPERATOR, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User {self.username} - {self.role.value}>"
