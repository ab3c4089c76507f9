"""
Customer Registry

Customer records with loyalty points, behind a repository interface so the
API can run against the database or a plain list.

    SqlCustomerRepository       - customers table through an AsyncSession
    InMemoryCustomerRepository  - dict-backed, for development and tests

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pastificio.core.exceptions import LoyaltyPointsError
from pastificio.models import Customer, Order
from pastificio.services.reports.aggregator import naive_datetime
from pastificio.services.reports.sources import order_to_record

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("id", "name", "phone", "email", "notes", "points", "created_at", "updated_at")
SEARCH_FIELDS = ("name", "phone", "email")


def customer_to_record(customer: Customer) -> dict[str, Any]:
    return jsonable_encoder({field: getattr(customer, field) for field in CUSTOMER_FIELDS})


def new_balance(current: int, change: int) -> int:
    balance = (current or 0) + change
    if balance < 0:
        raise LoyaltyPointsError(
            f"Cannot remove {-change} points from a balance of {current or 0}"
        )
    return balance


class BaseCustomerRepository(ABC):
    """Abstract base class for customer storage."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def list_customers(self, search: Optional[str] = None) -> list[dict[str, Any]]:
        """Customers sorted by name, optionally filtered on name, phone or email."""
        pass

    @abstractmethod
    async def get(self, customer_id: int) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def update(self, customer_id: int, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Apply the given fields; None when the customer does not exist."""
        pass

    @abstractmethod
    async def add_points(self, customer_id: int, points: int) -> Optional[dict[str, Any]]:
        """
        Add (or, when negative, redeem) loyalty points.

        Raises:
            LoyaltyPointsError: The balance would go below zero
        """
        pass

    @abstractmethod
    async def orders_for(self, customer_id: int) -> list[dict[str, Any]]:
        """The customer's orders, latest pickup first."""
        pass


class SqlCustomerRepository(BaseCustomerRepository):
    """Customers table through an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def provider_name(self) -> str:
        return "sql"

    async def list_customers(self, search: Optional[str] = None) -> list[dict[str, Any]]:
        query = select(Customer).order_by(Customer.name, Customer.id)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(*(getattr(Customer, f).ilike(pattern) for f in SEARCH_FIELDS)))
        result = await self.db.execute(query)
        return [customer_to_record(c) for c in result.scalars().all()]

    async def get(self, customer_id: int) -> Optional[dict[str, Any]]:
        customer = await self.db.get(Customer, customer_id)
        return customer_to_record(customer) if customer else None

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        customer = Customer(**data)
        self.db.add(customer)
        await self.db.commit()
        await self.db.refresh(customer)
        logger.info(f"Customer #{customer.id} created: {customer.name}")
        return customer_to_record(customer)

    async def update(self, customer_id: int, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            return None
        for field, value in data.items():
            setattr(customer, field, value)
        await self.db.commit()
        await self.db.refresh(customer)
        logger.info(f"Customer #{customer_id} updated")
        return customer_to_record(customer)

    async def add_points(self, customer_id: int, points: int) -> Optional[dict[str, Any]]:
        customer = await self.db.get(Customer, customer_id, with_for_update=True)
        if customer is None:
            return None
        customer.points = new_balance(customer.points, points)
        await self.db.commit()
        await self.db.refresh(customer)
        logger.info(f"Customer #{customer_id}: {points:+d} points, balance {customer.points}")
        return customer_to_record(customer)

    async def orders_for(self, customer_id: int) -> list[dict[str, Any]]:
        query = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.pickup_date.desc(), Order.id.desc())
        )
        result = await self.db.execute(query)
        return [order_to_record(o) for o in result.scalars().all()]


class InMemoryCustomerRepository(BaseCustomerRepository):
    """Customers kept in a dict keyed by id; orders are plain records."""

    def __init__(
        self,
        customers: Optional[list[dict[str, Any]]] = None,
        orders: Optional[list[dict[str, Any]]] = None,
    ):
        self.customers = {c["id"]: {"points": 0, **c} for c in customers or []}
        self.orders = list(orders or [])

    @property
    def provider_name(self) -> str:
        return "memory"

    async def list_customers(self, search: Optional[str] = None) -> list[dict[str, Any]]:
        customers = sorted(self.customers.values(), key=lambda c: (c["name"], c["id"]))
        if not search:
            return customers
        needle = search.casefold()
        return [
            c for c in customers
            if any(needle in (c.get(f) or "").casefold() for f in SEARCH_FIELDS)
        ]

    async def get(self, customer_id: int) -> Optional[dict[str, Any]]:
        return self.customers.get(customer_id)

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        customer_id = max(self.customers, default=0) + 1
        self.customers[customer_id] = {"id": customer_id, "points": 0, **data}
        return self.customers[customer_id]

    async def update(self, customer_id: int, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        customer = self.customers.get(customer_id)
        if customer is None:
            return None
        customer.update(data)
        return customer

    async def add_points(self, customer_id: int, points: int) -> Optional[dict[str, Any]]:
        customer = self.customers.get(customer_id)
        if customer is None:
            return None
        customer["points"] = new_balance(customer["points"], points)
        return customer

    async def orders_for(self, customer_id: int) -> list[dict[str, Any]]:
        orders = [o for o in self.orders if o.get("customer_id") == customer_id]
        return sorted(
            orders,
            key=lambda o: (naive_datetime(o["pickup_date"]), o["id"]),
            reverse=True,
        )
