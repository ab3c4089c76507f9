"""
Order Sources

Where reports and order search get their order records from. The SQL
source reads the orders table; the in-memory source serves a fixed list
(development fixtures, tests, reports over a restored snapshot).

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pastificio.models import Order
from pastificio.services.reports.aggregator import naive_datetime

SEARCH_LIMIT = 100


class BaseOrderSource(ABC):
    """Abstract base class for order record sources."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the source name."""
        pass

    @abstractmethod
    async def fetch_orders(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Orders whose pickup date falls in [start, end); open bounds allowed."""
        pass

    async def search_orders(
        self,
        text: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category: Optional[str] = None,
        limit: int = SEARCH_LIMIT,
    ) -> list[dict[str, Any]]:
        """
        Orders in [start, end) matching `text` (case-insensitive, against
        customer name, phone and product names) and having at least one
        product of `category`. Latest pickups first.
        """
        orders = await self.fetch_orders(start, end)
        matches = [order for order in orders if order_matches(order, text, category)]
        matches.sort(key=lambda order: naive_datetime(order["pickup_date"]), reverse=True)
        return matches[:limit]


def order_matches(order: dict[str, Any], text: Optional[str], category: Optional[str]) -> bool:
    items = order.get("items") or []
    if category and not any(item.get("category") == category for item in items):
        return False
    if not text:
        return True
    needle = text.casefold()
    haystack = [order.get("customer_name") or "", order.get("phone") or ""]
    haystack.extend(item.get("product") or "" for item in items)
    return any(needle in value.casefold() for value in haystack)


def order_to_record(order: Order) -> dict[str, Any]:
    record = jsonable_encoder({
        "id": order.id,
        "customer_id": order.customer_id,
        "customer_name": order.customer_name,
        "phone": order.phone,
        "pickup_time": order.pickup_time,
        "takeaway": order.takeaway,
        "items": order.items or [],
        "notes": order.notes,
        "total": order.total,
        "status": order.status,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    })
    # Aggregations need the real datetime
    record["pickup_date"] = order.pickup_date
    return record


class SqlOrderSource(BaseOrderSource):
    """Reads orders through an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def provider_name(self) -> str:
        return "sql"

    async def fetch_orders(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        query = select(Order).order_by(Order.pickup_date)
        if start is not None:
            query = query.where(Order.pickup_date >= naive_datetime(start))
        if end is not None:
            query = query.where(Order.pickup_date < naive_datetime(end))
        result = await self.db.execute(query)
        return [order_to_record(order) for order in result.scalars().all()]


class InMemoryOrderSource(BaseOrderSource):
    """Serves order records from a list."""

    def __init__(self, orders: Optional[list[dict[str, Any]]] = None):
        self.orders = list(orders or [])

    @property
    def provider_name(self) -> str:
        return "memory"

    def add(self, order: dict[str, Any]) -> None:
        self.orders.append(order)

    async def fetch_orders(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        if start is not None:
            start = naive_datetime(start)
        if end is not None:
            end = naive_datetime(end)

        def in_window(order: dict[str, Any]) -> bool:
            pickup = naive_datetime(order["pickup_date"])
            if start is not None and pickup < start:
                return False
            if end is not None and pickup >= end:
                return False
            return True

        return [order for order in self.orders if in_window(order)]
