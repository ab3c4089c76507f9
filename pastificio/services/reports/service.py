"""
Report Service

Loads exactly the orders each report window needs from an order source and
hands them to the pure aggregator functions.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from pastificio.core.exceptions import ReportValidationError
from pastificio.services.reports import aggregator
from pastificio.services.reports.sources import BaseOrderSource

logger = logging.getLogger(__name__)


class ReportKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    TOP_PRODUCTS = "top-products"
    CATEGORIES = "categories"


class ReportService:
    """Window-parameterized reports over an order source."""

    def __init__(
        self,
        source: BaseOrderSource,
        top_products_days: int = 30,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.source = source
        self.top_products_days = top_products_days
        self.clock = clock

    async def daily(self, day: Optional[date] = None) -> dict[str, Any]:
        start = aggregator.start_of_day(day or self.clock())
        orders = await self.source.fetch_orders(start, start + timedelta(days=1))
        return aggregator.daily_report(orders, start)

    async def weekly(self, day: Optional[date] = None) -> list[dict[str, Any]]:
        start, end = aggregator.week_bounds(day or self.clock())
        orders = await self.source.fetch_orders(start, end)
        return aggregator.weekly_report(orders, start)

    async def monthly(self, year: Optional[int] = None, month: Optional[int] = None) -> dict[str, Any]:
        today = self.clock()
        year = year or today.year
        month = month or today.month
        start, end = aggregator.month_bounds(year, month)
        prev_start, _ = aggregator.month_bounds(*aggregator.previous_month(year, month))
        orders = await self.source.fetch_orders(prev_start, end)
        return aggregator.monthly_report(orders, year, month)

    async def top_products(self, days: Optional[int] = None) -> list[dict[str, Any]]:
        days = self.top_products_days if days is None else days
        aggregator.check_period(days)
        now = self.clock()
        orders = await self.source.fetch_orders(now - timedelta(days=days), None)
        return aggregator.top_products(orders, days=days, now=now)

    async def categories(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        end = aggregator.naive_datetime(end or self.clock())
        start = aggregator.naive_datetime(start) if start else end - timedelta(days=30)
        if start >= end:
            raise ReportValidationError("Report start must be before its end")
        orders = await self.source.fetch_orders(start, end)
        return aggregator.category_report(orders, start, end)

    async def dashboard(self) -> dict[str, Any]:
        now = self.clock()
        start = aggregator.start_of_day(now)
        orders = await self.source.fetch_orders(start, start + timedelta(days=1))
        return aggregator.dashboard_summary(orders, now)

    async def trend(self, days: int = 7) -> dict[str, Any]:
        aggregator.check_period(days)
        now = self.clock()
        end = aggregator.start_of_day(now) + timedelta(days=1)
        orders = await self.source.fetch_orders(end - timedelta(days=days), end)
        return aggregator.weekly_trend(orders, now, days)

    async def alerts(self, backup_age: Optional[timedelta] = None) -> dict[str, Any]:
        """Alerts over every order up to the end of today."""
        now = self.clock()
        end = aggregator.start_of_day(now) + timedelta(days=1)
        orders = await self.source.fetch_orders(None, end)
        return aggregator.alerts(orders, now, backup_age)

    async def build(self, kind: ReportKind) -> Any:
        """Default-window report of the given kind (used by exports)."""
        kind = ReportKind(kind)
        logger.debug(f"Building {kind.value} report from {self.source.provider_name} source")

        if kind == ReportKind.DAILY:
            return await self.daily()
        if kind == ReportKind.WEEKLY:
            return await self.weekly()
        if kind == ReportKind.MONTHLY:
            return await self.monthly()
        if kind == ReportKind.TOP_PRODUCTS:
            return await self.top_products()
        return await self.categories()
