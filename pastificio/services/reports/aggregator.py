"""
Report Aggregator

Pure functions from a list of order records to report results. Nothing
here touches the database or caches anything: callers load the orders for
the window they need and every call recomputes from scratch.

An order record is a dict with at least:
    pickup_date  datetime (or ISO string), shop wall-clock time
    pickup_time  "HH:MM"
    total        float
    status       "new" | "in_progress" | "completed" | "delivered" | "cancelled"
    items        [{"product", "category", "quantity", "price"}, ...]

Author: Khalil Bannouri
Version: 1.0.0
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional, Union

import pandas as pd

from pastificio.core.exceptions import ReportValidationError

COMPLETED_STATUS = "completed"

ORDER_COLUMNS = ["id", "pickup_date", "pickup_time", "total", "status"]
ITEM_COLUMNS = ["order_id", "pickup_date", "product", "category", "quantity", "price"]
MAX_PERIOD_DAYS = 3650

DayLike = Union[date, datetime]


# =============================================================================
# HELPERS
# =============================================================================

def start_of_day(day: DayLike) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, time.min)


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """[first day of month, first day of next month)"""
    if not 1 <= month <= 12:
        raise ReportValidationError(f"Month must be between 1 and 12, got {month}")
    if not 1 <= year <= 9998:
        raise ReportValidationError(f"Invalid year: {year}")
    start = datetime(year, month, 1)
    days = calendar.monthrange(year, month)[1]
    return start, start + timedelta(days=days)


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def check_period(days: int) -> None:
    if days <= 0 or days > MAX_PERIOD_DAYS:
        raise ReportValidationError(
            f"Period must be between 1 and {MAX_PERIOD_DAYS} days, got {days}"
        )


def naive_datetime(value: Any) -> datetime:
    """Shop wall-clock datetime: ISO strings parsed, dates at midnight, tzinfo dropped."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    return value.replace(tzinfo=None)


def orders_frame(orders: Iterable[dict[str, Any]]) -> pd.DataFrame:
    rows = [
        {
            "id": order.get("id"),
            "pickup_date": naive_datetime(order["pickup_date"]),
            "pickup_time": order.get("pickup_time") or "",
            "total": float(order.get("total") or 0.0),
            "status": getattr(order.get("status"), "value", order.get("status")) or "",
        }
        for order in orders
    ]
    df = pd.DataFrame(rows, columns=ORDER_COLUMNS)
    df["pickup_date"] = pd.to_datetime(df["pickup_date"])
    df["total"] = df["total"].astype(float)
    return df


def items_frame(orders: Iterable[dict[str, Any]]) -> pd.DataFrame:
    """One row per ordered product (the orders "unwound" on their items)."""
    rows = [
        {
            "order_id": order.get("id"),
            "pickup_date": naive_datetime(order["pickup_date"]),
            "product": item["product"],
            "category": item.get("category"),
            "quantity": float(item.get("quantity") or 0),
            "price": float(item.get("price") or 0),
        }
        for order in orders
        for item in order.get("items") or []
    ]
    df = pd.DataFrame(rows, columns=ITEM_COLUMNS)
    df["pickup_date"] = pd.to_datetime(df["pickup_date"])
    df["quantity"] = df["quantity"].astype(float)
    df["price"] = df["price"].astype(float)
    return df


def _window(df: pd.DataFrame, start: Optional[datetime], end: Optional[datetime]) -> pd.DataFrame:
    mask = pd.Series(True, index=df.index)
    if start is not None:
        mask &= df["pickup_date"] >= pd.Timestamp(start)
    if end is not None:
        mask &= df["pickup_date"] < pd.Timestamp(end)
    return df[mask]


def _number(value: float) -> Union[int, float]:
    """Plain Python number, integral values as int."""
    value = round(float(value), 2)
    return int(value) if value.is_integer() else value


def _grouped_totals(df: pd.DataFrame, key: str) -> list[dict[str, Any]]:
    if df.empty:
        return []
    grouped = (
        df.groupby(key)
        .agg(total_orders=("id", "size"), total_revenue=("total", "sum"))
        .reset_index()
        .sort_values(key)
    )
    return [
        {
            key: int(row[key]),
            "total_orders": int(row["total_orders"]),
            "total_revenue": _number(row["total_revenue"]),
        }
        for row in grouped.to_dict("records")
    ]


# =============================================================================
# REPORTS
# =============================================================================

def daily_report(orders: Iterable[dict[str, Any]], day: DayLike) -> dict[str, Any]:
    """Totals for orders picked up on `day`."""
    start = start_of_day(day)
    df = _window(orders_frame(orders), start, start + timedelta(days=1))

    total = len(df)
    completed = int((df["status"] == COMPLETED_STATUS).sum())
    return {
        "total_orders": total,
        "total_revenue": _number(df["total"].sum()),
        "completed_orders": completed,
        "completion_percentage": (completed / total * 100) if total else 0,
    }


def week_bounds(day: DayLike) -> tuple[datetime, datetime]:
    """[Sunday, next Sunday) of the week containing `day`."""
    start = start_of_day(day)
    start -= timedelta(days=(start.weekday() + 1) % 7)
    return start, start + timedelta(days=7)


def weekly_report(orders: Iterable[dict[str, Any]], day: DayLike) -> list[dict[str, Any]]:
    """
    Totals per day of week (1 = Sunday ... 7 = Saturday) for the
    Sunday-to-Saturday week containing `day`. Days without orders are
    omitted.
    """
    start, end = week_bounds(day)
    df = _window(orders_frame(orders), start, end).copy()
    df["day_of_week"] = (df["pickup_date"].dt.dayofweek + 1) % 7 + 1
    return _grouped_totals(df, "day_of_week")


def _trend(current: float, previous: float) -> float:
    # An empty previous month counts as 1 to avoid dividing by zero
    return (current / (previous or 1) - 1) * 100


def monthly_report(orders: Iterable[dict[str, Any]], year: int, month: int) -> dict[str, Any]:
    """
    Totals per day of month, plus month totals and the trend against the
    previous month.
    """
    start, end = month_bounds(year, month)
    prev_start, prev_end = month_bounds(*previous_month(year, month))
    df = orders_frame(orders)

    current = _window(df, start, end).copy()
    current["day_of_month"] = current["pickup_date"].dt.day
    previous = _window(df, prev_start, prev_end)

    total_orders = len(current)
    total_revenue = float(current["total"].sum())
    return {
        "daily": _grouped_totals(current, "day_of_month"),
        "summary": {
            "total_orders": total_orders,
            "total_revenue": _number(total_revenue),
            "trend": {
                "orders": _trend(total_orders, len(previous)),
                "revenue": _trend(total_revenue, float(previous["total"].sum())),
            },
        },
    }


def top_products(
    orders: Iterable[dict[str, Any]],
    days: int = 30,
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """Products of the trailing `days`, most sold first."""
    check_period(days)

    since = (now or datetime.now()).replace(tzinfo=None) - timedelta(days=days)
    df = _window(items_frame(orders), since, None).copy()
    if df.empty:
        return []

    df["revenue"] = df["quantity"] * df["price"]
    grouped = (
        df.groupby(["product", "category"], dropna=False)
        .agg(total_quantity=("quantity", "sum"), total_revenue=("revenue", "sum"))
        .reset_index()
        .sort_values(["total_quantity", "product"], ascending=[False, True])
    )
    return [
        {
            "product": row["product"],
            "category": None if pd.isna(row["category"]) else row["category"],
            "total_quantity": _number(row["total_quantity"]),
            "total_revenue": _number(row["total_revenue"]),
        }
        for row in grouped.to_dict("records")
    ]


def category_report(
    orders: Iterable[dict[str, Any]],
    start: datetime,
    end: datetime,
) -> list[dict[str, Any]]:
    """Quantity, revenue and order count per product category in [start, end)."""
    start, end = naive_datetime(start), naive_datetime(end)
    if start >= end:
        raise ReportValidationError("Report start must be before its end")

    df = _window(items_frame(orders), start, end).copy()
    if df.empty:
        return []

    df["revenue"] = df["quantity"] * df["price"]
    grouped = (
        df.groupby("category")
        .agg(
            total_quantity=("quantity", "sum"),
            total_revenue=("revenue", "sum"),
            order_count=("order_id", "nunique"),
        )
        .reset_index()
        .sort_values(["total_revenue", "category"], ascending=[False, True])
    )
    return [
        {
            "category": row["category"],
            "total_quantity": _number(row["total_quantity"]),
            "total_revenue": _number(row["total_revenue"]),
            "order_count": int(row["order_count"]),
        }
        for row in grouped.to_dict("records")
    ]


# =============================================================================
# DASHBOARD
# =============================================================================

OPEN_STATUSES = ("new", "in_progress")
URGENT_WINDOW = timedelta(hours=2)
BACKUP_MAX_AGE = timedelta(hours=24)
NEXT_ORDERS_LIMIT = 5
ALERT_PRIORITY = {"critical": 0, "urgent": 1, "warning": 2}


def dashboard_summary(orders: Iterable[dict[str, Any]], now: datetime) -> dict[str, Any]:
    """
    Production overview for the day containing `now`.

    Counts are over orders picked up today. `orders_per_hour` groups them
    by the hour of their pickup time; `next_orders` lists the earliest
    pickups that have not been started yet.
    """
    orders = list(orders)
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    df = _window(orders_frame(orders), today, tomorrow).copy()

    total = len(df)
    revenue = float(df["total"].sum())
    completed = int((df["status"] == COMPLETED_STATUS).sum())

    df["hour"] = pd.to_numeric(df["pickup_time"].astype(str).str.slice(0, 2), errors="coerce")
    upcoming = df[df["status"] == "new"].sort_values(["pickup_time", "id"]).head(NEXT_ORDERS_LIMIT)

    return {
        "date": today.date().isoformat(),
        "total_orders": total,
        "total_revenue": _number(revenue),
        "average_ticket": _number(revenue / total) if total else 0,
        "in_progress": int((df["status"] == "in_progress").sum()),
        "to_do": int((df["status"] == "new").sum()),
        "completed_orders": completed,
        "completion_percentage": _number(completed / total * 100) if total else 0,
        "orders_per_hour": _grouped_totals(df.dropna(subset=["hour"]), "hour"),
        "categories": category_report(orders, today, tomorrow),
        "next_orders": [
            {"id": int(row["id"]), "pickup_time": row["pickup_time"], "total": _number(row["total"])}
            for row in upcoming.to_dict("records")
        ],
    }


def weekly_trend(orders: Iterable[dict[str, Any]], now: datetime, days: int = 7) -> dict[str, Any]:
    """Per-day totals for the `days` days ending today, empty days included, plus daily averages."""
    check_period(days)
    end = start_of_day(now) + timedelta(days=1)
    start = end - timedelta(days=days)
    calendar_days = [(start + timedelta(days=i)).date().isoformat() for i in range(days)]

    df = _window(orders_frame(orders), start, end).copy()
    if df.empty:
        grouped = pd.DataFrame(
            0, index=calendar_days, columns=["total_orders", "total_revenue", "completed_orders"]
        )
    else:
        df["day"] = df["pickup_date"].dt.strftime("%Y-%m-%d")
        df["completed"] = (df["status"] == COMPLETED_STATUS).astype(int)
        grouped = (
            df.groupby("day")
            .agg(
                total_orders=("id", "size"),
                total_revenue=("total", "sum"),
                completed_orders=("completed", "sum"),
            )
            .reindex(calendar_days, fill_value=0)
        )

    trend = []
    for day, row in grouped.iterrows():
        count = int(row["total_orders"])
        trend.append({
            "date": day,
            "total_orders": count,
            "total_revenue": _number(row["total_revenue"]),
            "completion_rate": _number(row["completed_orders"] / count * 100) if count else 0,
        })

    return {
        "trend": trend,
        "averages": {
            "daily_orders": _number(sum(t["total_orders"] for t in trend) / days),
            "daily_revenue": _number(sum(t["total_revenue"] for t in trend) / days),
            "completion_rate": _number(sum(t["completion_rate"] for t in trend) / days),
        },
    }


def _order_alert(level: str, message: str, df: pd.DataFrame) -> dict[str, Any]:
    return {
        "level": level,
        "category": "orders",
        "message": message,
        "order_ids": [int(i) for i in df.sort_values(["pickup_date", "pickup_time"])["id"]],
    }


def alerts(
    orders: Iterable[dict[str, Any]],
    now: datetime,
    backup_age: Optional[timedelta] = None,
) -> dict[str, Any]:
    """
    Things the shop should act on, most severe first:

    - open orders whose pickup day has passed (warning)
    - open orders due today within the next two hours (urgent)
    - no backup at all (critical) or none in the last 24 hours (warning)

    `backup_age` is the age of the newest readable archive, None when
    there is none.
    """
    now = naive_datetime(now)
    today = start_of_day(now)
    df = orders_frame(orders)
    open_orders = df[df["status"].isin(OPEN_STATUSES)]

    found = []

    overdue = open_orders[open_orders["pickup_date"] < pd.Timestamp(today)]
    if not overdue.empty:
        found.append(_order_alert("warning", f"{len(overdue)} orders are overdue", overdue))

    horizon = now + URGENT_WINDOW
    window_end = horizon.strftime("%H:%M") if horizon.date() == now.date() else "23:59"
    todays = _window(open_orders, today, today + timedelta(days=1))
    urgent = todays[
        (todays["pickup_time"] >= now.strftime("%H:%M")) & (todays["pickup_time"] <= window_end)
    ]
    if not urgent.empty:
        found.append(_order_alert("urgent", f"{len(urgent)} orders are due within two hours", urgent))

    if backup_age is None:
        found.append({"level": "critical", "category": "backup", "message": "No backups found"})
    elif backup_age > BACKUP_MAX_AGE:
        found.append({"level": "warning", "category": "backup", "message": "No backup in the last 24 hours"})

    found.sort(key=lambda alert: ALERT_PRIORITY[alert["level"]])
    return {
        "alerts": found,
        "total": len(found),
        "critical": sum(1 for a in found if a["level"] == "critical"),
        "urgent": sum(1 for a in found if a["level"] == "urgent"),
    }
