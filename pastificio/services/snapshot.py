"""
Database Snapshots

Captures every persisted business record into a Snapshot and writes a
Snapshot back into the database. Users are captured without their password
hash; restoring keeps the hashes already stored for matching users.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import delete, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from pastificio.models import Customer, Order, OrderStatus, User, UserRole
from pastificio.services.backup.schemas import Snapshot, utcnow

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "id", "customer_id", "customer_name", "phone", "pickup_date", "pickup_time", "takeaway",
    "items", "notes", "total", "status", "created_at", "updated_at",
)
CUSTOMER_FIELDS = ("id", "name", "phone", "email", "notes", "points", "created_at", "updated_at")
USER_FIELDS = ("id", "username", "role", "created_at")
SEQUENCE_TABLES = ("orders", "customers")


def _row_to_record(row: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    return jsonable_encoder({field: getattr(row, field) for field in fields})


async def capture_snapshot(db: AsyncSession) -> Snapshot:
    """Read orders, customers and users (minus secrets) into a Snapshot."""
    orders = (await db.execute(select(Order).order_by(Order.id))).scalars().all()
    customers = (await db.execute(select(Customer).order_by(Customer.id))).scalars().all()
    users = (await db.execute(select(User).order_by(User.id))).scalars().all()

    snapshot = Snapshot(
        captured_at=utcnow(),
        orders=[_row_to_record(o, ORDER_FIELDS) for o in orders],
        customers=[_row_to_record(c, CUSTOMER_FIELDS) for c in customers],
        users=[_row_to_record(u, USER_FIELDS) for u in users],
    )
    logger.info(
        f"Snapshot captured: {len(orders)} orders, "
        f"{len(customers)} customers, {len(users)} users"
    )
    return snapshot


def _parse_datetime(value: Any):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _timestamps(record: dict[str, Any], fields: tuple[str, ...]) -> dict[str, datetime]:
    """Timestamp kwargs for the recorded values; missing ones fall back to column defaults."""
    values = {field: _parse_datetime(record.get(field)) for field in fields}
    return {field: value for field, value in values.items() if value is not None}


async def reset_sequences(db: AsyncSession) -> None:
    """
    Move each id sequence past the highest restored id.

    Restored rows carry explicit ids, which PostgreSQL serial columns do
    not track on their own. An empty table resets its sequence to 1.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    for table in SEQUENCE_TABLES:
        await db.execute(text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"coalesce(max(id), 1), max(id) IS NOT NULL) FROM {table}"
        ))


async def apply_snapshot(db: AsyncSession, snapshot: Snapshot) -> dict[str, int]:
    """
    Replace orders and customers with the snapshot's records and update
    users in place (users missing from the database are skipped, since the
    snapshot carries no password hash to create them with).

    Returns:
        Number of records written per collection
    """
    await db.execute(delete(Order))
    await db.execute(delete(Customer))

    for record in snapshot.customers:
        db.add(Customer(
            id=record["id"],
            name=record["name"],
            phone=record["phone"],
            email=record.get("email"),
            notes=record.get("notes"),
            points=record.get("points") or 0,
            **_timestamps(record, ("created_at", "updated_at")),
        ))

    for record in snapshot.orders:
        db.add(Order(
            id=record["id"],
            customer_id=record.get("customer_id"),
            customer_name=record["customer_name"],
            phone=record["phone"],
            pickup_date=_parse_datetime(record["pickup_date"]),
            pickup_time=record["pickup_time"],
            takeaway=record.get("takeaway", False),
            items=record.get("items", []),
            notes=record.get("notes"),
            total=record.get("total", 0.0),
            status=OrderStatus(record.get("status", OrderStatus.NEW.value)),
            **_timestamps(record, ("created_at", "updated_at")),
        ))

    users_updated = 0
    for record in snapshot.users:
        user = await db.get(User, record["id"])
        if user is None:
            logger.warning(f"User {record.get('username')} not in database, skipped")
            continue
        user.username = record["username"]
        user.role = UserRole(record["role"])
        users_updated += 1

    await db.flush()
    await reset_sequences(db)
    await db.commit()

    counts = {
        "orders": len(snapshot.orders),
        "customers": len(snapshot.customers),
        "users": users_updated,
    }
    logger.info(f"Snapshot applied to database: {counts}")
    return counts
