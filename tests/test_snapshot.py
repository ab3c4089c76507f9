"""
Tests for writing a Snapshot back through a session.

The session records what it is asked to do, so no database is needed.
"""

from types import SimpleNamespace

import pytest

from pastificio.models import Customer, Order
from pastificio.services.snapshot import apply_snapshot


class RecordingSession:
    """Stands in for AsyncSession and keeps a log of calls."""

    def __init__(self, dialect="postgresql"):
        self.dialect = dialect
        self.calls = []
        self.added = []

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name=self.dialect))

    async def execute(self, statement):
        self.calls.append(("execute", str(statement)))

    def add(self, instance):
        self.added.append(instance)

    async def get(self, model, key):
        return None

    async def flush(self):
        self.calls.append(("flush", None))

    async def commit(self):
        self.calls.append(("commit", None))

    def statements(self):
        return [sql for call, sql in self.calls if call == "execute"]

    def position(self, predicate):
        return next(i for i, call in enumerate(self.calls) if predicate(call))


class TestApplySnapshot:
    """Tests for apply_snapshot."""

    @pytest.mark.asyncio
    async def test_replaces_orders_and_customers(self, snapshot):
        session = RecordingSession()

        counts = await apply_snapshot(session, snapshot)

        assert counts == {"orders": 2, "customers": 1, "users": 0}
        assert session.statements()[:2] == ["DELETE FROM orders", "DELETE FROM customers"]
        assert [type(obj) for obj in session.added] == [Customer, Order, Order]
        assert [obj.id for obj in session.added] == [1, 1, 2]

    @pytest.mark.asyncio
    async def test_sequences_follow_restored_ids(self, snapshot):
        """Ids handed out after a restore must not collide with restored rows."""
        session = RecordingSession()

        await apply_snapshot(session, snapshot)

        setvals = [sql for sql in session.statements() if "setval" in sql]
        assert len(setvals) == 2
        assert "pg_get_serial_sequence('orders', 'id')" in setvals[0]
        assert "FROM orders" in setvals[0]
        assert "pg_get_serial_sequence('customers', 'id')" in setvals[1]

        flushed = session.position(lambda call: call[0] == "flush")
        first_setval = session.position(lambda call: "setval" in (call[1] or ""))
        committed = session.position(lambda call: call[0] == "commit")
        assert flushed < first_setval < committed

    @pytest.mark.asyncio
    async def test_sequences_untouched_on_other_databases(self, snapshot):
        session = RecordingSession(dialect="sqlite")

        await apply_snapshot(session, snapshot)

        assert not any("setval" in sql for sql in session.statements())
        assert session.calls[-1] == ("commit", None)

    @pytest.mark.asyncio
    async def test_missing_timestamps_left_to_column_defaults(self, snapshot):
        session = RecordingSession()

        await apply_snapshot(session, snapshot)

        for obj in session.added:
            assert "created_at" not in vars(obj)
            assert "updated_at" not in vars(obj)

    @pytest.mark.asyncio
    async def test_recorded_timestamps_restored(self, snapshot):
        order = {**snapshot.orders[0], "created_at": "2024-12-20T08:30:00+00:00"}
        customer = {**snapshot.customers[0], "points": 12}
        session = RecordingSession()

        await apply_snapshot(session, snapshot.model_copy(update={"orders": [order], "customers": [customer]}))

        restored_customer, restored_order = session.added
        assert restored_order.created_at.isoformat() == "2024-12-20T08:30:00+00:00"
        assert restored_customer.points == 12
