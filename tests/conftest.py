"""
Shared fixtures: backup components on a temporary directory and sample
business records.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pastificio.services.backup import ArchiveCodec, BackupStore, IncrementalBackup, Snapshot

TEST_KEY = "test-encryption-secret"


def make_order(order_id, pickup_date, total, status="new", items=None):
    """Order record as the report sources return it."""
    return {
        "id": order_id,
        "customer_name": f"Customer {order_id}",
        "phone": "+39 070 123456",
        "pickup_date": pickup_date,
        "pickup_time": "10:30",
        "takeaway": False,
        "items": items or [],
        "notes": None,
        "total": total,
        "status": status,
    }


@pytest.fixture
def encryption_key():
    return TEST_KEY


@pytest.fixture
def backup_dir(tmp_path):
    return tmp_path / "backups"


@pytest.fixture
def codec(backup_dir):
    return ArchiveCodec(backup_dir, encryption_key=TEST_KEY)


@pytest.fixture
def store(codec):
    return BackupStore(codec, retention_days=7)


@pytest.fixture
def incremental(codec, store):
    return IncrementalBackup(codec, store)


@pytest.fixture
def old_codec(backup_dir):
    """Codec sharing the directory whose clock runs eight days behind."""
    return ArchiveCodec(
        backup_dir,
        encryption_key=TEST_KEY,
        clock=lambda: datetime.now(timezone.utc) - timedelta(days=8),
    )


@pytest.fixture
def snapshot():
    return Snapshot(
        orders=[
            {
                "id": 1,
                "customer_name": "Maria Rossi",
                "phone": "+39 070 123456",
                "pickup_date": "2024-12-24T00:00:00",
                "pickup_time": "10:30",
                "items": [{"product": "Culurgiones", "category": "pasta", "quantity": 2, "price": 15.0}],
                "total": 30.0,
                "status": "new",
            },
            {
                "id": 2,
                "customer_name": "Luca Melis",
                "phone": "+39 070 654321",
                "pickup_date": "2024-12-24T00:00:00",
                "pickup_time": "11:00",
                "items": [{"product": "Seadas", "category": "dolci", "quantity": 4, "price": 3.5}],
                "total": 14.0,
                "status": "completed",
            },
        ],
        customers=[{"id": 1, "name": "Maria Rossi", "phone": "+39 070 123456", "email": None}],
        users=[{"id": 1, "username": "admin", "role": "admin"}],
    )


@pytest.fixture
def order_factory():
    return make_order
