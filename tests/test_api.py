"""
API tests for the order, customer, dashboard, report and backup endpoints.

The database is replaced by dependency overrides: reports, search and
the dashboard read from an in-memory source, customers live in an
in-memory repository and backups snapshot a fixed Snapshot.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from pastificio.core.config import Settings, get_settings
from pastificio.database import get_db
from pastificio.main import (
    create_app,
    get_customer_repository,
    get_order_source,
    get_report_service,
    get_snapshot,
)
from pastificio.models import Order, OrderStatus
from pastificio.services.customers import InMemoryCustomerRepository
from pastificio.services.reports import InMemoryOrderSource, ReportService
from pastificio.state import ServiceState


class FakeSession:
    """Stands in for AsyncSession: orders looked up by id, no queries."""

    def __init__(self, orders=None):
        self.orders = {order.id: order for order in orders or []}
        self.commits = 0

    async def get(self, model, key):
        return self.orders.get(key)

    async def delete(self, instance):
        del self.orders[instance.id]

    async def commit(self):
        self.commits += 1


@pytest.fixture
def services(tmp_path, encryption_key):
    settings = Settings(
        backup_directory=str(tmp_path / "backups"),
        temp_directory=str(tmp_path / "temp"),
        backup_encryption_key=encryption_key,
    )
    return ServiceState.from_settings(settings)


@pytest.fixture
def session():
    return FakeSession([
        Order(
            id=1,
            customer_name="Maria Rossi",
            phone="+39 070 123456",
            pickup_date=datetime(2024, 12, 24),
            pickup_time="10:30",
            items=[],
            total=15.0,
            status=OrderStatus.NEW,
        ),
    ])


@pytest.fixture
def client(services, snapshot, order_factory, session):
    app = create_app(services=services, init_database=False)

    source = InMemoryOrderSource([
        order_factory(1, datetime(2024, 12, 24, 9), 15.0, status="completed",
                      items=[{"product": "Culurgiones", "category": "pasta", "quantity": 1, "price": 15.0}]),
        order_factory(2, datetime(2024, 12, 24, 11), 5.0),
    ])
    customers = InMemoryCustomerRepository(
        [{"id": 1, "name": "Maria Rossi", "phone": "+39 070 123456", "email": "maria@example.com"}],
        orders=[{**order_factory(7, datetime(2024, 12, 20), 30.0), "customer_id": 1}],
    )

    async def fake_db():
        yield session

    app.dependency_overrides[get_db] = fake_db
    app.dependency_overrides[get_snapshot] = lambda: snapshot
    app.dependency_overrides[get_order_source] = lambda: source
    app.dependency_overrides[get_customer_repository] = lambda: customers
    app.dependency_overrides[get_report_service] = lambda: ReportService(
        source, clock=lambda: datetime(2024, 12, 24, 18, 0)
    )

    with TestClient(app) as c:
        yield c


class TestReportEndpoints:
    """Tests for /api/reports."""

    def test_daily(self, client):
        response = client.get("/api/reports/daily", params={"day": "2024-12-24"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {
                "total_orders": 2,
                "total_revenue": 20,
                "completed_orders": 1,
                "completion_percentage": 50.0,
            },
        }

    def test_monthly_invalid_month(self, client):
        response = client.get("/api/reports/monthly/2024/13")
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_top_products_invalid_period(self, client):
        assert client.get("/api/reports/top-products", params={"days": 0}).status_code == 400

    def test_top_products_huge_period_rejected(self, client):
        response = client.get("/api/reports/top-products", params={"days": 10**6})
        assert response.status_code == 422

    def test_categories_with_aware_start(self, client):
        response = client.get("/api/reports/categories", params={"start": "2024-12-01T00:00:00Z"})

        assert response.status_code == 200
        assert response.json()["data"][0]["category"] == "pasta"

    def test_categories_aware_start_after_end(self, client):
        response = client.get("/api/reports/categories", params={"start": "2024-12-30T00:00:00Z"})
        assert response.status_code == 400

    def test_export_csv(self, client):
        response = client.get("/api/reports/export/csv/top-products")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=report_top-products_" in response.headers["content-disposition"]
        assert "Culurgiones" in response.text

    def test_export_unknown_kind(self, client):
        assert client.get("/api/reports/export/csv/yearly").status_code == 400

    def test_export_unknown_format(self, client):
        assert client.get("/api/reports/export/docx/daily").status_code == 400


class TestBackupEndpoints:
    """Tests for /api/backup."""

    def test_create_list_restore(self, client):
        created = client.post("/api/backup", json={"type": "full", "encrypt": True})
        assert created.status_code == 200
        filename = created.json()["archive"]["filename"]
        assert filename.startswith("full-backup-")
        assert filename.endswith(".gz.enc")

        listing = client.get("/api/backup").json()
        assert listing["total"] == 1
        assert listing["summary"]["full"] == 1
        assert listing["backups"][0]["metadata"]["encrypted"] is True

        restored = client.post("/api/backup/restore", json={"filename": filename})
        assert restored.status_code == 200
        body = restored.json()
        assert body["kind"] == "snapshot"
        assert body["record_counts"] == {"orders": 2, "customers": 1, "users": 1}
        assert body["applied"] is None

    def test_incremental_without_changes(self, client):
        client.post("/api/backup", json={"type": "full"})

        response = client.post("/api/backup", json={"type": "incremental"})

        assert response.status_code == 200
        assert response.json()["archive"] is None
        assert response.json()["message"] == "No changes since the last backup"

    def test_restore_missing_archive(self, client):
        response = client.post("/api/backup/restore", json={"filename": "nope.gz"})
        assert response.status_code == 404
        assert response.json()["error"] == "ArchiveNotFoundError"

    def test_restore_corrupt_archive(self, client, services):
        services.codec.ensure_directory()
        (services.codec.backup_dir / "broken.gz").write_bytes(b"garbage")

        response = client.post("/api/backup/restore", json={"filename": "broken.gz"})
        assert response.status_code == 422

    def test_restore_rejects_paths(self, client):
        response = client.post("/api/backup/restore", json={"filename": "../secrets"})
        assert response.status_code == 400

    def test_admin_token_required(self, client, monkeypatch):
        monkeypatch.setattr(get_settings(), "admin_api_token", "let-me-in")

        assert client.get("/api/backup").status_code == 403
        assert client.get("/api/backup", headers={"X-Admin-Token": "wrong"}).status_code == 403
        assert client.get("/api/backup", headers={"X-Admin-Token": "let-me-in"}).status_code == 200

    def test_listing_reports_read_error(self, client, services):
        services.codec.ensure_directory()
        (services.codec.backup_dir / "broken.gz").write_bytes(b"garbage")

        backup = client.get("/api/backup").json()["backups"][0]

        assert backup["metadata"] is None
        assert backup["read_error"] == "CorruptArchiveError"


class TestOrderEndpoints:
    """Tests for order search and deletion."""

    def test_search_by_product(self, client):
        response = client.get("/api/orders/search", params={"q": "culurg"})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["orders"][0]["id"] == 1

    def test_search_by_category_and_day(self, client):
        response = client.get(
            "/api/orders/search",
            params={"category": "dolci", "start": "2024-12-24", "end": "2024-12-24"},
        )
        assert response.json()["total"] == 0

        response = client.get("/api/orders/search", params={"start": "2024-12-24", "end": "2024-12-24"})
        assert [o["id"] for o in response.json()["orders"]] == [2, 1]

    def test_search_inverted_window(self, client):
        response = client.get("/api/orders/search", params={"start": "2024-12-25", "end": "2024-12-24"})
        assert response.status_code == 400

    def test_delete(self, client, session):
        response = client.delete("/api/orders/1")

        assert response.status_code == 200
        assert response.json() == {"success": True, "deleted": 1}
        assert session.orders == {}
        assert session.commits == 1

    def test_delete_missing(self, client):
        assert client.delete("/api/orders/99").status_code == 404

    def test_delete_requires_admin(self, client, session, monkeypatch):
        monkeypatch.setattr(get_settings(), "admin_api_token", "let-me-in")

        assert client.delete("/api/orders/1").status_code == 403
        assert 1 in session.orders


class TestCustomerEndpoints:
    """Tests for /api/customers."""

    def test_list_and_search(self, client):
        assert client.get("/api/customers").json()["total"] == 1
        assert client.get("/api/customers", params={"search": "rossi"}).json()["total"] == 1
        assert client.get("/api/customers", params={"search": "melis"}).json()["total"] == 0

    def test_create(self, client):
        response = client.post(
            "/api/customers",
            json={"name": "Luca Melis", "phone": "+39 070 654321", "email": " Luca@Example.com "},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == 2
        assert body["points"] == 0
        assert body["email"] == "luca@example.com"

    def test_create_invalid(self, client):
        assert client.post("/api/customers", json={"name": "Luca", "phone": "abc-def"}).status_code == 422
        assert client.post(
            "/api/customers", json={"name": "Luca", "phone": "+39 070 654321", "email": "not-an-email"}
        ).status_code == 422

    def test_get_and_update(self, client):
        response = client.put("/api/customers/1", json={"notes": "Gluten free"})

        assert response.status_code == 200
        assert response.json()["notes"] == "Gluten free"
        assert client.get("/api/customers/1").json()["name"] == "Maria Rossi"

    def test_missing_customer(self, client):
        assert client.get("/api/customers/99").status_code == 404
        assert client.put("/api/customers/99", json={"notes": "x"}).status_code == 404
        assert client.post("/api/customers/99/points", json={"points": 5}).status_code == 404
        assert client.get("/api/customers/99/orders").status_code == 404

    def test_points(self, client):
        assert client.post("/api/customers/1/points", json={"points": 20}).json()["points"] == 20
        assert client.post("/api/customers/1/points", json={"points": -5}).json()["points"] == 15

        overdraft = client.post("/api/customers/1/points", json={"points": -100})
        assert overdraft.status_code == 400
        assert overdraft.json()["success"] is False
        assert client.get("/api/customers/1").json()["points"] == 15

        assert client.post("/api/customers/1/points", json={"points": 0}).status_code == 422

    def test_orders(self, client):
        response = client.get("/api/customers/1/orders")

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["orders"][0]["customer_id"] == 1


class TestDashboardEndpoints:
    """Tests for /api/dashboard."""

    def test_summary(self, client):
        data = client.get("/api/dashboard").json()["data"]

        assert data["total_orders"] == 2
        assert data["completed_orders"] == 1
        assert data["to_do"] == 1
        assert data["orders_per_hour"] == [{"hour": 10, "total_orders": 2, "total_revenue": 20}]
        assert data["next_orders"] == [{"id": 2, "pickup_time": "10:30", "total": 5}]

    def test_trend(self, client):
        data = client.get("/api/dashboard/trend").json()["data"]

        assert len(data["trend"]) == 7
        assert data["trend"][-1]["total_orders"] == 2

    def test_trend_period_limits(self, client):
        assert client.get("/api/dashboard/trend", params={"days": 0}).status_code == 400
        assert client.get("/api/dashboard/trend", params={"days": 365}).status_code == 422

    def test_alerts_without_backups(self, client):
        data = client.get("/api/dashboard/alerts").json()["data"]

        assert data["critical"] == 1
        assert data["alerts"][0]["category"] == "backup"

    def test_alerts_after_backup(self, client):
        client.post("/api/backup", json={"type": "full"})

        data = client.get("/api/dashboard/alerts").json()["data"]

        assert data["total"] == 0
