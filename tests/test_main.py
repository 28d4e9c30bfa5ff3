"""Tests for main application endpoints."""

from sqlalchemy.exc import OperationalError

from app.core.database import get_db
from app.main import app


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "meter-reading"
    assert data["database"] == "ok"


def test_health_check_database_down(client):
    """Test that an unreachable database is reported as 503."""

    class BrokenSession:
        def execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    app.dependency_overrides[get_db] = lambda: BrokenSession()

    response = client.get("/api/health")
    assert response.status_code == 503
    assert response.json()["code"] == "dependency_unavailable"


def test_openapi_lists_routes(client):
    """Test that the API routers are mounted under /api."""
    paths = client.get("/openapi.json").json()["paths"]
    assert "/api/assignments/" in paths
    assert "/api/assignments/{assignment_id}/readings" in paths
    assert "/api/cycles/{cycle_id}/eligible-units" in paths
    assert "/api/meters/" in paths
