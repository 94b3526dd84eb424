"""Tests for the health endpoint."""

from fastapi.testclient import TestClient

from chart_operator.healthz import create_app
from chart_operator.project import VERSION


def test_healthz() -> None:
    """Test the liveness endpoint."""
    client = TestClient(create_app())
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "name": "chart-operator",
        "version": VERSION,
    }


def test_docs_disabled() -> None:
    """Test only the health endpoint is served."""
    client = TestClient(create_app())
    assert client.get("/docs").status_code == 404
