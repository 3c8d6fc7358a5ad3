"""Tests for the gatekeeper app: health endpoints and startup wiring."""

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.database.tracker_store import PostgresTrackerStore, StoreUnavailableError
from src.ingest.gatekeeper.main import app


@pytest.fixture
def client(store):
    """Client without lifespan, with the in-memory store injected."""
    app.state.tracker_store = store
    yield TestClient(app)
    app.state.tracker_store = None


class TestHealthEndpoints:
    def test_liveness(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_health_with_reachable_store(self, client, store):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "components": {"database": "healthy"}}
        assert store.calls == ["health_check"]

    def test_health_with_unreachable_store(self, client, store):
        store.unavailable = True

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["status"] == "unhealthy"

    def test_health_without_store(self, client):
        app.state.tracker_store = None

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["components"]["database"] == "not configured"

    def test_webhook_route_is_mounted(self, client):
        response = client.post("/webhooks/github", headers={"x-github-event": "ping"})

        assert response.json()["message"] == "pong"


class TestLifespan:
    def test_missing_database_config_leaves_store_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            with TestClient(app) as client:
                assert app.state.tracker_store is None

                webhook = client.post("/webhooks/github", headers={"x-github-event": "push"})
                health = client.get("/health")

        assert webhook.status_code == 500
        assert webhook.json()["detail"] == "Server configuration error"
        assert health.status_code == 503

    def test_configured_database_builds_postgres_store(self):
        env = {
            "SUPABASE_DB_URL": "postgresql://postgres@localhost:5432/postgres",
            "SUPABASE_DB_PASSWORD": "s3cret",
        }
        with patch.dict(os.environ, env, clear=True):
            # The pool is created lazily, so startup does not connect
            with TestClient(app):
                assert isinstance(app.state.tracker_store, PostgresTrackerStore)
                assert app.state.tracker_store.db is app.state.supabase_db

    def test_unreachable_database_reports_per_request(self):
        env = {
            "SUPABASE_DB_URL": "postgresql://postgres@localhost:5432/postgres",
            "SUPABASE_DB_PASSWORD": "s3cret",
        }
        with patch.dict(os.environ, env, clear=True):
            with TestClient(app) as client:
                with patch.object(
                    PostgresTrackerStore,
                    "health_check",
                    side_effect=StoreUnavailableError("Tracker database unavailable"),
                ):
                    response = client.get("/health")

        assert response.status_code == 503
