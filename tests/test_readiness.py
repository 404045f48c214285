"""
Tests for the readiness gate and the 503 behaviour before start-up finishes.
"""

import threading
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.readiness import ReadinessGate
from app.main import create_app


class TestReadinessGate:
    def test_unset_then_set(self):
        gate = ReadinessGate()
        assert gate.get() is None
        assert gate.is_ready is False

        services = MagicMock()
        gate.set(services)
        assert gate.get() is services
        assert gate.is_ready is True

    def test_second_set_rejected(self):
        gate = ReadinessGate()
        first = MagicMock()
        gate.set(first)
        with pytest.raises(RuntimeError):
            gate.set(MagicMock())
        assert gate.get() is first

    def test_concurrent_readers_see_none_or_the_handle(self):
        gate = ReadinessGate()
        services = MagicMock()
        seen = []
        start = threading.Barrier(9)

        def reader():
            start.wait()
            for _ in range(2000):
                seen.append(gate.get())

        readers = [threading.Thread(target=reader) for _ in range(8)]
        for t in readers:
            t.start()
        start.wait()
        gate.set(services)
        for t in readers:
            t.join()

        assert all(value is None or value is services for value in seen)
        assert gate.get() is services

    def test_only_one_concurrent_set_wins(self):
        gate = ReadinessGate()
        errors = []
        start = threading.Barrier(4)

        def setter():
            start.wait()
            try:
                gate.set(MagicMock())
            except RuntimeError as e:
                errors.append(e)

        threads = [threading.Thread(target=setter) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 3


@pytest.fixture
def starting_client():
    """App whose gate was never set, as if init were still running."""
    with TestClient(create_app()) as c:
        yield c


class TestStartingApp:
    def test_health_reports_starting(self, starting_client):
        response = starting_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "starting"

    def test_api_health_alias(self, starting_client):
        assert starting_client.get("/api/health").status_code == 503

    def test_service_endpoints_return_sys_001(self, starting_client):
        response = starting_client.get("/api/v1/tickets/some-id")
        assert response.status_code == 503
        body = response.json()
        assert body["error"]["code"] == "ORT-SYS-001"
        assert body["error"]["retryable"] is True
        assert response.headers["Retry-After"] == "5"

    def test_health_ok_once_ready(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_queue_health(self, client):
        response = client.get("/health/queue")
        assert response.status_code == 200
        assert response.json()["jobs"]["pending"] == 0
