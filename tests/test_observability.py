"""
Tests for structured logging context, the error registry and the
OrtraceError -> JSON response handler.
"""

import json
import os
import tempfile
from unittest.mock import MagicMock, patch

import pytest
import yaml

from app.core.errors import CODE_PATTERN, OrtraceError
from app.core.errors.registry import ErrorRegistry, RegistryValidationError, VALID_DOMAINS
from app.core.structured_logging import (
    APP_VERSION,
    SERVICE_NAME,
    _inject_context,
    correlation_id_var,
    job_id_var,
    request_id_var,
)


def _entry(**overrides):
    entry = {
        "code": "ORT-API-001",
        "domain": "API",
        "title": "test",
        "severity": "WARN",
        "retryable": False,
        "user_action_required": False,
        "http_status": 400,
        "safe_message": "test",
        "remediation": [],
    }
    entry.update(overrides)
    return entry


def _load_entries(entries):
    registry = ErrorRegistry()
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump({"schema_version": 1, "errors": entries}, f)
    try:
        registry.load(f.name)
    finally:
        os.unlink(f.name)
    return registry


# ═══════════════════════════════════════════════════════════════════════
# 1. Error Registry
# ═══════════════════════════════════════════════════════════════════════

class TestErrorRegistryLoading:

    def test_load_real_registry(self):
        registry = ErrorRegistry()
        registry.load()
        assert len(registry) >= 12
        assert registry.schema_version == 1

    def test_every_code_well_formed(self):
        registry = ErrorRegistry()
        registry.load()
        for code in registry.all_codes():
            assert CODE_PATTERN.match(code)
            assert code.split("-")[1] in VALID_DOMAINS

    def test_starting_up_entry(self):
        registry = ErrorRegistry()
        registry.load()
        entry = registry.lookup("ORT-SYS-001")
        assert entry.http_status == 503
        assert entry.retryable is True
        assert entry.retry_after_s == 5

    def test_lookup_missing_code_raises(self):
        registry = ErrorRegistry()
        registry.load()
        with pytest.raises(KeyError):
            registry.lookup("ORT-ZZZ-999")
        assert registry.get("ORT-ZZZ-999") is None

    def test_validation_rejects_bad_code_format(self):
        with pytest.raises(RegistryValidationError, match="Invalid code format"):
            _load_entries([_entry(code="BAD-FORMAT")])

    def test_validation_rejects_duplicate_codes(self):
        with pytest.raises(RegistryValidationError, match="Duplicate code"):
            _load_entries([_entry(), _entry()])

    def test_validation_rejects_domain_mismatch(self):
        with pytest.raises(RegistryValidationError, match="doesn't match code prefix"):
            _load_entries([_entry(domain="STO")])

    def test_validation_rejects_unknown_domain(self):
        with pytest.raises(RegistryValidationError, match="unknown domain"):
            _load_entries([_entry(code="ORT-XYZ-001", domain="XYZ")])

    def test_validation_rejects_missing_fields(self):
        entry = _entry()
        del entry["safe_message"]
        with pytest.raises(RegistryValidationError, match="missing fields"):
            _load_entries([entry])


# ═══════════════════════════════════════════════════════════════════════
# 2. OrtraceError → Structured Response
# ═══════════════════════════════════════════════════════════════════════

class TestOrtraceError:

    def test_valid_code(self):
        err = OrtraceError("ORT-STO-001", detail="bucket unreachable")
        assert err.code == "ORT-STO-001"
        assert str(err) == "ORT-STO-001: bucket unreachable"

    def test_invalid_code_raises(self):
        with pytest.raises(ValueError, match="Invalid error code format"):
            OrtraceError("BAD")

    def test_code_without_detail(self):
        err = OrtraceError("ORT-SYS-001")
        assert err.detail is None
        assert err.context == {}
        assert str(err) == "ORT-SYS-001"


class TestErrorMiddleware:

    @pytest.mark.asyncio
    async def test_known_code_returns_structured_response(self):
        from app.core.errors.middleware import ortrace_error_handler

        registry = ErrorRegistry()
        registry.load()

        with patch("app.core.errors.middleware.error_registry", registry):
            exc = OrtraceError("ORT-STO-001", detail="internal detail", context={"ticket_id": "t1"})
            response = await ortrace_error_handler(MagicMock(), exc)

        assert response.status_code == 502
        body = json.loads(response.body)
        assert body["error"]["code"] == "ORT-STO-001"
        assert "remediation" in body["error"]
        assert "internal detail" not in json.dumps(body)
        assert "retry-after" not in response.headers

    @pytest.mark.asyncio
    async def test_retry_after_header(self):
        from app.core.errors.middleware import ortrace_error_handler

        registry = ErrorRegistry()
        registry.load()

        with patch("app.core.errors.middleware.error_registry", registry):
            response = await ortrace_error_handler(MagicMock(), OrtraceError("ORT-SYS-001"))

        assert response.status_code == 503
        assert response.headers["retry-after"] == "5"

    @pytest.mark.asyncio
    async def test_unknown_code_returns_500(self):
        from app.core.errors.middleware import ortrace_error_handler

        with patch("app.core.errors.middleware.error_registry", ErrorRegistry()):
            response = await ortrace_error_handler(MagicMock(), OrtraceError("ORT-API-099"))

        assert response.status_code == 500
        assert json.loads(response.body)["error"]["code"] == "ORT-API-099"


# ═══════════════════════════════════════════════════════════════════════
# 3. Correlation ID Injection
# ═══════════════════════════════════════════════════════════════════════

class TestCorrelationContext:

    def test_inject_context_without_ids(self):
        result = _inject_context("test", "info", {})
        assert "request_id" not in result
        assert "job_id" not in result
        assert result["service"] == SERVICE_NAME
        assert result["version"] == APP_VERSION

    def test_inject_all_ids(self):
        t1 = request_id_var.set("r1")
        t2 = correlation_id_var.set("c1")
        t3 = job_id_var.set("j1")
        try:
            result = _inject_context("test", "info", {})
            assert result["request_id"] == "r1"
            assert result["correlation_id"] == "c1"
            assert result["job_id"] == "j1"
        finally:
            request_id_var.reset(t1)
            correlation_id_var.reset(t2)
            job_id_var.reset(t3)

    def test_response_echoes_request_id(self, client):
        response = client.get("/health", headers={"x-request-id": "abc123"})
        assert response.headers["x-request-id"] == "abc123"
        assert response.headers["x-correlation-id"]
