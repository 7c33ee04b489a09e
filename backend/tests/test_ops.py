# tests/test_ops.py
"""
Tests for the operations endpoints and logging configuration.

Tests cover:
- Liveness / readiness probes
- Prometheus exposition
- Token redaction and JSON log lines
"""

import json
import logging

import pytest
from django.db import DatabaseError, connections

from ops.health import HealthCheck
from ops.logging_config import JsonFormatter, RedactTokensFilter, get_logging_config, redact_tokens
from ops.metrics import record_invitation_transition


@pytest.mark.django_db
class TestHealthEndpoints:
    def test_liveness(self, client):
        response = client.get("/_health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_readiness(self, client):
        response = client.get("/_health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["database"]["status"] == "healthy"

    def test_readiness_when_database_is_down(self, client, monkeypatch):
        def unhealthy(alias="default"):
            return {"status": "unhealthy", "alias": alias, "error": "connection refused", "duration_ms": 0}

        monkeypatch.setattr(HealthCheck, "check_database", staticmethod(unhealthy))

        response = client.get("/_health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestHealthCheck:
    def test_check_database_reports_errors(self, monkeypatch):
        def refuse():
            raise DatabaseError("connection refused")

        monkeypatch.setattr(connections["default"], "ensure_connection", refuse)

        result = HealthCheck.check_database("default")

        assert result["status"] == "unhealthy"
        assert "connection refused" in result["error"]


class TestMetricsEndpoint:
    def test_exposes_application_counters(self, client):
        record_invitation_transition("created")

        response = client.get("/_metrics/")

        assert response.status_code == 200
        body = response.content.decode()
        assert "stitchcraft_invitation_transitions_total" in body
        assert "stitchcraft_authz_decisions_total" in body


class TestLogging:
    def make_record(self, msg, *args):
        return logging.LogRecord("invitations", logging.INFO, __file__, 1, msg, args, None)

    def test_redact_tokens(self):
        url = "https://app.stitchcraft.test/accept-invitation?token=Zx9_-abc123"

        assert redact_tokens(url) == "https://app.stitchcraft.test/accept-invitation?token=[redacted]"

    def test_filter_redacts_formatted_message(self):
        record = self.make_record("Sending %s", "https://x.test/accept-invitation?token=secret-value")

        assert RedactTokensFilter().filter(record) is True
        assert record.getMessage() == "Sending https://x.test/accept-invitation?token=[redacted]"

    def test_filter_leaves_other_messages_alone(self):
        record = self.make_record("Invitation %s created", "abc")

        RedactTokensFilter().filter(record)

        assert record.args == ("abc",)

    def test_json_formatter(self):
        record = self.make_record("Invitation %s accepted", "42")
        record.organization_id = 7

        line = json.loads(JsonFormatter().format(record))

        assert line["level"] == "INFO"
        assert line["logger"] == "invitations"
        assert line["message"] == "Invitation 42 accepted"
        assert line["extra"] == {"organization_id": 7}
        assert line["timestamp"].endswith("+00:00")

    def test_config_formats(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)

        assert "json" in get_logging_config(debug=False)["formatters"]
        assert "verbose" in get_logging_config(debug=True)["formatters"]

    def test_app_loggers_are_filtered(self):
        config = get_logging_config(debug=False)

        assert config["handlers"]["console"]["filters"] == ["redact_tokens"]
        for name in ("accounts", "invitations", "audit"):
            assert config["loggers"][name]["handlers"] == ["console"]
