# tests/test_ops.py
"""
Tests for health endpoints and structured logging.
"""

import json
import logging

import pytest
from decimal import Decimal

from ledger.models import Project
from ops.logging_config import JsonFormatter, get_logging_config


def test_liveness(client):
    response = client.get("/_health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


@pytest.mark.django_db
def test_readiness(client):
    response = client.get("/_health/ready")

    assert response.status_code == 200
    assert response.json()["database"]["status"] == "healthy"


@pytest.mark.django_db
def test_full_health_reports_balance_drift(client, funded_pool, project):
    assert client.get("/_health/full").status_code == 200

    Project.objects.filter(pk=project.pk).update(balance=Decimal("10.00"))
    response = client.get("/_health/full")

    assert response.status_code == 503
    assert response.json()["checks"]["balance_integrity"]["status"] == "degraded"


def test_json_formatter_includes_extras():
    record = logging.LogRecord(
        name="ledger.commands", level=logging.INFO, pathname=__file__, lineno=1,
        msg="Transaction applied", args=(), exc_info=None,
    )
    record.amount = "150.00"
    record.project = object()

    entry = json.loads(JsonFormatter().format(record))

    assert entry["message"] == "Transaction applied"
    assert entry["extra"]["amount"] == "150.00"
    assert isinstance(entry["extra"]["project"], str)


def test_app_loggers_configured(monkeypatch):
    monkeypatch.setenv("LOG_FORMAT", "console")
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    config = get_logging_config(debug=True)

    assert config["formatters"]["verbose"]["style"] == "{"
    assert config["loggers"]["ledger"]["level"] == "DEBUG"
