from __future__ import annotations

from imobiliaria import metrics
from imobiliaria.metrics_logging import LoggingMetrics


def test_logging_backend_emits_sorted_tags(caplog):
    caplog.set_level("INFO", logger="imobiliaria.metrics")
    LoggingMetrics().increment("auth.login.failed", {"reason": "invalid_password", "a": "1"})
    lines = [r.getMessage() for r in caplog.records if r.name == "imobiliaria.metrics"]
    assert lines == ["metric name=auth.login.failed tags={'a': '1', 'reason': 'invalid_password'}"]


def test_failed_login_increments_metric(client, agent_user, caplog):
    user, _ = agent_user
    caplog.set_level("INFO", logger="imobiliaria.metrics")
    metrics.set_metrics(LoggingMetrics())
    try:
        r = client.post("/api/auth/login", json={"username": user.username, "password": "Errada!123"})
        assert r.status_code == 401
    finally:
        metrics.reset_metrics()
    lines = [r.getMessage() for r in caplog.records if r.name == "imobiliaria.metrics"]
    assert any("auth.login.failed" in ln and "invalid_password" in ln for ln in lines), lines
    assert any("security.event" in ln and "login_failure" in ln for ln in lines), lines


def test_noop_backend_is_silent(caplog):
    caplog.set_level("INFO", logger="imobiliaria.metrics")
    metrics.reset_metrics()
    metrics.increment("anything")
    assert not [r for r in caplog.records if r.name == "imobiliaria.metrics"]
