from imobiliaria import security_logger
from imobiliaria.security_logger import SecurityLogger, Thresholds, calculate_severity, is_unusual_user_agent

UA = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"


class _Repo:
    def __init__(self):
        self.rows = []

    def insert(self, **fields):
        self.rows.append(fields)


def _logger(**th):
    repo = _Repo()
    return SecurityLogger(thresholds=Thresholds(**th), repo=repo), repo


def test_severity_mapping():
    assert calculate_severity("login_success") == "low"
    assert calculate_severity("admin_action") == "low"
    assert calculate_severity("login_failure", {"reason": "invalid_password"}) == "medium"
    assert calculate_severity("login_failure", {"reason": "account_locked"}) == "high"
    assert calculate_severity("suspicious_activity") == "high"
    assert calculate_severity("system_error") == "critical"
    assert calculate_severity("token_invalid") == "medium"


def test_unusual_user_agents():
    assert is_unusual_user_agent("curl/8.0")
    assert is_unusual_user_agent("python-requests/2.31")
    assert is_unusual_user_agent("")
    assert is_unusual_user_agent(None)
    assert not is_unusual_user_agent(UA)


def test_event_is_persisted_with_severity():
    log, repo = _logger()
    ev = log.record("login_success", ip_address="10.0.0.1", user_agent=UA, user_id=1, username="ana")
    assert ev.id.startswith("sec_")
    assert repo.rows[0]["event_type"] == "login_success"
    assert repo.rows[0]["severity"] == "low"
    assert repo.rows[0]["username"] == "ana"


def test_failed_logins_per_user_raise_one_alert_per_window():
    log, repo = _logger(max_failed_per_user=3, rapid_attempts=100)
    for _ in range(5):
        log.record("login_failure", ip_address="10.0.0.2", user_agent=UA, username="maria", details={"reason": "invalid_password"})
    alerts = [r for r in repo.rows if r["event_type"] == "suspicious_activity"]
    assert len(alerts) == 1
    assert alerts[0]["severity"] == "high"
    assert alerts[0]["details"]["source_event"] == "login_failure"
    assert "maria" in alerts[0]["details"]["reasons"][0]
    assert log.is_suspicious_user("maria")
    assert not log.is_suspicious_user("joao")


def test_ip_threshold_and_stats():
    log, _ = _logger(max_failed_per_ip=4, rapid_attempts=100)
    for i in range(4):
        log.record("login_failure", ip_address="10.0.0.3", user_agent=UA, username=f"u{i}")
    assert log.is_suspicious_ip("10.0.0.3")
    stats = log.get_security_stats()
    assert stats["failed_logins_by_ip"]["10.0.0.3"] == 4
    assert stats["suspicious_ips"] == ["10.0.0.3"]
    assert stats["totals"]["login_failure"] == 4
    assert stats["totals"]["suspicious_activity"] == 1


def test_token_invalidations_tracked_per_ip():
    log, _ = _logger(max_token_invalid_per_ip=2)
    log.record("token_invalid", ip_address="10.0.0.4", user_agent=UA)
    assert not log.is_suspicious_ip("10.0.0.4")
    log.record("token_invalid", ip_address="10.0.0.4", user_agent=UA)
    assert log.is_suspicious_ip("10.0.0.4")


def test_unusual_agent_flagged_on_login_attempt_only():
    log, repo = _logger()
    log.record("login_success", ip_address="10.0.0.5", user_agent="curl/8.0")
    assert not [r for r in repo.rows if r["event_type"] == "suspicious_activity"]
    log.record("login_attempt", ip_address="10.0.0.5", user_agent="curl/8.0")
    alerts = [r for r in repo.rows if r["event_type"] == "suspicious_activity"]
    assert len(alerts) == 1
    assert "Unusual user agent" in alerts[0]["details"]["reasons"][0]


def test_rapid_attempts_detected():
    log, repo = _logger(rapid_attempts=3, rapid_seconds=30)
    for _ in range(3):
        log.record("login_failure", ip_address="10.0.0.6", user_agent=UA, username="x")
    reasons = [r["details"]["reasons"] for r in repo.rows if r["event_type"] == "suspicious_activity"]
    assert any("Rapid successive" in msg for group in reasons for msg in group)


def test_persistence_failure_is_swallowed():
    class _Broken:
        def insert(self, **fields):
            raise RuntimeError("db down")

    log = SecurityLogger(repo=_Broken())
    ev = log.record("logout", ip_address="10.0.0.7", user_agent=UA)
    assert ev.type == "logout"


def test_reset_clears_windows():
    log, _ = _logger(max_failed_per_user=1)
    log.record("login_failure", ip_address="10.0.0.8", user_agent=UA, username="z")
    assert log.is_suspicious_user("z")
    log.reset()
    assert not log.is_suspicious_user("z")
    assert log.get_security_stats()["totals"] == {}


def test_expired_windows_are_dropped(monkeypatch):
    clock = [1_000_000.0]
    monkeypatch.setattr(security_logger.time, "time", lambda: clock[0])
    log, _ = _logger(max_failed_per_user=2, window_seconds=60)
    for i in range(50):
        log.record("login_failure", ip_address=f"10.1.0.{i}", user_agent=UA, username=f"user{i}")
        log.record("token_invalid", ip_address=f"10.2.0.{i}", user_agent="curl/8.0")
    log.record("login_failure", ip_address="10.1.0.0", user_agent=UA, username="user0")
    assert len(log._failed_by_ip) == 50
    assert len(log._failed_by_user) == 50
    assert len(log._token_invalid_by_ip) == 50
    assert log._flagged

    clock[0] += 61
    log.record("logout", ip_address="10.3.0.1", user_agent=UA)
    assert log._failed_by_ip == {}
    assert log._failed_by_user == {}
    assert log._token_invalid_by_ip == {}
    assert log._flagged == {}
    stats = log.get_security_stats()
    assert stats["failed_logins_by_ip"] == {}
    assert stats["failed_logins_by_user"] == {}
    assert stats["token_invalidations_by_ip"] == {}
    assert stats["suspicious_users"] == []


def test_alert_fires_again_after_window_expires(monkeypatch):
    clock = [2_000_000.0]
    monkeypatch.setattr(security_logger.time, "time", lambda: clock[0])
    log, repo = _logger(max_failed_per_user=2, rapid_attempts=100, window_seconds=60)
    for _ in range(3):
        log.record("login_failure", ip_address="10.4.0.1", user_agent=UA, username="ana")
    clock[0] += 120
    for _ in range(3):
        log.record("login_failure", ip_address="10.4.0.1", user_agent=UA, username="ana")
    alerts = [r for r in repo.rows if r["event_type"] == "suspicious_activity"]
    assert len(alerts) == 2
