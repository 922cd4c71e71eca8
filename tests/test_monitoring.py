"""
Tests for logging setup and alert management
"""
import logging
import os
from unittest.mock import patch

import pytest

from monitoring import setup_logging, AlertManager


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    perf = logging.getLogger('performance')
    perf_handlers, perf_propagate, perf_level = perf.handlers[:], perf.propagate, perf.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for handler in perf.handlers:
        handler.close()
    perf.handlers[:] = perf_handlers
    perf.propagate = perf_propagate
    perf.setLevel(perf_level)


class TestSetupLogging:

    def test_creates_log_files(self, tmp_path, restore_logging):
        log_dir = tmp_path / "logs"
        setup_logging("DEBUG", str(log_dir))

        logging.getLogger("health_monitor").error("probe failed")
        logging.getLogger("performance").info("Operation 'x' completed in 1.00 seconds")

        for name in ("visibility.log", "errors.log", "performance.log"):
            assert os.path.exists(log_dir / name)
        assert "probe failed" in (log_dir / "errors.log").read_text(encoding="utf-8")
        assert "Operation 'x'" not in (log_dir / "visibility.log").read_text(encoding="utf-8")
        assert logging.getLogger().level == logging.DEBUG


class TestAlertManager:

    def test_create_alert(self):
        manager = AlertManager()
        alert = manager.create_alert("warning", "health", "Score dropped", "health_monitor")

        assert alert.level == "warning"
        assert alert.resolved is False
        assert manager.get_active_alerts() == [alert]

    def test_duplicate_open_alert_is_dropped(self):
        manager = AlertManager()
        first = manager.create_alert("warning", "health", "Score dropped", "health_monitor")
        assert manager.create_alert("warning", "health", "Score dropped", "health_monitor") is None

        assert manager.resolve_alert(first.id) is True
        assert manager.resolve_alert(first.id) is False
        assert manager.create_alert("warning", "health", "Score dropped", "health_monitor") is not None
        assert len(manager.get_all_alerts()) == 2
        assert len(manager.get_active_alerts()) == 1

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            AlertManager().create_alert("loud", "health", "x", "y")

    @patch('monitoring.smtplib.SMTP')
    def test_critical_alert_sends_email(self, mock_smtp):
        manager = AlertManager()
        manager.configure_email_alerts("smtp.example.com", 587, "alerts@example.com", "pw",
                                       ["seo@example.com"])

        manager.create_alert("critical", "health", "Site down", "health_monitor")
        manager.create_alert("warning", "health", "Slow", "health_monitor")

        mock_smtp.assert_called_once_with("smtp.example.com", 587)
        server = mock_smtp.return_value
        server.login.assert_called_once_with("alerts@example.com", "pw")
        server.sendmail.assert_called_once()

    @patch('monitoring.smtplib.SMTP', side_effect=OSError("no route"))
    def test_email_failure_is_logged(self, mock_smtp):
        manager = AlertManager()
        manager.configure_email_alerts("smtp.example.com", 587, "a@example.com", "pw", ["b@example.com"])
        assert manager.create_alert("error", "submission", "All batches failed", "x") is not None
