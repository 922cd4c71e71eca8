"""
Tests for the site health monitor
"""
import asyncio
import time
from unittest.mock import Mock, patch

import aiohttp
import pytest

from config import MonitorConfig
from health_monitor import (
    HealthMonitor, BaselineMetricsProvider, PageSpeedMetricsProvider, Remediator,
    RecommendationStrategy, PAGESPEED_ENDPOINT,
)
from models import (
    HealthStatus, Severity, EngineHealth, SEOMetrics, SEOIssue, SEORecommendation,
    Priority, EngineStatus, SubmissionResult,
)
from monitoring import AlertManager

from conftest import FakeResponse, FakeSession, CLEAN_PAGE

BROKEN_PAGE = '<html><body><h1>One</h1><h1>Two</h1><img src="a.jpg"><img src="b.jpg" alt=""></body></html>'


class RecordingRemediator(Remediator):
    def __init__(self, result=True):
        self.fixed = []
        self.result = result

    def fix(self, issue):
        self.fixed.append(issue.description)
        return self.result


class ExplodingRemediator(Remediator):
    def fix(self, issue):
        raise RuntimeError("deploy pipeline down")


class FixedStrategy(RecommendationStrategy):
    def recommend(self, metrics, issues):
        return [SEORecommendation(Priority.LOW, "Model", "Learned tip", "d", "i", "x")]


def site(base, page=CLEAN_PAGE, robots=None, sitemap=None):
    return FakeSession(get_responses={
        base: FakeResponse(200, page),
        f"{base}/robots.txt": robots or FakeResponse(200, "User-agent: *"),
        f"{base}/sitemap.xml": sitemap or FakeResponse(200, "<urlset/>"),
    })


def make_monitor(session, config=None, **kwargs):
    return HealthMonitor(config or MonitorConfig(), session=session,
                         alert_manager=kwargs.pop("alert_manager", AlertManager()), **kwargs)


class TestHealthCheck:

    def test_http_site_with_clean_page(self):
        monitor = make_monitor(site("http://example.com"))
        report = asyncio.run(monitor.perform_health_check("http://example.com/"))

        # 0.7 * 87.85 + 30 (all engines healthy) - 10 (no HTTPS) = 81.495
        assert report.overall_score == 81
        assert report.status == HealthStatus.GOOD
        assert [i.severity for i in report.issues] == [Severity.CRITICAL]
        assert report.issues[0].category == "Security"
        assert report.inconclusive_checks == []
        assert [r.title for r in report.recommendations] == [
            "Optimize page speed",
            "Improve accessibility",
            "Fix on-page SEO gaps",
            "Fix 1 critical issue",
        ]
        assert all(e.status == EngineHealth.HEALTHY for e in report.engine_statuses)
        assert len(report.engine_statuses) == 5
        assert monitor.alert_manager.get_active_alerts() == []

    def test_https_site_scores_without_penalty(self):
        monitor = make_monitor(site("https://example.com"))
        report = monitor.run_check("https://example.com")

        assert report.overall_score == 91
        assert report.status == HealthStatus.EXCELLENT
        assert report.issues == []
        assert report.to_dict()["status"] == "excellent"

    def test_page_issues_detected(self):
        remediator = RecordingRemediator()
        session = site("https://example.com", BROKEN_PAGE, robots=FakeResponse(404))
        monitor = make_monitor(session, remediator=remediator)

        report = asyncio.run(monitor.perform_health_check("https://example.com"))
        by_description = {i.description: i for i in report.issues}

        assert by_description["Title tag missing or empty"].severity == Severity.CRITICAL
        assert by_description["Meta description missing"].severity == Severity.HIGH
        assert by_description["Canonical tag missing"].severity == Severity.HIGH
        assert by_description["Page has 2 H1 headings"].severity == Severity.MEDIUM
        assert by_description["1 image(s) without alt text"].severity == Severity.MEDIUM
        robots = by_description["robots.txt file not found"]
        assert robots.severity == Severity.HIGH
        assert robots.affected_pages == ["https://example.com/robots.txt"]

        # penalty 10 + 5 + 5 + 2 + 2 + 5 = 29
        assert report.overall_score == 62
        assert report.status == HealthStatus.FAIR
        assert remediator.fixed == [
            "Title tag missing or empty",
            "Meta description missing",
            "Canonical tag missing",
            "robots.txt file not found",
        ]

        alerts = monitor.alert_manager.get_active_alerts()
        assert len(alerts) == 1
        assert alerts[0].level == "warning"
        assert alerts[0].category == "health"

    def test_missing_h1_is_high(self):
        monitor = make_monitor(site("https://example.com", "<title>x</title><p>text</p>"))
        report = asyncio.run(monitor.perform_health_check("https://example.com"))
        issue = next(i for i in report.issues if i.description == "Page has no H1 heading")
        assert issue.severity == Severity.HIGH

    def test_penalty_is_capped(self):
        issues = [SEOIssue(Severity.CRITICAL, "x", "y") for _ in range(10)]
        metrics = SEOMetrics(100, 100, 100, 100, 100, 100)
        engines = [EngineStatus("google", True, 0, EngineHealth.HEALTHY)]
        assert HealthMonitor.calculate_overall_score(metrics, engines, issues) == 70
        assert HealthMonitor.calculate_overall_score(metrics, [], []) == 70

    def test_fetch_failures_are_inconclusive(self):
        session = site("https://example.com", robots=aiohttp.ClientConnectionError("refused"))
        session.get_responses["https://example.com"] = FakeResponse(500)
        monitor = make_monitor(session)

        report = asyncio.run(monitor.perform_health_check("https://example.com"))

        assert report.inconclusive_checks == [
            "meta_tags: HTTP 500",
            "content: HTTP 500",
            "robots.txt: refused",
        ]
        assert report.issues == []
        assert report.overall_score == 91

    def test_poor_score_raises_critical_alert(self):
        config = MonitorConfig(baseline_metrics={
            "page_speed": 20, "mobile_score": 20, "desktop_score": 20,
            "accessibility": 20, "best_practices": 20, "seo": 20,
        })
        monitor = make_monitor(site("https://example.com"), config)

        report = asyncio.run(monitor.perform_health_check("https://example.com"))

        assert report.overall_score == 44
        assert report.status == HealthStatus.POOR
        [alert] = monitor.alert_manager.get_active_alerts()
        assert alert.level == "critical"

        asyncio.run(monitor.perform_health_check("https://example.com"))
        assert len(monitor.alert_manager.get_active_alerts()) == 1

    @patch("monitoring.smtplib.SMTP")
    def test_email_alert_runs_off_the_event_loop(self, mock_smtp):
        def slow_connect(*args, **kwargs):
            time.sleep(0.3)
            return Mock()
        mock_smtp.side_effect = slow_connect

        alerts = AlertManager()
        alerts.configure_email_alerts("smtp.example.com", 587, "alerts@example.com", "pw",
                                      ["seo@example.com"])
        config = MonitorConfig(baseline_metrics={
            "page_speed": 10, "mobile_score": 10, "desktop_score": 10,
            "accessibility": 10, "best_practices": 10, "seo": 10,
        })
        monitor = make_monitor(site("https://example.com"), config, alert_manager=alerts)

        async def run():
            gaps = []
            done = asyncio.Event()

            async def ticker():
                last = time.monotonic()
                while not done.is_set():
                    await asyncio.sleep(0.01)
                    now = time.monotonic()
                    gaps.append(now - last)
                    last = now

            task = asyncio.ensure_future(ticker())
            report = await monitor.perform_health_check("https://example.com")
            done.set()
            await task
            return report, max(gaps)

        report, longest_gap = asyncio.run(run())

        assert report.status == HealthStatus.POOR
        mock_smtp.assert_called_once_with("smtp.example.com", 587)
        assert longest_gap < 0.2

    def test_auto_fix_disabled(self):
        remediator = RecordingRemediator()
        config = MonitorConfig(auto_fix=False)
        monitor = make_monitor(site("https://example.com", BROKEN_PAGE), config, remediator=remediator)

        asyncio.run(monitor.perform_health_check("https://example.com"))
        assert remediator.fixed == []

    def test_remediation_failure_is_not_fatal(self):
        monitor = make_monitor(site("https://example.com", BROKEN_PAGE), remediator=ExplodingRemediator())
        report = asyncio.run(monitor.perform_health_check("https://example.com"))
        assert report.issues

    def test_ml_strategy_used_only_when_enabled(self):
        session = site("https://example.com")
        enabled = make_monitor(session, MonitorConfig(enable_ml=True), ml_strategy=FixedStrategy())
        disabled = make_monitor(session, MonitorConfig(enable_ml=False), ml_strategy=FixedStrategy())

        report = asyncio.run(enabled.perform_health_check("https://example.com"))
        assert [r.title for r in report.recommendations] == ["Learned tip"]

        report = asyncio.run(disabled.perform_health_check("https://example.com"))
        assert "Learned tip" not in [r.title for r in report.recommendations]

    def test_trend(self):
        monitor = make_monitor(site("http://example.com"))
        assert monitor.get_trend()["direction"] == "insufficient_data"

        asyncio.run(monitor.perform_health_check("http://example.com"))
        monitor.session = site("https://example.com")
        asyncio.run(monitor.perform_health_check("https://example.com"))

        trend = monitor.get_trend()
        assert trend == {"current": 91, "previous": 81, "delta": 10, "direction": "improving"}

    def test_history_is_bounded(self):
        monitor = make_monitor(site("https://example.com"), MonitorConfig(history_size=2))
        for _ in range(3):
            asyncio.run(monitor.perform_health_check("https://example.com"))
        assert len(monitor.history) == 2


class TestEngineStatus:

    def test_status_from_submission_results(self):
        config = MonitorConfig(search_engines=["bing", "yandex", "baidu", "google"])
        monitor = make_monitor(FakeSession(), config)
        results = [
            SubmissionResult("bing", True, 100, 10, "2025-01-01T10:00:00"),
            SubmissionResult("yandex", True, 100, 10, "2025-01-01T10:00:00"),
            SubmissionResult("yandex", False, 0, 10, "2025-01-01T10:05:00", urls_in_batch=50),
            SubmissionResult("baidu", False, 0, 10, "2025-01-01T10:00:00"),
        ]

        statuses = {s.engine: s for s in monitor.check_search_engines(results)}

        assert statuses["bing"].status == EngineHealth.HEALTHY
        assert statuses["bing"].page_count == 100
        assert statuses["yandex"].status == EngineHealth.WARNING
        assert statuses["yandex"].crawl_errors == 1
        assert statuses["yandex"].last_crawl == "2025-01-01T10:05:00"
        assert statuses["baidu"].status == EngineHealth.ERROR
        assert statuses["baidu"].indexed is False
        assert statuses["google"].status == EngineHealth.HEALTHY

    def test_indexing_stats(self):
        results = [
            SubmissionResult("bing", True, 100, 10, "t", urls_in_batch=100),
            SubmissionResult("bing", False, 0, 10, "t", urls_in_batch=50),
        ]
        stats = HealthMonitor.indexing_stats(results, total_pages=4)
        assert stats.total_pages == 4
        assert stats.pending_pages == 100
        assert stats.error_pages == 50


class TestMetricsProviders:

    LIGHTHOUSE = {"lighthouseResult": {"categories": {
        "performance": {"score": 0.93},
        "accessibility": {"score": 0.88},
        "best-practices": {"score": 1.0},
        "seo": {"score": 0.9},
    }}}

    def test_pagespeed_metrics(self):
        session = FakeSession(get_responses={PAGESPEED_ENDPOINT: FakeResponse(200, json_data=self.LIGHTHOUSE)})
        provider = PageSpeedMetricsProvider("api-key", BaselineMetricsProvider(MonitorConfig().baseline_metrics))

        metrics = asyncio.run(provider.collect("https://example.com", session))

        assert metrics.page_speed == 93.0
        assert metrics.desktop_score == 93.0
        assert metrics.accessibility == 88.0
        assert metrics.best_practices == 100.0
        assert metrics.seo == 90.0
        url, kwargs = session.gets[0]
        assert ("strategy", "mobile") in kwargs["params"]
        assert ("category", "BEST_PRACTICES") in kwargs["params"]

    def test_pagespeed_falls_back_to_baseline(self):
        session = FakeSession(get_responses={PAGESPEED_ENDPOINT: FakeResponse(500)})
        baseline = BaselineMetricsProvider(MonitorConfig().baseline_metrics)
        provider = PageSpeedMetricsProvider("api-key", baseline)

        metrics = asyncio.run(provider.collect("https://example.com", session))
        assert metrics.page_speed == 85

    def test_monitor_picks_pagespeed_with_api_key(self):
        monitor = HealthMonitor(MonitorConfig(pagespeed_api_key="secret"), session=FakeSession())
        assert isinstance(monitor.metrics_provider, PageSpeedMetricsProvider)
        assert isinstance(HealthMonitor(session=FakeSession()).metrics_provider, BaselineMetricsProvider)


def test_health_status_thresholds():
    assert HealthStatus.from_score(90) == HealthStatus.EXCELLENT
    assert HealthStatus.from_score(89) == HealthStatus.GOOD
    assert HealthStatus.from_score(70) == HealthStatus.GOOD
    assert HealthStatus.from_score(69) == HealthStatus.FAIR
    assert HealthStatus.from_score(50) == HealthStatus.FAIR
    assert HealthStatus.from_score(49) == HealthStatus.POOR


def test_monitor_config_validation():
    with pytest.raises(ValueError):
        MonitorConfig(alert_threshold=150)
    with pytest.raises(ValueError):
        MonitorConfig(check_interval=0)
