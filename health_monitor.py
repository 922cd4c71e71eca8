"""
Site health monitoring: metrics, engine status, technical issues and scoring
"""
import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple

import aiohttp
from bs4 import BeautifulSoup

from config import MonitorConfig, DEFAULT_ENGINES, DEFAULT_USER_AGENT
from exceptions import ProbeError
from models import (
    SEOMetrics, EngineStatus, EngineHealth, SEOIssue, SEORecommendation, SEOHealthReport,
    IndexingStats, HealthStatus, Severity, Priority, SubmissionResult,
)
from monitoring import AlertManager
from utils import clamp, round_half_up, join_url, PerformanceMonitor

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
RECOMMENDATION_THRESHOLD = 90
MAX_PENALTY = 30
SEVERITY_PENALTY = {Severity.CRITICAL: 10, Severity.HIGH: 5, Severity.MEDIUM: 2}


class MetricsProvider:
    """Source of page quality metrics for a site"""

    async def collect(self, base_url: str, session: Optional[aiohttp.ClientSession] = None) -> SEOMetrics:
        raise NotImplementedError


class BaselineMetricsProvider(MetricsProvider):
    """Static metrics from configuration"""

    def __init__(self, values: Dict[str, float]):
        self.values = dict(values)

    async def collect(self, base_url: str, session: Optional[aiohttp.ClientSession] = None) -> SEOMetrics:
        return SEOMetrics(**self.values)


class PageSpeedMetricsProvider(MetricsProvider):
    """Google PageSpeed Insights v5 Lighthouse categories, with a baseline fallback"""

    CATEGORIES = ('performance', 'accessibility', 'best-practices', 'seo')

    def __init__(self, api_key: str, fallback: BaselineMetricsProvider, timeout: float = 60):
        self.api_key = api_key
        self.fallback = fallback
        self.timeout = timeout

    async def collect(self, base_url: str, session: Optional[aiohttp.ClientSession] = None) -> SEOMetrics:
        if session is None:
            async with aiohttp.ClientSession() as own_session:
                return await self.collect(base_url, own_session)

        try:
            mobile = await self._run(session, base_url, 'mobile')
            desktop = await self._run(session, base_url, 'desktop')
        except (ProbeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"PageSpeed metrics unavailable for {base_url}, using baseline: {e}")
            return await self.fallback.collect(base_url, session)

        return SEOMetrics(
            page_speed=mobile['performance'],
            mobile_score=mobile['performance'],
            desktop_score=desktop['performance'],
            accessibility=mobile['accessibility'],
            best_practices=mobile['best-practices'],
            seo=mobile['seo'],
        )

    async def _run(self, session, base_url: str, strategy: str) -> Dict[str, float]:
        params = [('url', base_url), ('key', self.api_key), ('strategy', strategy)]
        params.extend(('category', category.upper().replace('-', '_')) for category in self.CATEGORIES)
        try:
            async with session.get(PAGESPEED_ENDPOINT, params=params,
                                   timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if response.status != 200:
                    raise ProbeError(base_url, f"PageSpeed HTTP {response.status}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProbeError(base_url, f"PageSpeed request failed: {e}")

        categories = data['lighthouseResult']['categories']
        return {name: round(float(categories[name]['score']) * 100, 1) for name in self.CATEGORIES}


class Remediator:
    """Applies an automatic fix for an issue; returns True when fixed"""

    def fix(self, issue: SEOIssue) -> bool:
        raise NotImplementedError


class LoggingRemediator(Remediator):
    """Records the fix that would be applied"""

    def fix(self, issue: SEOIssue) -> bool:
        logger.info(f"Auto-fix [{issue.category}] {issue.description}: {issue.solution or 'no solution given'}")
        return True


class RecommendationStrategy:
    def recommend(self, metrics: SEOMetrics, issues: List[SEOIssue]) -> List[SEORecommendation]:
        raise NotImplementedError


class ThresholdRecommendationStrategy(RecommendationStrategy):
    """One recommendation per metric under 90, plus one for the critical issues"""

    RULES = [
        ('page_speed', Priority.HIGH, 'Performance', 'Optimize page speed',
         'Page load speed is a key ranking factor',
         'Higher rankings and a better user experience',
         'Optimize images, enable caching, add a CDN'),
        ('mobile_score', Priority.HIGH, 'Mobile', 'Improve mobile usability',
         'Search engines index the mobile version first',
         'Better rankings in mobile search',
         'Responsive design and mobile-friendly testing'),
        ('accessibility', Priority.MEDIUM, 'Accessibility', 'Improve accessibility',
         'Accessible sites reach more visitors and rank better',
         'Wider audience and an SEO bonus',
         'ARIA labels, keyboard navigation, contrast ratios'),
        ('best_practices', Priority.MEDIUM, 'Best Practices', 'Follow web best practices',
         'Outdated libraries and console errors lower page quality',
         'Fewer browser warnings and a more trustworthy site',
         'Update dependencies, fix console errors, serve modern image formats'),
        ('seo', Priority.HIGH, 'SEO', 'Fix on-page SEO gaps',
         'The Lighthouse SEO audit found missing on-page basics',
         'Better crawlability and snippets',
         'Complete meta tags, crawlable links and valid structured data'),
    ]

    def recommend(self, metrics: SEOMetrics, issues: List[SEOIssue]) -> List[SEORecommendation]:
        recommendations = []

        for metric, priority, category, title, description, impact, implementation in self.RULES:
            if getattr(metrics, metric) < RECOMMENDATION_THRESHOLD:
                recommendations.append(SEORecommendation(
                    priority=priority,
                    category=category,
                    title=title,
                    description=description,
                    expected_impact=impact,
                    implementation=implementation,
                ))

        critical = [issue for issue in issues if issue.severity == Severity.CRITICAL]
        if critical:
            recommendations.append(SEORecommendation(
                priority=Priority.HIGH,
                category='Critical Fixes',
                title=f"Fix {len(critical)} critical issue{'s' if len(critical) > 1 else ''}",
                description='Critical SEO issues need to be fixed urgently',
                expected_impact='Avoid ranking penalties and protect current positions',
                implementation='; '.join(issue.solution or issue.description for issue in critical),
            ))

        return recommendations


class HealthMonitor:
    """Runs site health checks and keeps a bounded history of reports"""

    def __init__(self, config: MonitorConfig = None,
                 metrics_provider: MetricsProvider = None,
                 alert_manager: AlertManager = None,
                 remediator: Remediator = None,
                 recommendation_strategy: RecommendationStrategy = None,
                 ml_strategy: RecommendationStrategy = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.config = config or MonitorConfig()
        self.search_engines = list(self.config.search_engines or DEFAULT_ENGINES)
        baseline = BaselineMetricsProvider(self.config.baseline_metrics)
        if metrics_provider is None:
            if self.config.pagespeed_api_key:
                metrics_provider = PageSpeedMetricsProvider(self.config.pagespeed_api_key, baseline)
            else:
                metrics_provider = baseline
        self.metrics_provider = metrics_provider
        self.alert_manager = alert_manager or AlertManager()
        self.remediator = remediator or LoggingRemediator()
        self.recommendation_strategy = recommendation_strategy or ThresholdRecommendationStrategy()
        self.ml_strategy = ml_strategy
        self.session = session
        self.history = deque(maxlen=self.config.history_size)
        self.performance_monitor = PerformanceMonitor()

    async def perform_health_check(self, base_url: str,
                                   submission_results: Optional[List[SubmissionResult]] = None,
                                   total_pages: int = 0) -> SEOHealthReport:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.probe_timeout / 1000)
            async with aiohttp.ClientSession(timeout=timeout,
                                             headers={'User-Agent': DEFAULT_USER_AGENT}) as session:
                return await self._check(session, base_url, submission_results, total_pages)
        return await self._check(self.session, base_url, submission_results, total_pages)

    def run_check(self, base_url: str, submission_results: Optional[List[SubmissionResult]] = None,
                  total_pages: int = 0) -> SEOHealthReport:
        """Blocking wrapper for use outside an event loop (scheduler thread, CLI)"""
        return asyncio.run(self.perform_health_check(base_url, submission_results, total_pages))

    async def _check(self, session, base_url: str, submission_results, total_pages: int) -> SEOHealthReport:
        self.performance_monitor.start_timer("health_check")
        base_url = base_url.rstrip('/')
        logger.info(f"Starting SEO health check for {base_url}")

        try:
            metrics = await self.metrics_provider.collect(base_url, session)
        except Exception as e:
            logger.error(f"Metrics provider failed, using baseline: {e}")
            metrics = SEOMetrics(**self.config.baseline_metrics)

        engine_statuses = self.check_search_engines(submission_results)
        issues, inconclusive = await self.detect_issues(session, base_url)
        recommendations = self._strategy().recommend(metrics, issues)
        indexing_stats = self.indexing_stats(submission_results, total_pages)

        overall = self.calculate_overall_score(metrics, engine_statuses, issues)
        report = SEOHealthReport(
            timestamp=datetime.now().isoformat(),
            overall_score=overall,
            status=HealthStatus.from_score(overall),
            metrics=metrics,
            engine_statuses=engine_statuses,
            issues=issues,
            recommendations=recommendations,
            indexing_stats=indexing_stats,
            inconclusive_checks=inconclusive,
        )

        self.history.append(report)
        await self.handle_report(report, base_url)
        self.performance_monitor.end_timer("health_check")
        return report

    def _strategy(self) -> RecommendationStrategy:
        if self.config.enable_ml and self.ml_strategy is not None:
            return self.ml_strategy
        return self.recommendation_strategy

    def check_search_engines(self, submission_results: Optional[List[SubmissionResult]]) -> List[EngineStatus]:
        by_engine: Dict[str, List[SubmissionResult]] = {}
        for result in submission_results or []:
            by_engine.setdefault(result.engine, []).append(result)

        statuses = []
        for engine in self.search_engines:
            results = by_engine.get(engine)
            if not results:
                statuses.append(EngineStatus(engine=engine, indexed=True, crawl_errors=0,
                                             status=EngineHealth.HEALTHY))
                continue

            succeeded = [r for r in results if r.success]
            if len(succeeded) == len(results):
                health = EngineHealth.HEALTHY
            elif succeeded:
                health = EngineHealth.WARNING
            else:
                health = EngineHealth.ERROR

            statuses.append(EngineStatus(
                engine=engine,
                indexed=bool(succeeded),
                crawl_errors=len(results) - len(succeeded),
                status=health,
                page_count=sum(r.urls_submitted for r in succeeded),
                last_crawl=max(r.timestamp for r in results),
            ))
        return statuses

    async def detect_issues(self, session, base_url: str) -> Tuple[List[SEOIssue], List[str]]:
        issues: List[SEOIssue] = []
        inconclusive: List[str] = []

        if not base_url.startswith('https://'):
            issues.append(SEOIssue(
                severity=Severity.CRITICAL,
                category='Security',
                description='Site is not served over HTTPS',
                affected_pages=[base_url],
                auto_fixable=False,
                solution='Install a TLS certificate and redirect all traffic to HTTPS',
            ))

        try:
            status, html = await self._fetch(session, base_url)
            if not 200 <= status < 300:
                raise ProbeError(base_url, f"HTTP {status}")
            issues.extend(self._check_page(html, base_url))
        except ProbeError as e:
            logger.warning(f"Page checks inconclusive: {e}")
            inconclusive.extend([f"meta_tags: {e.reason}", f"content: {e.reason}"])

        for name, label, solution in (
            ('robots.txt', 'robots.txt file not found', 'Create a robots.txt file'),
            ('sitemap.xml', 'sitemap.xml file not found', 'Generate an XML sitemap'),
        ):
            url = join_url(base_url, name)
            try:
                status, _ = await self._fetch(session, url)
            except ProbeError as e:
                logger.warning(f"{name} check inconclusive: {e}")
                inconclusive.append(f"{name}: {e.reason}")
                continue
            if not 200 <= status < 300:
                issues.append(SEOIssue(
                    severity=Severity.HIGH,
                    category='Technical SEO',
                    description=label,
                    affected_pages=[url],
                    auto_fixable=True,
                    solution=solution,
                ))

        return issues, inconclusive

    async def _fetch(self, session, url: str) -> Tuple[int, str]:
        try:
            async with session.get(url) as response:
                return response.status, await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            raise ProbeError(url, str(e) or e.__class__.__name__)

    def _check_page(self, html: str, url: str) -> List[SEOIssue]:
        soup = BeautifulSoup(html or "", "html.parser")
        issues = []

        title = soup.find('title')
        if title is None or not title.get_text(strip=True):
            issues.append(SEOIssue(
                severity=Severity.CRITICAL,
                category='Meta Tags',
                description='Title tag missing or empty',
                affected_pages=[url],
                auto_fixable=True,
                solution='Add a title tag: <title>Page topic - Site name</title>',
            ))

        description = soup.find('meta', attrs={'name': 'description'})
        if description is None or not (description.get('content') or '').strip():
            issues.append(SEOIssue(
                severity=Severity.HIGH,
                category='Meta Tags',
                description='Meta description missing',
                affected_pages=[url],
                auto_fixable=True,
                solution='Add a meta description of 120-160 characters',
            ))

        if soup.find('link', rel='canonical') is None:
            issues.append(SEOIssue(
                severity=Severity.HIGH,
                category='Meta Tags',
                description='Canonical tag missing',
                affected_pages=[url],
                auto_fixable=True,
                solution='Add a canonical URL link tag',
            ))

        h1_count = len(soup.find_all('h1'))
        if h1_count == 0:
            issues.append(SEOIssue(
                severity=Severity.HIGH,
                category='Content',
                description='Page has no H1 heading',
                affected_pages=[url],
                solution='Add an H1 tag for the main heading',
            ))
        elif h1_count > 1:
            issues.append(SEOIssue(
                severity=Severity.MEDIUM,
                category='Content',
                description=f'Page has {h1_count} H1 headings',
                affected_pages=[url],
                solution='Use exactly one H1 per page',
            ))

        missing_alt = [img for img in soup.find_all('img') if not img.has_attr('alt')]
        if missing_alt:
            issues.append(SEOIssue(
                severity=Severity.MEDIUM,
                category='Accessibility',
                description=f'{len(missing_alt)} image(s) without alt text',
                affected_pages=[url],
                solution='Add descriptive alt text to every image',
            ))

        return issues

    @staticmethod
    def indexing_stats(submission_results: Optional[List[SubmissionResult]], total_pages: int = 0) -> IndexingStats:
        results = submission_results or []
        return IndexingStats(
            total_pages=total_pages,
            indexed_pages=0,
            pending_pages=sum(r.urls_submitted for r in results if r.success),
            error_pages=sum(r.urls_in_batch for r in results if not r.success),
        )

    @staticmethod
    def calculate_overall_score(metrics: SEOMetrics, engines: List[EngineStatus],
                                issues: List[SEOIssue]) -> int:
        metrics_score = (
            metrics.page_speed * 0.25 +
            metrics.seo * 0.25 +
            metrics.mobile_score * 0.20 +
            metrics.accessibility * 0.15 +
            metrics.best_practices * 0.15
        )

        healthy = sum(1 for e in engines if e.status == EngineHealth.HEALTHY)
        engines_score = healthy / len(engines) * 100 if engines else 0

        penalty = min(MAX_PENALTY, sum(SEVERITY_PENALTY.get(i.severity, 0) for i in issues))

        return round_half_up(clamp(metrics_score * 0.7 + engines_score * 0.3 - penalty, 0, 100))

    async def handle_report(self, report: SEOHealthReport, base_url: str):
        """Log the report, dispatch auto-fixes and raise an alert when the score is low

        Remediators and email alerts may block, so both run in the default executor.
        """
        log_health_report(report)
        loop = asyncio.get_running_loop()

        if self.config.auto_fix:
            for issue in report.issues:
                if not issue.auto_fixable:
                    continue
                try:
                    if not await loop.run_in_executor(None, self.remediator.fix, issue):
                        logger.warning(f"Auto-fix did not resolve: {issue.description}")
                except Exception as e:
                    logger.error(f"Auto-fix failed for '{issue.description}': {e}")

        if report.overall_score < self.config.alert_threshold:
            level = 'critical' if report.status == HealthStatus.POOR else 'warning'
            message = (f"SEO health score {report.overall_score}/100 for {base_url} "
                       f"is below the alert threshold {self.config.alert_threshold}")
            try:
                await loop.run_in_executor(
                    None, self.alert_manager.create_alert, level, 'health', message, 'health_monitor'
                )
            except Exception as e:
                logger.error(f"Failed to raise health alert: {e}")

    def get_trend(self) -> Dict[str, Any]:
        """Score movement between the two most recent reports"""
        if len(self.history) < 2:
            latest = self.history[-1].overall_score if self.history else None
            return {'current': latest, 'previous': None, 'delta': 0, 'direction': 'insufficient_data'}

        current = self.history[-1].overall_score
        previous = self.history[-2].overall_score
        delta = current - previous
        if delta > 0:
            direction = 'improving'
        elif delta < 0:
            direction = 'declining'
        else:
            direction = 'stable'
        return {'current': current, 'previous': previous, 'delta': delta, 'direction': direction}


def log_health_report(report: SEOHealthReport):
    logger.info(f"SEO Health Report - {report.timestamp}")
    logger.info(f"Overall Score: {report.overall_score}/100 ({report.status.value.upper()})")
    logger.info(f"  Page Speed: {report.metrics.page_speed}/100")
    logger.info(f"  Mobile: {report.metrics.mobile_score}/100")
    logger.info(f"  SEO: {report.metrics.seo}/100")
    logger.info(f"  Accessibility: {report.metrics.accessibility}/100")

    if report.issues:
        logger.info(f"Issues ({len(report.issues)}):")
        for issue in report.issues:
            logger.info(f"  [{issue.severity.value.upper()}] {issue.description}")

    if report.recommendations:
        logger.info(f"Recommendations ({len(report.recommendations)}):")
        for rec in report.recommendations:
            logger.info(f"  [{rec.priority.value.upper()}] {rec.title}")

    if report.inconclusive_checks:
        logger.warning(f"Inconclusive checks: {', '.join(report.inconclusive_checks)}")
