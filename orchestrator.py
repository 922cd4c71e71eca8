"""
Orchestration: optimise the page set, submit URLs, check health, report
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple

import aiohttp

from config import OrchestratorConfig, DEFAULT_USER_AGENT
from health_monitor import HealthMonitor
from index_submitter import SubmissionClient
from keyword_catalog import KeywordCatalog
from models import (
    Page, PageOptimizationResult, PageStatus, Difficulty, RankingEstimate,
    IndexingStatus, OrchestrationReport, SubmissionResult, SubmissionReport, SEOHealthReport,
)
from page_optimizer import PageOptimizer
from utils import join_url, round_half_up, PerformanceMonitor

logger = logging.getLogger(__name__)


class RankingEstimator:
    def estimate(self, keywords: List[str], average_score: float,
                 catalog: KeywordCatalog) -> Dict[str, RankingEstimate]:
        raise NotImplementedError


class TieredRankingEstimator(RankingEstimator):
    """Coarse position guess from the average page score and keyword difficulty

    Not a predictive model; swap in a real one when ranking data is available.
    """

    TIERS = [
        (90, {Difficulty.HARD: 5, Difficulty.MEDIUM: 3, Difficulty.EASY: 1}),
        (80, {Difficulty.HARD: 8, Difficulty.MEDIUM: 5, Difficulty.EASY: 2}),
        (70, {Difficulty.HARD: 12, Difficulty.MEDIUM: 8, Difficulty.EASY: 4}),
    ]
    DEFAULT_POSITION = 15
    STRENGTH = {Difficulty.HARD: 'high', Difficulty.MEDIUM: 'medium', Difficulty.EASY: 'low'}

    def estimate(self, keywords: List[str], average_score: float,
                 catalog: KeywordCatalog) -> Dict[str, RankingEstimate]:
        estimates = {}
        for keyword in keywords:
            difficulty = catalog.difficulty_for(keyword) if catalog else Difficulty.MEDIUM

            position = self.DEFAULT_POSITION
            for threshold, positions in self.TIERS:
                if average_score >= threshold:
                    position = positions[difficulty]
                    break

            estimates[keyword] = RankingEstimate(
                estimated_position=position,
                competitor_strength=self.STRENGTH[difficulty],
            )
        return estimates


class VisibilityOrchestrator:
    """Ties page optimisation, URL submission and health checks into one run"""

    def __init__(self, config: OrchestratorConfig, catalog: KeywordCatalog,
                 page_optimizer: PageOptimizer, submission_client: SubmissionClient,
                 health_monitor: HealthMonitor, ranking_estimator: RankingEstimator = None,
                 sleep=asyncio.sleep):
        self.config = config
        self.catalog = catalog
        self.page_optimizer = page_optimizer
        self.submission_client = submission_client
        self.health_monitor = health_monitor
        self.ranking_estimator = ranking_estimator or TieredRankingEstimator()
        self.sleep = sleep
        self.last_submission_results: List[SubmissionResult] = []
        self.performance_monitor = PerformanceMonitor()

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip('/')

    def _pages_from_config(self, pages: Optional[List[Dict[str, Any]]]) -> List[Page]:
        return [
            Page(url=p['url'], page_type=p.get('type') or p.get('page_type', 'default'),
                 location=p.get('location'))
            for p in (pages if pages is not None else self.config.pages)
        ]

    async def optimize_page(self, url: str, page_type: str, location: Optional[str] = None,
                            session: Optional[aiohttp.ClientSession] = None) -> PageOptimizationResult:
        page = Page(url=url, page_type=page_type, location=location)
        html = None
        if self.config.fetch_content:
            html = await self._fetch_content(page, session)
        return self.page_optimizer.optimize(page, html=html, base_url=self.base_url)

    async def _fetch_content(self, page: Page, session: Optional[aiohttp.ClientSession]) -> Optional[str]:
        url = join_url(self.base_url, page.url)
        if session is None:
            async with self._content_session() as own_session:
                return await self._fetch_content(page, own_session)
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning(f"HTTP {response.status} fetching {url}, scoring without content")
                    return None
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not fetch {url}, scoring without content: {e}")
            return None

    def _content_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=30),
            headers={'User-Agent': DEFAULT_USER_AGENT},
        )

    async def optimize_all_pages(self, pages: Optional[List[Dict[str, Any]]] = None) -> List[PageOptimizationResult]:
        results, _ = await self._optimize_pages(self._pages_from_config(pages))
        return results

    async def _optimize_pages(self, pages: List[Page]) -> Tuple[List[PageOptimizationResult], int]:
        self.performance_monitor.start_timer("optimize_all_pages")
        failed = 0

        async def run(page: Page, session) -> PageOptimizationResult:
            nonlocal failed
            try:
                return await self.optimize_page(page.url, page.page_type, page.location, session)
            except Exception as e:
                failed += 1
                logger.error(f"Optimization failed for {page.url}: {e}")
                return PageOptimizationResult(url=page.url, score=0,
                                              improvements=[f"Optimization failed: {e}"])

        session = self._content_session() if self.config.fetch_content else None
        try:
            if self.config.max_concurrent_pages == 1:
                results = []
                for page in pages:
                    results.append(await run(page, session))
                    await self.sleep(self.config.page_delay)
            else:
                semaphore = asyncio.Semaphore(self.config.max_concurrent_pages)

                async def bounded(page: Page):
                    async with semaphore:
                        return await run(page, session)

                results = list(await asyncio.gather(*[bounded(page) for page in pages]))
        finally:
            if session is not None:
                await session.close()

        self.performance_monitor.end_timer("optimize_all_pages")
        logger.info(f"Optimized {len(results) - failed}/{len(results)} pages")
        return results, failed

    async def submit_to_search_engines(self, urls: List[str], cancel_event: Optional[asyncio.Event] = None,
                                       deadline: Optional[float] = None) -> SubmissionReport:
        """Submit urls to every engine and summarise; raises ValidationError on bad input"""
        logger.info(f"Submitting {len(urls)} URLs to {len(self.submission_client.engines)} search engines")
        results = await self.submission_client.submit_to_all_engines(
            urls, self.base_url, self.config.indexnow_key, cancel_event=cancel_event, deadline=deadline
        )
        self.last_submission_results = results
        report = self.submission_client.generate_report(results)
        logger.info(f"Submission complete: {report.success_rate:.1f}% success rate")
        return report

    async def perform_health_check(self, base_url: Optional[str] = None) -> SEOHealthReport:
        logger.info("Performing comprehensive health check")
        report = await self.health_monitor.perform_health_check(
            base_url or self.base_url,
            submission_results=self.last_submission_results,
            total_pages=len(self.config.pages),
        )
        logger.info(f"Health Score: {report.overall_score}/100 ({report.status.value})")
        return report

    async def generate_orchestration_report(self, pages: Optional[List[Dict[str, Any]]] = None,
                                            cancel_event: Optional[asyncio.Event] = None,
                                            deadline: Optional[float] = None) -> OrchestrationReport:
        logger.info("Search visibility orchestration starting")
        page_list = self._pages_from_config(pages)
        results, failed_pages = await self._optimize_pages(page_list)

        total_pages = len(results)
        average = sum(r.score for r in results) / total_pages if total_pages else 0.0

        status_counts = {status.value: 0 for status in PageStatus}
        for r in results:
            status_counts[r.status.value] += 1

        ranked = sorted(results, key=lambda r: r.score, reverse=True)
        top_pages = [f"{r.url} ({r.score}/100)" for r in ranked[:self.config.top_pages_limit]]

        critical_issues = []
        for r in results:
            if r.score < self.config.critical_score_threshold:
                for improvement in r.improvements[:2]:
                    if improvement not in critical_issues:
                        critical_issues.append(improvement)

        indexing_status, failed_submissions = await self._submit_pages(results, cancel_event, deadline)

        eat_score = round_half_up(sum(r.eat_score for r in results) / total_pages) if total_pages else 0

        tracked = self.config.tracked_keywords or (self.catalog.tracked_keywords if self.catalog else [])
        try:
            estimated_ranking = self.ranking_estimator.estimate(tracked, average, self.catalog)
        except Exception as e:
            logger.error(f"Ranking estimation failed: {e}")
            estimated_ranking = {}

        report = OrchestrationReport(
            timestamp=datetime.now().isoformat(),
            total_pages=total_pages,
            average_score=round_half_up(average),
            status_counts=status_counts,
            top_performing_pages=top_pages,
            critical_issues=critical_issues,
            indexing_status=indexing_status,
            eat_score=eat_score,
            estimated_ranking=estimated_ranking,
            failed_pages=failed_pages,
            failed_submissions=failed_submissions,
        )

        log_report(report)
        return report

    async def _submit_pages(self, results: List[PageOptimizationResult], cancel_event,
                            deadline) -> Tuple[IndexingStatus, int]:
        urls = [join_url(self.base_url, r.url) for r in results]
        try:
            report = await self.submit_to_search_engines(urls, cancel_event, deadline)
        except Exception as e:
            logger.error(f"URL submission failed: {e}")
            return IndexingStatus(), 1

        status = IndexingStatus(submitted=report.total_urls, indexed=0, pending=report.total_urls)
        return status, report.failed_submissions

    def get_keyword_stats(self) -> Dict[str, Any]:
        return {
            'keywords': self.catalog.total_keywords(),
            'search_volume': self.catalog.total_search_volume(),
            'tracked_keywords': len(self.config.tracked_keywords or self.catalog.tracked_keywords),
            'domain': self.base_url,
        }


def log_report(report: OrchestrationReport):
    logger.info("SEARCH VISIBILITY ORCHESTRATION REPORT")
    logger.info(f"Timestamp: {report.timestamp}")

    logger.info("PAGE OPTIMIZATION STATISTICS")
    logger.info(f"  Total Pages Optimized: {report.total_pages}")
    logger.info(f"  Average Score: {report.average_score}/100")
    logger.info(f"  Excellent (90-100): {report.status_counts.get('excellent', 0)} pages")
    logger.info(f"  Good (75-89): {report.status_counts.get('good', 0)} pages")
    logger.info(f"  Needs Improvement (50-74): {report.status_counts.get('needs_improvement', 0)} pages")
    logger.info(f"  Poor (0-49): {report.status_counts.get('poor', 0)} pages")
    if report.failed_pages:
        logger.warning(f"  Failed pages: {report.failed_pages}")

    logger.info("TOP PERFORMING PAGES")
    for i, page in enumerate(report.top_performing_pages, 1):
        logger.info(f"  {i}. {page}")

    logger.info("INDEXING STATUS")
    logger.info(f"  Submitted to Search Engines: {report.indexing_status.submitted} URLs")
    logger.info(f"  Indexed: {report.indexing_status.indexed} URLs")
    logger.info(f"  Pending: {report.indexing_status.pending} URLs")
    if report.failed_submissions:
        logger.warning(f"  Failed submissions: {report.failed_submissions}")

    logger.info(f"E-A-T SCORE: {report.eat_score}/100")

    logger.info("ESTIMATED RANKINGS")
    for keyword, estimate in report.estimated_ranking.items():
        logger.info(f"  \"{keyword}\": position #{estimate.estimated_position}, "
                    f"competition {estimate.competitor_strength}")

    if report.critical_issues:
        logger.info("CRITICAL IMPROVEMENTS NEEDED")
        for i, issue in enumerate(report.critical_issues[:5], 1):
            logger.info(f"  {i}. {issue}")
