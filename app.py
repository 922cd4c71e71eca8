"""
Main application for the search visibility orchestrator - wires all components
"""
import argparse
import asyncio
import json
import logging
import os
import time
from datetime import datetime
from typing import List, Dict, Any, Optional

from config import config as default_config, VisibilityConfig, BUNDLED_CATALOG_PATH
from content_scorer import ContentScorer
from exceptions import ValidationError
from health_monitor import HealthMonitor
from index_submitter import SubmissionClient
from keyword_catalog import KeywordCatalog
from metadata_builder import MetadataBuilder
from monitoring import setup_logging, AlertManager
from orchestrator import VisibilityOrchestrator
from page_optimizer import PageOptimizer
from scheduler import MonitoringScheduler
from trust_scorer import TrustScorer, EATSignals

logger = logging.getLogger(__name__)


class VisibilityApp:
    """Builds every component once and exposes the top-level operations"""

    def __init__(self, cfg: VisibilityConfig = None, catalog: KeywordCatalog = None,
                 init_logging: bool = True):
        self.config = cfg or default_config

        if init_logging:
            setup_logging(self.config.log_level, self.config.log_dir)

        self.catalog = catalog or self._load_catalog()
        self.alert_manager = AlertManager()

        self.content_scorer = ContentScorer()
        self.trust_scorer = TrustScorer(self.config.trust)
        self.metadata_builder = MetadataBuilder(self.config.metadata)
        self.page_optimizer = PageOptimizer(
            self.catalog, self.content_scorer, self.trust_scorer, self.metadata_builder,
            signals=self._load_signals(),
        )

        self.submission_client = SubmissionClient(self.config.submission)
        if self.config.monitor.search_engines is None:
            self.config.monitor.search_engines = list(self.config.submission.engines)
        self.health_monitor = HealthMonitor(self.config.monitor, alert_manager=self.alert_manager)
        self.orchestrator = VisibilityOrchestrator(
            self.config.orchestrator, self.catalog, self.page_optimizer,
            self.submission_client, self.health_monitor,
        )
        self.scheduler = MonitoringScheduler()

        if self.config.smtp_server and self.config.alert_recipients:
            self.alert_manager.configure_email_alerts(
                smtp_server=self.config.smtp_server,
                smtp_port=self.config.smtp_port,
                username=self.config.smtp_username,
                password=self.config.smtp_password,
                recipients=self.config.alert_recipients,
            )

        logger.info("Visibility application initialized")

    def _load_catalog(self) -> KeywordCatalog:
        path = self.config.catalog_path
        if not path:
            if not os.path.exists(BUNDLED_CATALOG_PATH):
                logger.warning("No keyword catalog configured, pages will have no target keywords")
                return KeywordCatalog()
            logger.info(f"No keyword catalog configured, using {BUNDLED_CATALOG_PATH}")
            path = BUNDLED_CATALOG_PATH
        try:
            return KeywordCatalog.from_json_file(path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load keyword catalog {path}: {e}")
            return KeywordCatalog()

    def _load_signals(self) -> Optional[EATSignals]:
        """Configured E-A-T signals, or None to score with the default site signals"""
        try:
            signals = EATSignals.from_dict(self.config.eat_signals)
        except TypeError as e:
            logger.error(f"Invalid E-A-T signals in configuration: {e}")
            return None
        if not signals.any_present():
            logger.info("No E-A-T signals configured, using default site signals")
            return None
        return signals

    async def optimize_page(self, url: str, page_type: str, location: Optional[str] = None) -> Dict[str, Any]:
        logger.info(f"Optimizing page: {url}")
        start_time = time.time()
        try:
            result = await self.orchestrator.optimize_page(url, page_type, location)
            return {"success": True, "data": result.to_dict(), "response_time": time.time() - start_time}
        except Exception as e:
            logger.error(f"Error optimizing {url}: {e}")
            return {"success": False, "error": str(e)}

    async def orchestrate(self, pages: Optional[List[Dict[str, Any]]] = None,
                          deadline: Optional[float] = None) -> Dict[str, Any]:
        start_time = time.time()
        try:
            report = await self.orchestrator.generate_orchestration_report(pages, deadline=deadline)
            return {"success": True, "data": report.to_dict(), "response_time": time.time() - start_time}
        except Exception as e:
            logger.error(f"Orchestration failed: {e}")
            return {"success": False, "error": str(e)}

    async def submit_urls(self, urls: List[str], deadline: Optional[float] = None) -> Dict[str, Any]:
        try:
            report = await self.orchestrator.submit_to_search_engines(urls, deadline=deadline)
            return {
                "success": report.failed_submissions == 0,
                "data": report.to_dict(),
                "results": [r.to_dict() for r in self.orchestrator.last_submission_results],
            }
        except ValidationError as e:
            logger.warning(f"Submission rejected: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"Error submitting URLs: {e}")
            return {"success": False, "error": str(e)}

    async def health_check(self, base_url: Optional[str] = None) -> Dict[str, Any]:
        try:
            report = await self.orchestrator.perform_health_check(base_url)
            return {"success": True, "data": report.to_dict(), "trend": self.health_monitor.get_trend()}
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"success": False, "error": str(e)}

    def start_monitoring(self, base_url: Optional[str] = None):
        """Schedule a health check every check_interval minutes"""
        target = base_url or self.orchestrator.base_url
        self.scheduler.add_job(
            "health_check",
            self.config.monitor.check_interval,
            lambda: self.health_monitor.perform_health_check(
                target,
                submission_results=self.orchestrator.last_submission_results,
                total_pages=len(self.config.orchestrator.pages),
            ),
        )
        self.scheduler.start()
        logger.info(f"Health monitoring started for {target} "
                    f"(every {self.config.monitor.check_interval} minutes)")

    def generate_key(self) -> str:
        return self.submission_client.generate_secure_key()

    def get_system_status(self) -> Dict[str, Any]:
        active_alerts = self.alert_manager.get_active_alerts()
        latest = self.health_monitor.history[-1] if self.health_monitor.history else None
        return {
            "timestamp": datetime.now().isoformat(),
            "last_health_score": latest.overall_score if latest else None,
            "last_health_status": latest.status.value if latest else "unknown",
            "trend": self.health_monitor.get_trend(),
            "active_alerts": len(active_alerts),
            "alerts": [{"level": a.level, "message": a.message} for a in active_alerts[:5]],
            "scheduler": self.scheduler.get_status(),
            "keywords": self.orchestrator.get_keyword_stats(),
        }

    def shutdown(self):
        logger.info("Shutting down visibility application")
        try:
            self.scheduler.stop()
            logger.info("Application shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


def create_cli():
    """Create command line interface"""
    parser = argparse.ArgumentParser(description="Search visibility orchestrator - page scoring, IndexNow submission and site health")
    parser.add_argument("--catalog",
                        help="Path to the keyword catalog JSON file (default: KEYWORD_CATALOG, "
                             "then the bundled sample_catalog.json)")
    parser.add_argument("--site-url", help="Site base URL (overrides SITE_URL)")
    parser.add_argument("--key", help="IndexNow key (overrides INDEXNOW_KEY)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    page_parser = subparsers.add_parser("optimize-page", help="Optimize a single page")
    page_parser.add_argument("url", help="Page path, e.g. /hotels")
    page_parser.add_argument("--type", dest="page_type", default="default", help="Page type")
    page_parser.add_argument("--location", help="Location the page targets")

    orchestrate_parser = subparsers.add_parser("orchestrate", help="Run the full orchestration report")
    orchestrate_parser.add_argument("--deadline", type=float, help="Submission deadline in seconds")

    submit_parser = subparsers.add_parser("submit", help="Submit URLs to IndexNow engines")
    submit_parser.add_argument("urls", nargs="+", help="Absolute URLs to submit")
    submit_parser.add_argument("--deadline", type=float, help="Deadline in seconds")

    health_parser = subparsers.add_parser("health", help="Run a site health check")
    health_parser.add_argument("--base-url", help="Site to check (defaults to the configured site)")

    monitor_parser = subparsers.add_parser("monitor", help="Run health checks periodically")
    monitor_parser.add_argument("--base-url", help="Site to check (defaults to the configured site)")

    subparsers.add_parser("generate-key", help="Generate a new IndexNow key")

    server_parser = subparsers.add_parser("server", help="Run the HTTP API")
    server_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    server_parser.add_argument("--port", type=int, default=8000, help="Server port")

    return parser


def build_config(args) -> VisibilityConfig:
    cfg = VisibilityConfig.from_env()
    if args.catalog:
        cfg.catalog_path = args.catalog
    if args.site_url:
        cfg.orchestrator.base_url = args.site_url.rstrip("/")
        cfg.metadata.site_url = args.site_url.rstrip("/")
    if args.key:
        cfg.orchestrator.indexnow_key = args.key
    return cfg


async def main(argv: Optional[List[str]] = None):
    """Main application entry point"""
    parser = create_cli()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if args.command == "generate-key":
        print(SubmissionClient.generate_secure_key())
        return

    if args.command == "server":
        import uvicorn
        uvicorn.run("api:app", host=args.host, port=args.port)
        return

    app = VisibilityApp(build_config(args))

    try:
        if args.command == "optimize-page":
            result = await app.optimize_page(args.url, args.page_type, args.location)
            print(json.dumps(result, indent=2, default=str))

        elif args.command == "orchestrate":
            result = await app.orchestrate(deadline=args.deadline)
            print(json.dumps(result, indent=2, default=str))

        elif args.command == "submit":
            result = await app.submit_urls(args.urls, deadline=args.deadline)
            print(json.dumps(result, indent=2, default=str))

        elif args.command == "health":
            result = await app.health_check(args.base_url)
            print(json.dumps(result, indent=2, default=str))

        elif args.command == "monitor":
            app.start_monitoring(args.base_url)
            print("Press Ctrl+C to stop monitoring...")
            result = await app.health_check(args.base_url)
            print(json.dumps(result, indent=2, default=str))
            while True:
                await asyncio.sleep(60)

    except KeyboardInterrupt:
        print("\nInterrupted by user")
    except Exception as e:
        logger.error(f"Application error: {e}")
        print(f"Error: {e}")
    finally:
        app.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
