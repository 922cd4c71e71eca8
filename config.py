"""
Configuration for the search visibility orchestrator
"""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_USER_AGENT = "VisibilityBot/2.0 (+https://example.com/bot)"

BUNDLED_CATALOG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "sample_catalog.json")

# IndexNow-compatible submission endpoints. "bing" and "indexnow" share an
# endpoint; the submission client warns about the alias.
DEFAULT_ENGINES = {
    "bing": "https://api.indexnow.org/indexnow",
    "yandex": "https://yandex.com/indexnow",
    "indexnow": "https://api.indexnow.org/indexnow",
    "seznam": "https://search.seznam.cz/indexnow",
    "naver": "https://searchadvisor.naver.com/indexnow",
}


@dataclass
class SubmissionConfig:
    """Settings for the IndexNow submission client"""

    max_retries: int = 3
    retry_delay: int = 2000  # ms, multiplied by attempt number
    timeout: int = 10000  # ms per request
    batch_size: int = 100
    rate_limit: int = 10  # requests per minute per engine
    key_location_path: str = "/indexnow-key.txt"
    user_agent: str = DEFAULT_USER_AGENT
    engines: Dict[str, str] = None

    def __post_init__(self):
        if self.engines is None:
            self.engines = dict(DEFAULT_ENGINES)
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.rate_limit < 1:
            raise ValueError("rate_limit must be at least 1 request per minute")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass
class MonitorConfig:
    """Settings for the site health monitor"""

    check_interval: int = 60  # minutes
    auto_fix: bool = True
    alert_threshold: int = 70
    enable_ml: bool = True
    probe_timeout: int = 10000  # ms
    history_size: int = 100
    # Engines whose submission results feed the health score; None means
    # the submission engines
    search_engines: Optional[List[str]] = None
    pagespeed_api_key: Optional[str] = None

    # Used when no live metrics source is configured
    baseline_metrics: Dict[str, float] = None

    def __post_init__(self):
        if self.baseline_metrics is None:
            self.baseline_metrics = {
                "page_speed": 85,
                "mobile_score": 90,
                "desktop_score": 92,
                "accessibility": 88,
                "best_practices": 91,
                "seo": 87,
            }
        if not 0 <= self.alert_threshold <= 100:
            raise ValueError("alert_threshold must be between 0 and 100")
        if self.check_interval < 1:
            raise ValueError("check_interval must be at least 1 minute")


@dataclass
class MetadataConfig:
    """Site identity and templates used for meta tags and structured data"""

    site_name: str = "Example Travel"
    site_url: str = "https://example.com"
    logo_url: str = "https://example.com/logo.png"
    og_image_url: str = "https://example.com/og-image.jpg"
    twitter_handle: str = "@example"
    locale: str = "en_US"
    default_location: str = "Turkey"
    title_max_length: int = 60
    description_max_length: int = 160
    social_profiles: List[str] = field(default_factory=list)

    # Keyed by page type; "default" is used for unknown types.
    # Placeholders: {location}, {year}, {site_name}, {primary_keyword}
    title_templates: Dict[str, str] = None
    description_templates: Dict[str, str] = None

    def __post_init__(self):
        if self.title_templates is None:
            self.title_templates = {
                "hotels": "{location} Hotels {year} - Best Prices | {site_name}",
                "tours": "{location} Tours {year} - Guided Trips | {site_name}",
                "transfers": "Airport Transfers - VIP Vehicles | {site_name}",
                "blog": "{primary_keyword} - Travel Guide {year} | {site_name}",
                "homepage": "Smart Holiday Planning {year} | {site_name}",
                "default": "{primary_keyword} | {site_name}",
            }
        if self.description_templates is None:
            self.description_templates = {
                "hotels": "Compare {year} hotel prices in {location}. All inclusive deals, free cancellation and 24/7 support. Book your stay today!",
                "tours": "Guided {location} tours and activities with professional guides, small groups and instant confirmation. The most popular tours of {year}!",
                "transfers": "Airport transfers and VIP vehicle hire with professional drivers, available around the clock. Book your ride now!",
                "blog": "Everything you need to know about {primary_keyword}, written by our travel experts and updated for {year}.",
                "homepage": "Plan your holiday with personalised recommendations, the best prices, secure payment and round-the-clock support from {site_name}.",
                "default": "{primary_keyword} with {site_name}: the best prices and expert advice.",
            }
        if self.title_max_length < 4 or self.description_max_length < 4:
            raise ValueError("length limits must leave room for an ellipsis")


@dataclass
class TrustProfile:
    """Brand facts used to render E-A-T content blocks and trust badges"""

    brand_name: str = "Example Travel"
    years_of_experience: int = 15
    happy_customers: str = "50,000+"
    badges: List[str] = None
    sources: List[str] = None

    def __post_init__(self):
        if self.badges is None:
            self.badges = [
                "SSL secure payment",
                "IATA accredited agency",
                "4.8/5 customer rating",
                "Free cancellation",
                "Best price guarantee",
            ]
        if self.sources is None:
            self.sources = [
                "Official tourism ministry statistics",
                "Customer satisfaction surveys",
                "Direct communication with hotel and tour partners",
            ]


@dataclass
class OrchestratorConfig:
    """Settings for a full orchestration run"""

    base_url: str = "https://example.com"
    indexnow_key: str = ""
    page_delay: float = 0.1  # seconds between sequential page optimisations
    max_concurrent_pages: int = 1
    fetch_content: bool = False
    top_pages_limit: int = 5
    critical_score_threshold: int = 70
    pages: List[Dict[str, str]] = None
    tracked_keywords: List[str] = None

    def __post_init__(self):
        if self.pages is None:
            self.pages = [
                {"url": "/", "type": "homepage"},
                {"url": "/hotels", "type": "hotels"},
                {"url": "/tours", "type": "tours"},
                {"url": "/transfers", "type": "transfers"},
            ]
        if self.tracked_keywords is None:
            self.tracked_keywords = []
        if self.max_concurrent_pages < 1:
            raise ValueError("max_concurrent_pages must be at least 1")


@dataclass
class VisibilityConfig:
    """Top-level configuration grouping every component's options"""

    submission: SubmissionConfig = field(default_factory=SubmissionConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    trust: TrustProfile = field(default_factory=TrustProfile)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    catalog_path: Optional[str] = None

    # Site E-A-T signals as {"expertise": {...}, "authority": {...}, "trust": {...}}
    eat_signals: Optional[Dict[str, Dict[str, Any]]] = None

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Email alerts for error and critical alerts; disabled when smtp_server is empty
    smtp_server: Optional[str] = None
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    alert_recipients: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "VisibilityConfig":
        """Build a configuration, overriding defaults from the environment"""
        cfg = cls()
        site_url = os.environ.get("SITE_URL")
        if site_url:
            cfg.orchestrator.base_url = site_url.rstrip("/")
            cfg.metadata.site_url = site_url.rstrip("/")
        cfg.orchestrator.indexnow_key = os.environ.get("INDEXNOW_KEY", cfg.orchestrator.indexnow_key)
        cfg.monitor.pagespeed_api_key = os.environ.get("PAGESPEED_API_KEY") or None
        cfg.catalog_path = os.environ.get("KEYWORD_CATALOG", cfg.catalog_path)
        cfg.log_level = os.environ.get("LOG_LEVEL", cfg.log_level).upper()
        cfg.smtp_server = os.environ.get("SMTP_SERVER") or None
        cfg.smtp_port = int(os.environ.get("SMTP_PORT", cfg.smtp_port))
        cfg.smtp_username = os.environ.get("SMTP_USERNAME", cfg.smtp_username)
        cfg.smtp_password = os.environ.get("SMTP_PASSWORD", cfg.smtp_password)
        recipients = os.environ.get("ALERT_RECIPIENTS", "")
        cfg.alert_recipients = [r.strip() for r in recipients.split(",") if r.strip()]
        return cfg


# Default configuration instance
config = VisibilityConfig()
