"""
Data models for the search visibility orchestrator
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Any, Optional

from utils import clamp, round_half_up


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SearchIntent(str, Enum):
    INFORMATIONAL = "informational"
    NAVIGATIONAL = "navigational"
    TRANSACTIONAL = "transactional"
    COMMERCIAL = "commercial"


class PageStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"

    @classmethod
    def from_score(cls, score: float) -> "PageStatus":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 75:
            return cls.GOOD
        if score >= 50:
            return cls.NEEDS_IMPROVEMENT
        return cls.POOR


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @classmethod
    def from_score(cls, score: float) -> "HealthStatus":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 70:
            return cls.GOOD
        if score >= 50:
            return cls.FAIR
        return cls.POOR


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EngineHealth(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


def _plain(value):
    return value.value if isinstance(value, Enum) else value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self, dict_factory=lambda items: {k: _plain(v) for k, v in items})


@dataclass
class Keyword(_Serializable):
    """A target keyword with its market data"""
    text: str
    search_volume: int = 0
    difficulty: Difficulty = Difficulty.MEDIUM
    intent: SearchIntent = SearchIntent.INFORMATIONAL

    def __post_init__(self):
        self.search_volume = max(0, int(self.search_volume or 0))
        self.difficulty = Difficulty(self.difficulty)
        self.intent = SearchIntent(self.intent)


@dataclass
class Page(_Serializable):
    url: str
    page_type: str
    target_keywords: List[Keyword] = field(default_factory=list)
    location: Optional[str] = None


@dataclass
class ContentAnalysis(_Serializable):
    """Result of scoring a page's markup against its target keywords"""
    word_count: int = 0
    keyword_density: float = 0.0
    heading_counts: Dict[str, int] = field(default_factory=lambda: {"h1": 0, "h2": 0, "h3": 0})
    internal_links: int = 0
    external_links: int = 0
    content_score: int = 0
    readability_score: int = 0
    recommendations: List[str] = field(default_factory=list)
    reading_ease: float = 0.0

    def __post_init__(self):
        self.content_score = int(clamp(self.content_score, 0, 100))
        self.readability_score = int(clamp(self.readability_score, 0, 100))


@dataclass
class TrustScore(_Serializable):
    """E-A-T composite; overall is derived from the three group scores"""
    expertise: float
    authority: float
    trust: float
    overall: int = field(init=False)

    def __post_init__(self):
        self.expertise = clamp(self.expertise, 0, 100)
        self.authority = clamp(self.authority, 0, 100)
        self.trust = clamp(self.trust, 0, 100)
        self.overall = round_half_up(0.35 * self.expertise + 0.35 * self.authority + 0.30 * self.trust)


@dataclass
class MetaTags(_Serializable):
    title: str
    description: str
    keywords: str = ""
    canonical: str = ""
    og_tags: Dict[str, str] = field(default_factory=dict)
    twitter_tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class PageOptimizationResult(_Serializable):
    url: str
    score: int
    status: PageStatus = field(init=False)
    improvements: List[str] = field(default_factory=list)
    schemas: List[Dict[str, Any]] = field(default_factory=list)
    meta_tags: Optional[Dict[str, Any]] = None
    internal_links: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    eat_score: int = 0
    content_analysis: Optional[ContentAnalysis] = None

    def __post_init__(self):
        self.score = int(clamp(self.score, 0, 100))
        self.status = PageStatus.from_score(self.score)


@dataclass
class SubmissionPayload:
    """IndexNow request body"""
    host: str
    key: str
    key_location: str
    url_list: List[str]

    def to_wire(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "key": self.key,
            "keyLocation": self.key_location,
            "urlList": list(self.url_list),
        }


@dataclass
class SubmissionBatch:
    urls: List[str]
    engine: str
    payload: SubmissionPayload
    index: int = 0


@dataclass
class SubmissionResult(_Serializable):
    engine: str
    success: bool
    urls_submitted: int
    response_time_ms: int
    timestamp: str
    status_code: Optional[int] = None
    message: str = ""
    attempts: int = 0
    batch_index: int = 0
    urls_in_batch: int = 0

    def __post_init__(self):
        if not self.success:
            self.urls_submitted = 0


@dataclass
class EngineTally(_Serializable):
    success: int = 0
    failed: int = 0
    urls: int = 0


@dataclass
class SubmissionReport(_Serializable):
    total_submissions: int
    successful_submissions: int
    failed_submissions: int
    total_urls: int
    average_response_time: int
    success_rate: float
    engine_results: Dict[str, EngineTally] = field(default_factory=dict)


@dataclass
class SEOIssue(_Serializable):
    severity: Severity
    category: str
    description: str
    affected_pages: List[str] = field(default_factory=list)
    auto_fixable: bool = False
    solution: Optional[str] = None


@dataclass
class SEORecommendation(_Serializable):
    priority: Priority
    category: str
    title: str
    description: str
    expected_impact: str
    implementation: str


@dataclass
class SEOMetrics(_Serializable):
    page_speed: float
    mobile_score: float
    desktop_score: float
    accessibility: float
    best_practices: float
    seo: float


@dataclass
class EngineStatus(_Serializable):
    engine: str
    indexed: bool
    crawl_errors: int
    status: EngineHealth
    page_count: int = 0
    last_crawl: Optional[str] = None


@dataclass
class IndexingStats(_Serializable):
    total_pages: int = 0
    indexed_pages: int = 0
    pending_pages: int = 0
    error_pages: int = 0


@dataclass
class SEOHealthReport(_Serializable):
    timestamp: str
    overall_score: int
    status: HealthStatus
    metrics: SEOMetrics
    engine_statuses: List[EngineStatus]
    issues: List[SEOIssue]
    recommendations: List[SEORecommendation]
    indexing_stats: IndexingStats
    inconclusive_checks: List[str] = field(default_factory=list)


@dataclass
class RankingEstimate(_Serializable):
    estimated_position: int
    competitor_strength: str
    current_position: Optional[int] = None


@dataclass
class IndexingStatus(_Serializable):
    submitted: int = 0
    indexed: int = 0
    pending: int = 0


@dataclass
class OrchestrationReport(_Serializable):
    timestamp: str
    total_pages: int
    average_score: int
    status_counts: Dict[str, int]
    top_performing_pages: List[str]
    critical_issues: List[str]
    indexing_status: IndexingStatus
    eat_score: int
    estimated_ranking: Dict[str, RankingEstimate]
    failed_pages: int = 0
    failed_submissions: int = 0
