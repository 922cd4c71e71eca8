"""
Per-page optimisation: keywords, metadata, structured data, E-A-T and linking
"""
import logging
from typing import Optional

from content_scorer import ContentScorer
from keyword_catalog import KeywordCatalog
from metadata_builder import MetadataBuilder
from models import Page, PageOptimizationResult
from trust_scorer import TrustScorer, EATSignals, default_site_signals
from utils import clamp, round_half_up

logger = logging.getLogger(__name__)

TARGET_INTERNAL_LINKS = 5
EXCELLENT_THRESHOLD = 90

CONTENT_IMPROVEMENTS = [
    "Expand the content to 1500+ words",
    "Add more statistics and data points",
    "Use related (LSI) keywords",
]

EAT_IMPROVEMENTS = [
    "Add expert author biographies",
    "Show certifications and references",
    "Display more customer reviews",
]

LINKING_IMPROVEMENT = f"Add at least {TARGET_INTERNAL_LINKS} internal links"


class PageOptimizer:
    """Composes keyword, metadata, trust and content scoring into one page result"""

    def __init__(self, catalog: KeywordCatalog, content_scorer: ContentScorer = None,
                 trust_scorer: TrustScorer = None, metadata_builder: MetadataBuilder = None,
                 signals: EATSignals = None):
        self.catalog = catalog
        self.content_scorer = content_scorer or ContentScorer()
        self.trust_scorer = trust_scorer or TrustScorer()
        self.metadata_builder = metadata_builder or MetadataBuilder()
        self.signals = signals or default_site_signals()

    def optimize(self, page: Page, html: Optional[str] = None,
                 base_url: Optional[str] = None) -> PageOptimizationResult:
        """Optimise one page; a failing step is logged and scored as absent"""
        logger.info(f"Optimizing page {page.url} ({page.page_type})")

        keywords = list(page.target_keywords)
        if not keywords:
            try:
                keywords = self.catalog.get_page_keywords(page.page_type, page.location)
            except Exception as e:
                logger.error(f"Keyword lookup failed for {page.url}: {e}")
                keywords = []
        keyword_texts = [k.text for k in keywords]

        meta_tags = None
        try:
            meta_tags = self.metadata_builder.build_meta_tags(
                page.page_type, keywords, page.location, page.url
            )
        except Exception as e:
            logger.error(f"Metadata generation failed for {page.url}: {e}")

        schemas = []
        try:
            schemas = self.metadata_builder.build_schemas(
                page.page_type,
                {
                    'name': f"{page.location} {page.page_type}" if page.location else page.page_type,
                    'description': meta_tags.description if meta_tags else '',
                    'city': page.location,
                },
                page.url,
            )
        except Exception as e:
            logger.error(f"Schema generation failed for {page.url}: {e}")

        if schemas:
            try:
                schemas.append(self.trust_scorer.author_markup())
            except Exception as e:
                logger.error(f"Author markup unavailable for {page.url}: {e}")

        trust_content = None
        try:
            topic = meta_tags.title if meta_tags else page.page_type
            trust_content = self.trust_scorer.generate_trust_content(topic, page.location)
        except Exception as e:
            logger.error(f"Trust content generation failed for {page.url}: {e}")

        badges = []
        try:
            badges = self.trust_scorer.trust_badges()
        except Exception as e:
            logger.error(f"Trust badges unavailable for {page.url}: {e}")

        eat_score = 0
        try:
            eat_score = self.trust_scorer.score(self.signals).overall
        except Exception as e:
            logger.error(f"E-A-T scoring failed for {page.url}: {e}")

        internal_links = []
        try:
            internal_links = self.catalog.internal_links_for(page.url)
        except Exception as e:
            logger.error(f"Internal link lookup failed for {page.url}: {e}")

        score = self.calculate_page_score(
            has_keywords=bool(keywords),
            has_meta_tags=meta_tags is not None,
            has_schemas=bool(schemas),
            has_trust_content=bool(trust_content),
            has_trust_signals=bool(badges),
            eat_score=eat_score,
            internal_link_count=len(internal_links),
        )

        improvements = []
        if score < EXCELLENT_THRESHOLD:
            improvements.extend(CONTENT_IMPROVEMENTS)
        if eat_score < EXCELLENT_THRESHOLD:
            improvements.extend(EAT_IMPROVEMENTS)
        if len(internal_links) < TARGET_INTERNAL_LINKS:
            improvements.append(LINKING_IMPROVEMENT)

        content_analysis = None
        if html is not None:
            try:
                content_analysis = self.content_scorer.analyze(html, keywords, base_url)
                improvements.extend(content_analysis.recommendations)
            except Exception as e:
                logger.error(f"Content analysis failed for {page.url}: {e}")

        result = PageOptimizationResult(
            url=page.url,
            score=score,
            improvements=improvements,
            schemas=schemas,
            meta_tags=meta_tags.to_dict() if meta_tags else None,
            internal_links=internal_links,
            keywords=keyword_texts,
            eat_score=eat_score,
            content_analysis=content_analysis,
        )

        logger.info(f"Page {page.url} scored {result.score}/100 ({result.status.value})")
        return result

    @staticmethod
    def calculate_page_score(has_keywords: bool, has_meta_tags: bool, has_schemas: bool,
                             has_trust_content: bool, has_trust_signals: bool,
                             eat_score: float, internal_link_count: int) -> int:
        score = 0.0
        if has_keywords:
            score += 15
        if has_meta_tags:
            score += 20
        if has_schemas:
            score += 15
        if has_trust_content:
            score += 20
        if has_trust_signals:
            score += 10
        score += eat_score / 100 * 15
        score += min(TARGET_INTERNAL_LINKS, internal_link_count)
        return round_half_up(clamp(score, 0, 100))
