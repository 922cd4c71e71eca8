"""
Content scoring for page markup against target keywords
"""
import logging
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from textstat import flesch_reading_ease

from models import ContentAnalysis, Keyword
from utils import round_half_up

logger = logging.getLogger(__name__)

IDEAL_WORD_COUNT = 1500
MIN_WORD_COUNT = 300
THIN_WORD_COUNT = 800
TARGET_INTERNAL_LINKS = 5


class ContentScorer:
    """Scores rendered page markup: length, keyword density, headings and links"""

    def analyze(self, html: Optional[str], target_keywords: List = None,
                base_url: Optional[str] = None) -> ContentAnalysis:
        """Analyze markup and return a ContentAnalysis; malformed input yields zero counts"""
        keywords = [self._keyword_text(k) for k in (target_keywords or [])]
        keywords = [k for k in keywords if k]

        try:
            soup = BeautifulSoup(html or "", "html.parser")
        except Exception as e:
            logger.warning(f"Could not parse page markup, scoring as empty: {e}")
            soup = BeautifulSoup("", "html.parser")

        heading_counts = {
            'h1': len(soup.find_all('h1')),
            'h2': len(soup.find_all('h2')),
            'h3': len(soup.find_all('h3')),
        }
        internal_links, external_links = self._count_links(soup, base_url)

        text = self._extract_clean_text(soup)
        word_count = len(text.split())
        keyword_density = self._calculate_keyword_density(text, keywords, word_count)

        content_score = self._calculate_content_score(
            word_count, keyword_density, heading_counts, internal_links
        )
        readability_score = self._calculate_readability_score(word_count, heading_counts)
        recommendations = self._build_recommendations(
            word_count, keyword_density, heading_counts, internal_links, external_links
        )

        analysis = ContentAnalysis(
            word_count=word_count,
            keyword_density=keyword_density,
            heading_counts=heading_counts,
            internal_links=internal_links,
            external_links=external_links,
            content_score=round_half_up(content_score),
            readability_score=round_half_up(readability_score),
            recommendations=recommendations,
            reading_ease=self._calculate_reading_ease(text, word_count),
        )

        logger.debug(f"Scored {word_count} words, {internal_links} internal links, "
                     f"content score {analysis.content_score}")
        return analysis

    def _keyword_text(self, keyword) -> str:
        if isinstance(keyword, Keyword):
            return keyword.text.strip()
        return str(keyword or "").strip()

    def _count_links(self, soup, base_url: Optional[str]) -> Tuple[int, int]:
        """Count internal and external links"""
        internal_count = 0
        external_count = 0
        domain = urlparse(base_url).netloc if base_url else ""

        for link in soup.find_all('a', href=True):
            href = link['href']
            if href.startswith('http'):
                if domain and urlparse(href).netloc == domain:
                    internal_count += 1
                else:
                    external_count += 1
            elif href.startswith('/') and not href.startswith('//'):
                internal_count += 1

        return internal_count, external_count

    def _extract_clean_text(self, soup) -> str:
        """Extract clean text content"""
        for script in soup(["script", "style"]):
            script.decompose()

        text = soup.get_text(separator=' ')

        lines = (line.strip() for line in text.splitlines())
        chunks = (phrase.strip() for line in lines for phrase in line.split("  "))
        return ' '.join(chunk for chunk in chunks if chunk)

    def _calculate_keyword_density(self, text: str, keywords: List[str], word_count: int) -> float:
        """Total keyword hits as a percentage of the word count"""
        if not keywords or word_count == 0:
            return 0.0

        lowered = text.lower()
        hits = sum(lowered.count(keyword.lower()) for keyword in keywords)
        return round(hits / word_count * 100, 2)

    def _calculate_content_score(self, word_count: int, density: float,
                                 headings: dict, internal_links: int) -> float:
        score = min(30.0, word_count / IDEAL_WORD_COUNT * 30)
        score += 30 if 1 <= density <= 2 else 15
        score += 20 if headings['h1'] == 1 else 0
        score += 10 if headings['h2'] >= 3 else 5
        score += min(TARGET_INTERNAL_LINKS, internal_links) / TARGET_INTERNAL_LINKS * 10
        return max(0.0, min(100.0, score))

    def _calculate_readability_score(self, word_count: int, headings: dict) -> float:
        score = 0
        if word_count >= MIN_WORD_COUNT:
            score += 40
        if headings['h2'] >= 3:
            score += 30
        if headings['h3'] >= 5:
            score += 30
        return score

    def _calculate_reading_ease(self, text: str, word_count: int) -> float:
        """Flesch reading ease, informational only"""
        if word_count == 0:
            return 0.0
        try:
            return float(flesch_reading_ease(text))
        except Exception as e:
            logger.debug(f"Reading ease unavailable: {e}")
            return 0.0

    def _build_recommendations(self, word_count: int, density: float, headings: dict,
                               internal_links: int, external_links: int) -> List[str]:
        recommendations = []

        if headings['h1'] == 0:
            recommendations.append("Missing H1 heading - add exactly one H1")
        elif headings['h1'] > 1:
            recommendations.append("Multiple H1 headings - keep only one per page")

        if word_count < MIN_WORD_COUNT:
            recommendations.append(f"Content too short - write at least {THIN_WORD_COUNT} words")
        elif word_count < THIN_WORD_COUNT:
            recommendations.append(f"Thin content - {IDEAL_WORD_COUNT}+ words is ideal")

        if density < 0.5:
            recommendations.append("Keyword density too low - aim for 1-2%")
        elif density > 3:
            recommendations.append("Keyword stuffing risk - keep density below 2%")

        if headings['h2'] < 3:
            recommendations.append("Add at least 3 H2 subheadings to structure the content")

        if internal_links < 3:
            recommendations.append(f"Low internal linking - add at least {TARGET_INTERNAL_LINKS} internal links")

        if external_links == 0:
            recommendations.append("No external links - cite 2-3 authoritative sources")

        return recommendations
