"""
Keyword catalog: target keywords per page type and location, with search
volume, difficulty and intent, plus the internal linking map
"""
import json
import logging
from typing import List, Dict, Any, Optional

from models import Keyword, Difficulty

logger = logging.getLogger(__name__)


class KeywordCatalog:
    """Read-only lookup over keyword data supplied by the caller

    Expected data layout (JSON or dict)::

        {
          "keywords": {"antalya hotels": {"search_volume": 50000,
                                          "difficulty": "hard",
                                          "intent": "commercial"}},
          "page_keywords": {"hotels": ["antalya hotels", ...]},
          "location_patterns": ["{location} hotels", "{location} tours"],
          "general_keywords": ["holiday planner", ...],
          "internal_links": {"/": ["/hotels", "/tours"]},
          "tracked_keywords": ["antalya hotels"]
        }
    """

    def __init__(self, keywords: Dict[str, Keyword] = None,
                 page_keywords: Dict[str, List[str]] = None,
                 location_patterns: List[str] = None,
                 general_keywords: List[str] = None,
                 internal_links: Dict[str, List[str]] = None,
                 tracked_keywords: List[str] = None):
        self.keywords = {k.lower(): v for k, v in (keywords or {}).items()}
        self.page_keywords = page_keywords or {}
        self.location_patterns = location_patterns or []
        self.general_keywords = general_keywords or []
        self.internal_links = internal_links or {}
        self.tracked_keywords = tracked_keywords or []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeywordCatalog":
        keywords = {}
        for text, info in (data.get("keywords") or {}).items():
            info = info or {}
            try:
                keywords[text] = Keyword(
                    text=text,
                    search_volume=info.get("search_volume", 0),
                    difficulty=info.get("difficulty", "medium"),
                    intent=info.get("intent", "informational"),
                )
            except ValueError as e:
                logger.warning(f"Skipping keyword '{text}' with invalid data: {e}")

        return cls(
            keywords=keywords,
            page_keywords=data.get("page_keywords"),
            location_patterns=data.get("location_patterns"),
            general_keywords=data.get("general_keywords"),
            internal_links=data.get("internal_links"),
            tracked_keywords=data.get("tracked_keywords"),
        )

    @classmethod
    def from_json_file(cls, path: str) -> "KeywordCatalog":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        catalog = cls.from_dict(data)
        logger.info(f"Loaded keyword catalog from {path}: {len(catalog.keywords)} keywords")
        return catalog

    def get(self, text: str) -> Keyword:
        """Catalog entry for a keyword, or a zero-volume medium-difficulty default"""
        known = self.keywords.get(text.lower())
        if known:
            return known
        return Keyword(text=text)

    def difficulty_for(self, text: str) -> Difficulty:
        return self.get(text).difficulty

    def get_page_keywords(self, page_type: str, location: Optional[str] = None) -> List[Keyword]:
        """Keywords for a page: location patterns first, then page-type, then general"""
        texts: List[str] = []

        if location:
            texts.extend(pattern.format(location=location) for pattern in self.location_patterns)

        texts.extend(self.page_keywords.get(page_type, []))
        texts.extend(self.general_keywords)

        seen = set()
        keywords = []
        for text in texts:
            key = text.lower()
            if key in seen:
                continue
            seen.add(key)
            keywords.append(self.get(text))
        return keywords

    def internal_links_for(self, url: str) -> List[str]:
        return list(self.internal_links.get(url, []))

    def total_keywords(self) -> int:
        return len(self.keywords)

    def total_search_volume(self) -> int:
        return sum(k.search_volume for k in self.keywords.values())
