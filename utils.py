"""
Utility functions shared by the scoring, submission and monitoring modules
"""
import math
import re
import time
import logging
from typing import List, Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def validate_url(url: str) -> bool:
    """Validate if a URL is properly formatted"""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def strip_scheme(url: str) -> str:
    """Host part of a base URL as IndexNow expects it (no scheme, no trailing slash)"""
    return re.sub(r'^https?://', '', url or '').rstrip('/')


def join_url(base_url: str, path: str) -> str:
    """Join a site base URL and a root-relative path without doubling slashes"""
    if not path:
        return base_url.rstrip('/')
    if path.startswith('http://') or path.startswith('https://'):
        return path
    if path == '/':
        return base_url.rstrip('/') + '/'
    return base_url.rstrip('/') + '/' + path.lstrip('/')


def chunk_list(items: List[Any], size: int) -> List[List[Any]]:
    """Split items into consecutive chunks of at most size, preserving order"""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() is banker's rounding)"""
    return int(math.floor(value + 0.5))


class PerformanceMonitor:
    """Monitor and log performance metrics"""

    def __init__(self):
        self.metrics = {}
        self.perf_logger = logging.getLogger('performance')

    def start_timer(self, operation: str):
        """Start timing an operation"""
        self.metrics[operation] = {'start': time.time()}

    def end_timer(self, operation: str) -> float:
        """End timing and log results"""
        if operation in self.metrics and 'start' in self.metrics[operation]:
            duration = time.time() - self.metrics[operation]['start']
            self.metrics[operation]['duration'] = duration
            self.perf_logger.info(f"Operation '{operation}' completed in {duration:.2f} seconds")
            return duration
        return 0
