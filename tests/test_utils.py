"""
Tests for utility functions
"""
import pytest
from unittest.mock import patch

from utils import (
    validate_url, strip_scheme, join_url, chunk_list, clamp, round_half_up, PerformanceMonitor
)


class TestUrlHelpers:

    def test_validate_url_valid_urls(self):
        valid_urls = [
            "https://example.com",
            "http://example.com",
            "https://www.example.com/path",
            "https://subdomain.example.com/path?query=value",
        ]
        for url in valid_urls:
            assert validate_url(url) is True

    def test_validate_url_invalid_urls(self):
        invalid_urls = ["not-a-url", "ftp://example.com", "://example.com", "", "/hotels"]
        for url in invalid_urls:
            assert validate_url(url) is False

    def test_strip_scheme(self):
        assert strip_scheme("https://example.com/") == "example.com"
        assert strip_scheme("http://example.com") == "example.com"
        assert strip_scheme("") == ""

    def test_join_url(self):
        assert join_url("https://example.com/", "/hotels") == "https://example.com/hotels"
        assert join_url("https://example.com", "hotels") == "https://example.com/hotels"
        assert join_url("https://example.com", "/") == "https://example.com/"
        assert join_url("https://example.com", "https://other.com/x") == "https://other.com/x"


class TestNumericHelpers:

    def test_chunk_list_preserves_order(self):
        items = list(range(7))
        chunks = chunk_list(items, 3)
        assert chunks == [[0, 1, 2], [3, 4, 5], [6]]
        assert [i for chunk in chunks for i in chunk] == items

    def test_chunk_list_rejects_zero_size(self):
        with pytest.raises(ValueError):
            chunk_list([1], 0)

    def test_clamp(self):
        assert clamp(120, 0, 100) == 100
        assert clamp(-5, 0, 100) == 0
        assert clamp(42.5, 0, 100) == 42.5

    def test_round_half_up(self):
        assert round_half_up(72.5) == 73
        assert round_half_up(81.495) == 81
        assert round_half_up(0.5) == 1
        assert round_half_up(2.4999) == 2


class TestPerformanceMonitor:

    def test_timer_records_duration(self):
        monitor = PerformanceMonitor()
        with patch('utils.time.time', side_effect=[10.0, 12.5]):
            monitor.start_timer("health_check")
            duration = monitor.end_timer("health_check")

        assert duration == 2.5
        assert monitor.metrics["health_check"]["duration"] == 2.5

    def test_end_timer_without_start(self):
        monitor = PerformanceMonitor()
        assert monitor.end_timer("unknown") == 0
