"""
Pytest configuration and shared fixtures
"""
import pytest
import os
import asyncio

# Add project root to path
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import SubmissionConfig, MonitorConfig, MetadataConfig, OrchestratorConfig
from keyword_catalog import KeywordCatalog

CATALOG_PATH = os.path.join(os.path.dirname(__file__), '..', 'sample_catalog.json')

CLEAN_PAGE = """
<html>
    <head>
        <title>Antalya Hotels - Example Travel</title>
        <meta name="description" content="Compare hotel prices in Antalya.">
        <link rel="canonical" href="https://example.com/">
    </head>
    <body>
        <h1>Antalya Hotels</h1>
        <h2>Beach resorts</h2>
        <p>Find the best hotels for your holiday.</p>
        <img src="pool.jpg" alt="Hotel pool">
    </body>
</html>
"""


class FakeClock:
    """Monotonic clock that only moves when a fake sleep is awaited"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeResponse:
    def __init__(self, status: int = 200, text: str = "", headers: dict = None, json_data=None):
        self.status = status
        self._text = text
        self.headers = headers or {}
        self._json = json_data

    async def text(self):
        return self._text

    async def json(self):
        return self._json


class _RequestContext:
    def __init__(self, produce):
        self._produce = produce

    async def __aenter__(self):
        result = self._produce()
        if asyncio.iscoroutine(result):
            result = await result
        if isinstance(result, BaseException):
            raise result
        return result

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession

    post_responses: list consumed in order (last one repeats), or a callable
    taking (url, kwargs). get_responses: dict of url -> FakeResponse or
    exception, with an optional default.
    """

    def __init__(self, post_responses=None, get_responses=None, get_default=None):
        self.post_responses = post_responses if post_responses is not None else [FakeResponse(200)]
        self.get_responses = get_responses or {}
        self.get_default = get_default or FakeResponse(200)
        self.posts = []
        self.gets = []
        self.closed = False

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))

        def produce():
            if callable(self.post_responses):
                return self.post_responses(url, kwargs)
            if len(self.post_responses) > 1:
                return self.post_responses.pop(0)
            return self.post_responses[0]
        return _RequestContext(produce)

    def get(self, url, **kwargs):
        self.gets.append((url, kwargs))
        return _RequestContext(lambda: self.get_responses.get(url, self.get_default))

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return KeywordCatalog.from_json_file(CATALOG_PATH)


@pytest.fixture
def single_engine_config():
    """One engine, fast retries"""
    return SubmissionConfig(
        engines={"bing": "https://www.bing.com/indexnow"},
        retry_delay=100,
        rate_limit=10,
    )


@pytest.fixture
def monitor_config():
    return MonitorConfig(search_engines=["google", "bing"], auto_fix=True, alert_threshold=70)


@pytest.fixture
def metadata_config():
    return MetadataConfig()


@pytest.fixture
def orchestrator_config():
    return OrchestratorConfig(
        base_url="https://example.com",
        indexnow_key="a" * 32,
        page_delay=0,
    )


@pytest.fixture
def clean_page():
    return CLEAN_PAGE
