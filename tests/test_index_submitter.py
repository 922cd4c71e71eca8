"""
Tests for IndexNow submission: batching, rate limiting, retries and cancellation
"""
import asyncio
import json
import logging
import re

import aiohttp
import pytest

from config import SubmissionConfig
from exceptions import ValidationError
from index_submitter import SubmissionClient, EngineRateLimiter
from models import SubmissionResult

from conftest import FakeClock, FakeResponse, FakeSession

KEY = "0123456789abcdef0123456789abcdef"
HOST = "https://example.com"


def make_urls(count):
    return [f"https://example.com/page-{i}" for i in range(count)]


def make_client(config, session, clock=None):
    clock = clock or FakeClock()
    return SubmissionClient(config, session=session, sleep=clock.sleep, clock=clock), clock


async def hang():
    await asyncio.Event().wait()


class TestBatching:

    def test_batches_preserve_order(self, single_engine_config):
        client, _ = make_client(single_engine_config, FakeSession())
        urls = make_urls(250)
        batches = client.create_batches(urls, "bing", HOST, KEY)

        assert [len(b.urls) for b in batches] == [100, 100, 50]
        assert [b.index for b in batches] == [0, 1, 2]
        assert [u for b in batches for u in b.urls] == urls

    def test_payload_wire_format(self, single_engine_config):
        client, _ = make_client(single_engine_config, FakeSession())
        payload = client.build_payload(["https://example.com/a"], "https://example.com/", KEY)

        assert payload.to_wire() == {
            "host": "example.com",
            "key": KEY,
            "keyLocation": "https://example.com/indexnow-key.txt",
            "urlList": ["https://example.com/a"],
        }

    def test_generate_secure_key(self):
        key = SubmissionClient.generate_secure_key()
        assert re.fullmatch(r"[0-9a-f]{64}", key)
        assert key != SubmissionClient.generate_secure_key()


class TestValidation:

    @pytest.mark.parametrize("urls,key", [
        ([], KEY),
        (["not-a-url"], KEY),
        (["https://example.com/a", "/relative"], KEY),
        (["https://example.com/a"], ""),
        (["https://example.com/a"], "   "),
    ])
    def test_rejected_before_network(self, single_engine_config, urls, key):
        session = FakeSession()
        client, _ = make_client(single_engine_config, session)

        with pytest.raises(ValidationError):
            asyncio.run(client.submit_to_all_engines(urls, HOST, key))
        assert session.posts == []

    def test_config_rejects_bad_values(self):
        with pytest.raises(ValueError):
            SubmissionConfig(batch_size=0)
        with pytest.raises(ValueError):
            SubmissionConfig(rate_limit=0)


class TestSubmission:

    def test_all_batches_accepted(self, single_engine_config):
        session = FakeSession()
        client, clock = make_client(single_engine_config, session)

        results = asyncio.run(client.submit_to_all_engines(make_urls(250), HOST, KEY))

        assert [r.batch_index for r in results] == [0, 1, 2]
        assert all(r.success for r in results)
        assert sum(r.urls_submitted for r in results) == 250
        assert all(r.attempts == 1 for r in results)
        assert results[0].message == "Submitted successfully"
        # 60s / 10 requests per minute between consecutive batches
        assert clock.sleeps == [6.0, 6.0]

    def test_request_body_and_headers(self, single_engine_config):
        session = FakeSession()
        client, _ = make_client(single_engine_config, session)

        asyncio.run(client.submit_to_all_engines(make_urls(2), HOST, KEY))

        url, kwargs = session.posts[0]
        assert url == "https://www.bing.com/indexnow"
        body = json.loads(kwargs["data"].decode("utf-8"))
        assert body["host"] == "example.com"
        assert body["urlList"] == make_urls(2)
        headers = kwargs["headers"]
        assert headers["Content-Type"].startswith("application/json")
        assert headers["Content-Length"] == str(len(kwargs["data"]))
        for name in ("User-Agent", "Accept", "Accept-Encoding"):
            assert name in headers

    def test_results_ordered_by_engine_then_batch(self):
        session = FakeSession()
        client, _ = make_client(SubmissionConfig(), session)

        results = asyncio.run(client.submit_to_all_engines(make_urls(150), HOST, KEY))

        engines = list(SubmissionConfig().engines)
        assert [(r.engine, r.batch_index) for r in results] == [
            (engine, index) for engine in engines for index in (0, 1)
        ]
        shared = [url for url, _ in session.posts if url == "https://api.indexnow.org/indexnow"]
        assert len(shared) == 4

    def test_resubmission_sends_identical_payloads(self, single_engine_config):
        session = FakeSession()
        client, _ = make_client(single_engine_config, session)
        urls = make_urls(120)

        first = asyncio.run(client.submit_to_all_engines(urls, HOST, KEY))
        second = asyncio.run(client.submit_to_all_engines(urls, HOST, KEY))

        assert [r.urls_submitted for r in first] == [r.urls_submitted for r in second]
        bodies = [kwargs["data"] for _, kwargs in session.posts]
        assert bodies[:2] == bodies[2:]

    def test_stream_yields_every_result(self, single_engine_config):
        client, _ = make_client(single_engine_config, FakeSession())

        async def collect():
            return [r async for r in client.stream_submissions(make_urls(250), HOST, KEY)]

        results = asyncio.run(collect())
        assert sorted(r.batch_index for r in results) == [0, 1, 2]
        assert all(r.success for r in results)


class TestRetries:

    def test_server_errors_exhaust_retries(self, single_engine_config):
        session = FakeSession([FakeResponse(500, "boom")])
        client, clock = make_client(single_engine_config, session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY))

        assert result.success is False
        assert result.urls_submitted == 0
        assert result.status_code == 500
        assert result.attempts == single_engine_config.max_retries + 1
        assert result.message.startswith("Failed: HTTP 500")
        assert clock.sleeps == pytest.approx([0.1, 0.2, 0.3])

    def test_recovers_after_transient_error(self, single_engine_config):
        session = FakeSession([FakeResponse(503), FakeResponse(408), FakeResponse(200)])
        client, clock = make_client(single_engine_config, session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(3), HOST, KEY))

        assert result.success is True
        assert result.urls_submitted == 3
        assert result.attempts == 3
        assert clock.sleeps == pytest.approx([0.1, 0.2])

    def test_rate_limited_honours_retry_after(self, single_engine_config):
        session = FakeSession([FakeResponse(429, headers={"Retry-After": "5"}), FakeResponse(200)])
        client, clock = make_client(single_engine_config, session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY))

        assert result.success is True
        assert clock.sleeps == [5.0]

    def test_rate_limited_without_header_waits_default(self, single_engine_config):
        session = FakeSession([FakeResponse(429), FakeResponse(200)])
        client, clock = make_client(single_engine_config, session)

        asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY))
        assert clock.sleeps == [60]

    def test_client_error_not_retried(self, single_engine_config):
        session = FakeSession([FakeResponse(404, "not found"), FakeResponse(200)])
        client, clock = make_client(single_engine_config, session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY))

        assert result.success is False
        assert result.status_code == 404
        assert result.attempts == 1
        assert len(session.posts) == 1
        assert clock.sleeps == []

    def test_connection_error_is_retried(self, single_engine_config):
        session = FakeSession([aiohttp.ClientConnectionError("reset"), FakeResponse(200)])
        client, clock = make_client(single_engine_config, session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY))

        assert result.success is True
        assert result.attempts == 2
        assert clock.sleeps == pytest.approx([0.1])

    def test_request_timeout_is_network_error(self):
        config = SubmissionConfig(engines={"bing": "https://www.bing.com/indexnow"},
                                  timeout=50, max_retries=0)
        session = FakeSession(lambda url, kwargs: hang())
        client, _ = make_client(config, session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY))

        assert result.success is False
        assert "timed out after 50ms" in result.message


class TestCancellation:

    def test_cancelled_before_start(self, single_engine_config):
        session = FakeSession()
        client, _ = make_client(single_engine_config, session)

        async def run():
            event = asyncio.Event()
            event.set()
            return await client.submit_to_all_engines(make_urls(150), HOST, KEY, cancel_event=event)

        results = asyncio.run(run())

        assert len(results) == 2
        assert all(not r.success for r in results)
        assert all(r.message == "Cancelled before sending" for r in results)
        assert session.posts == []

    def test_cancel_interrupts_in_flight_request(self, single_engine_config):
        session = FakeSession(lambda url, kwargs: hang())
        client, _ = make_client(single_engine_config, session)

        async def run():
            event = asyncio.Event()
            asyncio.get_event_loop().call_later(0.01, event.set)
            return await client.submit_to_all_engines(make_urls(150), HOST, KEY, cancel_event=event)

        results = asyncio.run(run())

        assert [r.message for r in results] == [
            "Cancelled: request interrupted",
            "Cancelled before sending",
        ]
        assert [r.urls_in_batch for r in results] == [100, 50]

    def test_task_cancellation_stops_in_flight_request(self, single_engine_config):
        state = {"request_cancelled": False}

        async def slow_post():
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                state["request_cancelled"] = True
                raise

        session = FakeSession(lambda url, kwargs: slow_post())
        client, _ = make_client(single_engine_config, session)

        async def run():
            task = asyncio.ensure_future(client.submit_to_all_engines(make_urls(1), HOST, KEY))
            while not session.posts:
                await asyncio.sleep(0)
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            for _ in range(3):
                await asyncio.sleep(0)
            return state["request_cancelled"]

        assert asyncio.run(run()) is True

    def test_deadline_stops_retry_wait(self, single_engine_config):
        session = FakeSession([FakeResponse(429, headers={"Retry-After": "3600"})])
        client = SubmissionClient(single_engine_config, session=session)

        [result] = asyncio.run(client.submit_to_all_engines(make_urls(1), HOST, KEY, deadline=0.05))

        assert result.success is False
        assert result.status_code == 429
        assert result.attempts == 1
        assert result.message == "Cancelled: wait interrupted"


class TestRateLimiter:

    def test_engines_have_independent_timelines(self):
        clock = FakeClock()
        limiter = EngineRateLimiter(rate_limit=30, clock=clock)

        async def run():
            await limiter.acquire("bing", clock.sleep)
            await limiter.acquire("yandex", clock.sleep)
            await limiter.acquire("bing", clock.sleep)

        asyncio.run(run())
        assert limiter.interval == 2.0
        assert clock.sleeps == [2.0]

    def test_partially_elapsed_interval(self):
        clock = FakeClock()
        limiter = EngineRateLimiter(rate_limit=10, clock=clock)

        async def run():
            await limiter.acquire("bing", clock.sleep)
            clock.now += 2
            await limiter.acquire("bing", clock.sleep)

        asyncio.run(run())
        assert clock.sleeps == [4.0]

    def test_no_wait_after_interval_elapsed(self):
        clock = FakeClock()
        limiter = EngineRateLimiter(rate_limit=10, clock=clock)

        async def run():
            await limiter.acquire("bing", clock.sleep)
            clock.now += 10
            await limiter.acquire("bing", clock.sleep)

        asyncio.run(run())
        assert clock.sleeps == []


class TestAliasesAndSession:

    def test_aliased_endpoints_warned(self, caplog):
        with caplog.at_level(logging.WARNING, logger="index_submitter"):
            client = SubmissionClient(SubmissionConfig(), session=FakeSession())

        assert client.find_aliased_endpoints() == {
            "https://api.indexnow.org/indexnow": ["bing", "indexnow"]
        }
        assert "share endpoint" in caplog.text

    def test_context_manager_closes_own_session_only(self, single_engine_config):
        injected = FakeSession()

        async def run():
            async with SubmissionClient(single_engine_config, session=injected):
                pass
            client = SubmissionClient(single_engine_config)
            async with client:
                owned = client.session
                assert owned is not None
            return client, owned

        client, owned = asyncio.run(run())
        assert injected.closed is False
        assert client.session is None
        assert owned.closed is True


class TestReport:

    def test_generate_report(self):
        results = [
            SubmissionResult("bing", True, 100, 200, "t", 200, batch_index=0),
            SubmissionResult("bing", False, 50, 0, "t", 500, batch_index=1),
            SubmissionResult("yandex", True, 50, 100, "t", 202),
        ]
        report = SubmissionClient.generate_report(results)

        assert report.total_submissions == 3
        assert report.successful_submissions == 2
        assert report.failed_submissions == 1
        assert report.total_urls == 150
        assert report.average_response_time == 150
        assert report.success_rate == 66.67
        assert report.engine_results["bing"].success == 1
        assert report.engine_results["bing"].failed == 1
        assert report.engine_results["bing"].urls == 100
        assert report.to_dict()["engine_results"]["yandex"]["urls"] == 50

    def test_failed_result_reports_no_urls(self):
        assert SubmissionResult("bing", False, 50, 0, "t").urls_submitted == 0

    def test_empty_report(self):
        report = SubmissionClient.generate_report([])
        assert report.total_submissions == 0
        assert report.success_rate == 0.0
        assert report.average_response_time == 0
