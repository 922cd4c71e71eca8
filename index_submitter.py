"""
IndexNow URL submission: batching, per-engine rate limiting and retry/backoff
"""
import asyncio
import json
import logging
import secrets
import time
from datetime import datetime
from enum import Enum
from typing import List, Dict, Optional, Callable, AsyncIterator, Awaitable

import aiohttp

from config import SubmissionConfig
from exceptions import (
    ValidationError, SubmissionError, RateLimited, TransientServerError,
    NetworkError, PermanentClientError, SubmissionCancelled,
)
from models import (
    SubmissionPayload, SubmissionBatch, SubmissionResult, SubmissionReport, EngineTally,
)
from utils import validate_url, strip_scheme, chunk_list, PerformanceMonitor

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60  # seconds, when a 429 carries no usable Retry-After


class RequestState(Enum):
    ATTEMPT = "attempt"
    WAIT = "wait"
    DONE = "done"
    FAIL = "fail"


class EngineRateLimiter:
    """Spaces consecutive batch requests to the same engine by 60/rate_limit seconds"""

    def __init__(self, rate_limit: int, clock: Callable[[], float] = time.monotonic):
        self.interval = 60.0 / rate_limit
        self.clock = clock
        self.last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, engine: str) -> asyncio.Lock:
        if engine not in self._locks:
            self._locks[engine] = asyncio.Lock()
        return self._locks[engine]

    async def acquire(self, engine: str, wait: Callable[[float], Awaitable[None]]):
        """Wait out the remaining interval for engine, then stamp the request time"""
        async with self._lock_for(engine):
            last = self.last_request.get(engine)
            if last is not None:
                elapsed = self.clock() - last
                if elapsed < self.interval:
                    remaining = self.interval - elapsed
                    logger.debug(f"Rate limit for {engine}: waiting {remaining * 1000:.0f}ms")
                    await wait(remaining)
            self.last_request[engine] = self.clock()


class SubmissionClient:
    """Submits URL lists to every configured IndexNow engine

    Use as an async context manager so the aiohttp session is closed::

        async with SubmissionClient(config.submission) as client:
            results = await client.submit_to_all_engines(urls, "https://example.com", key)
    """

    def __init__(self, config: SubmissionConfig = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or SubmissionConfig()
        self.engines = dict(self.config.engines)
        self.session = session
        self._owns_session = False
        self.sleep = sleep
        self.clock = clock
        self.rate_limiter = EngineRateLimiter(self.config.rate_limit, clock)
        self.performance_monitor = PerformanceMonitor()

        for endpoint, names in self.find_aliased_endpoints().items():
            logger.warning(f"Engines {', '.join(names)} share endpoint {endpoint}; "
                           f"each will receive its own submission")

    def _new_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            limit=len(self.engines) * 2 or 10,
            ttl_dns_cache=300,
            use_dns_cache=True
        )
        return aiohttp.ClientSession(connector=connector)

    async def __aenter__(self):
        if self.session is None:
            self.session = self._new_session()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self.session:
            await self.session.close()
            self.session = None
            self._owns_session = False

    @staticmethod
    def generate_secure_key() -> str:
        """64 hex character IndexNow key"""
        return secrets.token_hex(32)

    def find_aliased_endpoints(self) -> Dict[str, List[str]]:
        """Endpoint URLs configured under more than one engine name"""
        by_endpoint: Dict[str, List[str]] = {}
        for name, endpoint in self.engines.items():
            by_endpoint.setdefault(endpoint, []).append(name)
        return {endpoint: names for endpoint, names in by_endpoint.items() if len(names) > 1}

    def validate(self, urls: List[str], key: str):
        if not urls:
            raise ValidationError("URL list is empty")
        if not key or not key.strip():
            raise ValidationError("IndexNow key is empty")
        invalid = [url for url in urls if not validate_url(url)]
        if invalid:
            raise ValidationError(f"Malformed URL(s): {', '.join(invalid[:5])}")

    def build_payload(self, urls: List[str], base_url: str, key: str) -> SubmissionPayload:
        base = base_url.rstrip('/')
        return SubmissionPayload(
            host=strip_scheme(base),
            key=key,
            key_location=base + self.config.key_location_path,
            url_list=list(urls),
        )

    def create_batches(self, urls: List[str], engine: str, base_url: str, key: str) -> List[SubmissionBatch]:
        return [
            SubmissionBatch(
                urls=chunk,
                engine=engine,
                payload=self.build_payload(chunk, base_url, key),
                index=i,
            )
            for i, chunk in enumerate(chunk_list(urls, self.config.batch_size))
        ]

    async def submit_to_all_engines(self, urls: List[str], host: str, key: str,
                                    cancel_event: Optional[asyncio.Event] = None,
                                    deadline: Optional[float] = None) -> List[SubmissionResult]:
        """Submit urls to every engine; returns results by engine order then batch index

        host is the site base URL. cancel_event or deadline (seconds) stop the run;
        batches not completed by then come back as failed results.
        """
        self.validate(urls, key)
        if self.session is not None:
            return await self._submit(self.session, urls, host, key, cancel_event, deadline)
        async with self._new_session() as session:
            return await self._submit(session, urls, host, key, cancel_event, deadline)

    async def stream_submissions(self, urls: List[str], host: str, key: str,
                                 cancel_event: Optional[asyncio.Event] = None,
                                 deadline: Optional[float] = None) -> AsyncIterator[SubmissionResult]:
        """Yield each SubmissionResult as soon as its batch finishes"""
        self.validate(urls, key)
        queue: asyncio.Queue = asyncio.Queue()

        async def run():
            if self.session is not None:
                return await self._submit(self.session, urls, host, key, cancel_event, deadline, queue.put_nowait)
            async with self._new_session() as session:
                return await self._submit(session, urls, host, key, cancel_event, deadline, queue.put_nowait)

        task = asyncio.ensure_future(run())
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield getter.result()
                    continue
                getter.cancel()
                while not queue.empty():
                    yield queue.get_nowait()
                task.result()
                break
        finally:
            if not task.done():
                task.cancel()

    async def _submit(self, session, urls, host, key, cancel_event, deadline, on_result=None) -> List[SubmissionResult]:
        self.performance_monitor.start_timer("indexnow_submission")
        cancelled = asyncio.Event()
        loop = asyncio.get_event_loop()

        timer = loop.call_later(deadline, cancelled.set) if deadline is not None else None
        watcher = None
        if cancel_event is not None:
            async def forward_cancel():
                await cancel_event.wait()
                cancelled.set()
            watcher = asyncio.ensure_future(forward_cancel())

        logger.info(f"Submitting {len(urls)} URLs to {len(self.engines)} engines "
                    f"in batches of {self.config.batch_size}")
        try:
            per_engine = await asyncio.gather(*[
                self._submit_engine(session, name, endpoint, self.create_batches(urls, name, host, key),
                                    cancelled, on_result)
                for name, endpoint in self.engines.items()
            ])
        finally:
            if timer is not None:
                timer.cancel()
            if watcher is not None:
                watcher.cancel()

        results = [result for engine_results in per_engine for result in engine_results]
        order = {name: i for i, name in enumerate(self.engines)}
        results.sort(key=lambda r: (order.get(r.engine, len(order)), r.batch_index))

        self.performance_monitor.end_timer("indexnow_submission")
        successful = sum(1 for r in results if r.success)
        logger.info(f"Submission finished: {successful}/{len(results)} batches accepted")
        return results

    async def _submit_engine(self, session, engine: str, endpoint: str, batches: List[SubmissionBatch],
                             cancelled: asyncio.Event, on_result=None) -> List[SubmissionResult]:
        results = []
        for batch in batches:
            if cancelled.is_set():
                result = self._failed_result(batch, "Cancelled before sending", attempts=0)
            else:
                try:
                    await self.rate_limiter.acquire(engine, lambda s: self._wait(s, cancelled))
                    result = await self._submit_batch(session, batch, endpoint, cancelled)
                except SubmissionCancelled as e:
                    result = self._failed_result(batch, f"Cancelled: {e}", attempts=0)

            if result.success:
                logger.info(f"{engine}: {result.urls_submitted} URLs submitted "
                            f"(batch {batch.index}, {result.response_time_ms}ms)")
            else:
                logger.warning(f"{engine}: batch {batch.index} failed - {result.message}")

            results.append(result)
            if on_result is not None:
                on_result(result)
        return results

    async def _submit_batch(self, session, batch: SubmissionBatch, endpoint: str,
                            cancelled: asyncio.Event) -> SubmissionResult:
        """Run the ATTEMPT/WAIT/DONE/FAIL state machine for one batch"""
        start = self.clock()
        state = RequestState.ATTEMPT
        retries = 0
        attempts = 0
        delay = 0.0
        status_code = None
        error: Optional[SubmissionError] = None

        while True:
            if state is RequestState.ATTEMPT:
                attempts += 1
                try:
                    status_code = await self._send(session, endpoint, batch.payload, cancelled)
                    state = RequestState.DONE
                except SubmissionError as e:
                    error = e
                    status_code = e.status_code
                    if not e.retryable or retries >= self.config.max_retries:
                        state = RequestState.FAIL
                    else:
                        if isinstance(e, RateLimited):
                            delay = e.retry_after
                        else:
                            delay = self.config.retry_delay * (retries + 1) / 1000
                        logger.debug(f"{batch.engine}: {e}; retrying in {delay * 1000:.0f}ms")
                        state = RequestState.WAIT

            elif state is RequestState.WAIT:
                try:
                    await self._wait(delay, cancelled)
                except SubmissionCancelled as e:
                    error = e
                    state = RequestState.FAIL
                    continue
                retries += 1
                state = RequestState.ATTEMPT

            elif state is RequestState.DONE:
                return SubmissionResult(
                    engine=batch.engine,
                    success=True,
                    urls_submitted=len(batch.urls),
                    response_time_ms=self._elapsed_ms(start),
                    timestamp=datetime.now().isoformat(),
                    status_code=status_code,
                    message="Submitted successfully",
                    attempts=attempts,
                    batch_index=batch.index,
                    urls_in_batch=len(batch.urls),
                )

            else:
                prefix = "Cancelled" if isinstance(error, SubmissionCancelled) else "Failed"
                return SubmissionResult(
                    engine=batch.engine,
                    success=False,
                    urls_submitted=0,
                    response_time_ms=self._elapsed_ms(start),
                    timestamp=datetime.now().isoformat(),
                    status_code=status_code,
                    message=f"{prefix}: {error}",
                    attempts=attempts,
                    batch_index=batch.index,
                    urls_in_batch=len(batch.urls),
                )

    async def _send(self, session, endpoint: str, payload: SubmissionPayload, cancelled: asyncio.Event) -> int:
        """POST one payload, racing the request against the timeout and cancellation"""
        if cancelled.is_set():
            raise SubmissionCancelled("submission cancelled")

        body = json.dumps(payload.to_wire()).encode('utf-8')
        headers = {
            'Content-Type': 'application/json; charset=utf-8',
            'Content-Length': str(len(body)),
            'User-Agent': self.config.user_agent,
            'Accept': 'application/json, */*',
            'Accept-Encoding': 'gzip, deflate',
        }

        request = asyncio.ensure_future(self._post(session, endpoint, body, headers))
        cancel_wait = asyncio.ensure_future(cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {request, cancel_wait},
                timeout=self.config.timeout / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_wait.cancel()
            if not request.done():
                request.cancel()

        if request not in done:
            if cancelled.is_set():
                raise SubmissionCancelled("request interrupted")
            raise NetworkError(f"timed out after {self.config.timeout}ms")

        status, retry_after, text = request.result()
        if 200 <= status < 300:
            return status
        if status == 429:
            raise RateLimited("HTTP 429 rate limited", retry_after=retry_after)
        if status >= 500 or status == 408:
            raise TransientServerError(f"HTTP {status} {text[:200]}".strip(), status_code=status)
        raise PermanentClientError(f"HTTP {status} {text[:200]}".strip(), status_code=status)

    async def _post(self, session, endpoint: str, body: bytes, headers: Dict[str, str]):
        try:
            async with session.post(endpoint, data=body, headers=headers) as response:
                text = await response.text()
                return response.status, self._parse_retry_after(response.headers.get('Retry-After')), text
        except asyncio.TimeoutError:
            raise NetworkError("request timed out")
        except aiohttp.ClientError as e:
            raise NetworkError(f"connection error: {e}")

    @staticmethod
    def _parse_retry_after(value: Optional[str]) -> float:
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER
        return seconds if seconds >= 0 else DEFAULT_RETRY_AFTER

    async def _wait(self, seconds: float, cancelled: asyncio.Event):
        """Sleep that ends early with SubmissionCancelled when cancelled is set"""
        if cancelled.is_set():
            raise SubmissionCancelled("wait interrupted")
        if seconds <= 0:
            return
        sleeper = asyncio.ensure_future(self.sleep(seconds))
        cancel_wait = asyncio.ensure_future(cancelled.wait())
        try:
            done, _ = await asyncio.wait({sleeper, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            cancel_wait.cancel()
        if sleeper not in done:
            raise SubmissionCancelled("wait interrupted")

    def _elapsed_ms(self, start: float) -> int:
        return int(round((self.clock() - start) * 1000))

    def _failed_result(self, batch: SubmissionBatch, message: str, attempts: int) -> SubmissionResult:
        return SubmissionResult(
            engine=batch.engine,
            success=False,
            urls_submitted=0,
            response_time_ms=0,
            timestamp=datetime.now().isoformat(),
            message=message,
            attempts=attempts,
            batch_index=batch.index,
            urls_in_batch=len(batch.urls),
        )

    @staticmethod
    def generate_report(results: List[SubmissionResult]) -> SubmissionReport:
        engine_results: Dict[str, EngineTally] = {}
        total_urls = 0
        response_times = []

        for result in results:
            tally = engine_results.setdefault(result.engine, EngineTally())
            if result.success:
                tally.success += 1
                tally.urls += result.urls_submitted
                total_urls += result.urls_submitted
            else:
                tally.failed += 1
            if result.response_time_ms:
                response_times.append(result.response_time_ms)

        successful = sum(1 for r in results if r.success)
        return SubmissionReport(
            total_submissions=len(results),
            successful_submissions=successful,
            failed_submissions=len(results) - successful,
            total_urls=total_urls,
            average_response_time=round(sum(response_times) / len(response_times)) if response_times else 0,
            success_rate=round(successful / len(results) * 100, 2) if results else 0.0,
            engine_results=engine_results,
        )
