"""
Periodic health checks and orchestration runs on a background thread
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, Callable, Awaitable

import schedule

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobRecord:
    name: str
    interval_minutes: int
    status: JobStatus = JobStatus.PENDING
    run_count: int = 0
    failure_count: int = 0
    last_run: Optional[str] = None
    next_run: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data


class MonitoringScheduler:
    """Runs registered coroutine jobs every N minutes using the schedule library

    Each run gets its own event loop on the scheduler thread, so jobs must not
    share aiohttp sessions with another loop.
    """

    def __init__(self, poll_interval: float = 1.0):
        self.scheduler = schedule.Scheduler()
        self.jobs: Dict[str, JobRecord] = {}
        self._factories: Dict[str, Callable[[], Awaitable[Any]]] = {}
        self.poll_interval = poll_interval
        self.is_running = False
        self.scheduler_thread = None
        self._lock = threading.Lock()

    def add_job(self, name: str, interval_minutes: int, factory: Callable[[], Awaitable[Any]]) -> JobRecord:
        """Register factory (returning a coroutine) to run every interval_minutes"""
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        if name in self.jobs:
            self.remove_job(name)

        record = JobRecord(name=name, interval_minutes=interval_minutes)
        self.jobs[name] = record
        self._factories[name] = factory

        job = self.scheduler.every(interval_minutes).minutes.do(self.run_job, name).tag(name)
        record.next_run = job.next_run.isoformat() if job.next_run else None

        logger.info(f"Scheduled job '{name}' every {interval_minutes} minutes")
        return record

    def remove_job(self, name: str) -> bool:
        if name not in self.jobs:
            return False
        self.scheduler.clear(name)
        del self.jobs[name]
        del self._factories[name]
        logger.info(f"Removed job '{name}'")
        return True

    def run_job(self, name: str) -> Any:
        """Execute one job now on the calling thread"""
        record = self.jobs.get(name)
        if record is None:
            return None

        with self._lock:
            record.status = JobStatus.RUNNING
            record.last_run = datetime.now().isoformat()

        loop = asyncio.new_event_loop()
        try:
            result = loop.run_until_complete(self._factories[name]())
            record.status = JobStatus.COMPLETED
            record.run_count += 1
            record.error = None
            logger.info(f"Job '{name}' completed (run {record.run_count})")
            return result
        except Exception as e:
            record.status = JobStatus.FAILED
            record.failure_count += 1
            record.error = str(e)
            logger.error(f"Job '{name}' failed: {e}")
            return None
        finally:
            loop.close()
            jobs = self.scheduler.get_jobs(name)
            if jobs and jobs[0].next_run:
                record.next_run = jobs[0].next_run.isoformat()

    def start(self):
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        self.is_running = True
        self.scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
        self.scheduler_thread.start()
        logger.info("Monitoring scheduler started")

    def stop(self):
        self.is_running = False
        if self.scheduler_thread:
            self.scheduler_thread.join(timeout=5)
        logger.info("Monitoring scheduler stopped")

    def _run_scheduler(self):
        while self.is_running:
            try:
                self.scheduler.run_pending()
                time.sleep(self.poll_interval)
            except Exception as e:
                logger.error(f"Scheduler error: {e}")
                time.sleep(5)

    def get_status(self) -> Dict[str, Any]:
        return {
            'running': self.is_running,
            'jobs': {name: record.to_dict() for name, record in self.jobs.items()},
        }
