"""
Background worker that keeps camera readings fresh.

The worker runs on one daemon thread and processes sources strictly one at a
time so the model backend is never hit concurrently. It has two phases:

* bootstrap, once: after a warm-up delay, every source still carrying the
  placeholder title is analyzed and renamed from the text on its image. A
  failure ends the whole pass.
* steady state, forever: every enabled source is analyzed, the reading is
  appended to its history and the source is pushed to the vector index. A
  failure only skips that source.

All waits go through a stop event, so ``stop()`` interrupts them and then
joins the thread.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from trafficjam.analyzer import build_analyzer
from trafficjam.ingest.fetcher import identifier_from_url
from trafficjam.models import PLACEHOLDER_TITLE
from trafficjam.settings import (
    get_bootstrap_pacing_seconds,
    get_cycle_interval_seconds,
    get_field_prober_enabled,
    get_source_pacing_seconds,
    get_worker_stop_timeout_seconds,
    get_worker_warmup_seconds,
)
from trafficjam.storage import SourceRepository
from trafficjam.vector_index import build_vector_index
from trafficjam.vlm.client import VLMClient

logger = logging.getLogger(__name__)


def _utc_now():
    return datetime.now(timezone.utc)


def _first_set(value, getter):
    return value if value is not None else getter()


class WorkerPhase(str, Enum):
    IDLE = "idle"
    WARMING_UP = "warming_up"
    BOOTSTRAP = "bootstrap"
    STEADY = "steady"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SchedulerState:
    phase: WorkerPhase = WorkerPhase.IDLE
    started_at: datetime | None = None
    last_run_at: datetime | None = None
    cycles_completed: int = 0
    last_cycle_failures: int = 0


@dataclass(frozen=True)
class CycleReport:
    processed: int = 0
    recorded: int = 0
    failed: int = 0


class PollingScheduler:
    def __init__(
        self,
        analyzer,
        repository,
        vector_index=None,
        warmup_seconds=None,
        bootstrap_pacing_seconds=None,
        pacing_seconds=None,
        cycle_interval_seconds=None,
        stop_timeout_seconds=None,
    ):
        self.analyzer = analyzer
        self.repository = repository
        self.vector_index = vector_index
        self.warmup_seconds = _first_set(warmup_seconds, get_worker_warmup_seconds)
        self.bootstrap_pacing_seconds = _first_set(bootstrap_pacing_seconds, get_bootstrap_pacing_seconds)
        self.pacing_seconds = _first_set(pacing_seconds, get_source_pacing_seconds)
        self.cycle_interval_seconds = _first_set(cycle_interval_seconds, get_cycle_interval_seconds)
        self.stop_timeout_seconds = _first_set(stop_timeout_seconds, get_worker_stop_timeout_seconds)
        self._stop_event = threading.Event()
        self._control_lock = threading.Lock()
        self._thread = None
        # Written only by the worker thread; readers get an immutable snapshot.
        self._state = SchedulerState(last_run_at=_utc_now())

    @property
    def state(self):
        return self._state

    @property
    def stop_event(self):
        return self._stop_event

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def _set_state(self, **changes):
        self._state = replace(self._state, **changes)

    def _wait(self, seconds):
        """Sleeps up to ``seconds``; returns True when a stop was requested."""
        return self._stop_event.wait(max(seconds, 0))

    def start(self):
        with self._control_lock:
            if self.is_running:
                logger.info("Worker already running")
                return False
            logger.info("Starting the worker...")
            self._stop_event.clear()
            self._set_state(phase=WorkerPhase.WARMING_UP, started_at=_utc_now())
            self._thread = threading.Thread(target=self.run, name="trafficjam-worker", daemon=True)
            self._thread.start()
            return True

    def stop(self, timeout=None):
        timeout = self.stop_timeout_seconds if timeout is None else timeout
        with self._control_lock:
            thread = self._thread
            if thread is None:
                return True
            logger.info("Stopping the worker...")
            self._stop_event.set()
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Worker still busy after %ss; it will exit after the in-flight call", timeout)
                return False
            self._thread = None
            logger.info("Worker stopped")
            return True

    def join(self, timeout=None):
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def run(self):
        try:
            logger.info("Waiting %ss for dependent services", self.warmup_seconds)
            if self._wait(self.warmup_seconds):
                return
            self.run_bootstrap()
            while not self._stop_event.is_set():
                self.run_cycle()
                logger.info("Waiting for the next iteration...")
                if self._wait(self.cycle_interval_seconds):
                    return
        finally:
            self._set_state(phase=WorkerPhase.STOPPED)

    def run_bootstrap(self):
        """Names placeholder sources. Any error abandons the rest of the pass."""
        self._set_state(phase=WorkerPhase.BOOTSTRAP)
        report = CycleReport()
        try:
            logger.info("Fetching sources titled %r...", PLACEHOLDER_TITLE)
            sources = self.repository.list_by_title(PLACEHOLDER_TITLE)
            for source in sources:
                if self._stop_event.is_set():
                    break
                logger.info("Processing source: %s", source.id)
                outcome = self.analyzer.analyze(identifier_from_url(source.url))
                recorded = 0
                if outcome.reading is not None:
                    self.repository.update(
                        source.id,
                        {"title": outcome.reading.title, "cctv_date": outcome.reading.date},
                    )
                    logger.info("Added title to source %s - %s", source.id, outcome.reading.title)
                    recorded = 1
                report = replace(report, processed=report.processed + 1, recorded=report.recorded + recorded)
                if self._wait(self.bootstrap_pacing_seconds):
                    break
        except Exception:
            logger.exception("An error occurred during the bootstrap pass; remaining sources skipped")
            report = replace(report, failed=report.failed + 1)
        return report

    def _process_source(self, source):
        logger.info("Processing source: %s - %s", source.id, source.title)
        outcome = self.analyzer.analyze(identifier_from_url(source.url))
        if outcome.reading is None:
            logger.warning("No reading recovered for source %s this cycle", source.id)
            return False
        self.repository.append_result(source.id, outcome.reading, outcome.created_at)
        logger.info("Added analysis result for source: %s - %s", source.id, source.title)
        if self.vector_index is not None:
            refreshed = self.repository.get(source.id) or source
            self.vector_index.upsert(refreshed)
        return True

    def run_cycle(self):
        """One pass over enabled sources; a failing source never stops the others."""
        self._set_state(phase=WorkerPhase.STEADY)
        processed = recorded = failed = 0
        logger.info("Fetching enabled sources...")
        try:
            sources = self.repository.list_enabled()
        except Exception:
            logger.exception("Could not list enabled sources")
            sources = []
        stopped = False
        for source in sources:
            if self._stop_event.is_set():
                stopped = True
                break
            try:
                if self._process_source(source):
                    recorded += 1
            except Exception:
                failed += 1
                logger.exception("An error occurred while processing source %s", source.id)
            processed += 1
            if self._wait(self.pacing_seconds):
                stopped = True
                break
        if not stopped:
            self._set_state(
                last_run_at=_utc_now(),
                cycles_completed=self._state.cycles_completed + 1,
                last_cycle_failures=failed,
            )
        return CycleReport(processed=processed, recorded=recorded, failed=failed)

    def snapshot(self):
        state = self._state
        return {
            "running": self.is_running,
            "phase": state.phase.value,
            "started_at": state.started_at.isoformat() if state.started_at else None,
            "last_run_at": state.last_run_at.isoformat() if state.last_run_at else None,
            "cycles_completed": state.cycles_completed,
            "last_cycle_failures": state.last_cycle_failures,
        }


def build_scheduler(repository=None, use_prober=None):
    repository = repository or SourceRepository()
    if use_prober is None:
        use_prober = get_field_prober_enabled()
    client = VLMClient()
    scheduler = PollingScheduler(
        analyzer=build_analyzer(client, use_prober=use_prober),
        repository=repository,
        vector_index=build_vector_index(),
    )
    # Retry back-off in the model client ends as soon as the worker is stopped.
    client.stop_event = scheduler.stop_event
    return scheduler
