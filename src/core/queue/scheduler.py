"""
Single-flight translation job queue.

The scheduler owns the pending jobs and drains them one at a time on the
running asyncio loop: it streams each chapter through the transport serving
the job's model, writes the deltas into the chapter, records usage and
duration on success, and paces requests by the model's requests-per-minute
limit. Job failures are contained at the job boundary; the queue always moves
on to the next job.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Iterable, List, Optional

from src.config import DEFAULT_TEMPERATURE, PACING_BUFFER_MS
from src.core.llm.base import StreamingTransport
from src.core.llm.exceptions import (
    ConfigurationError,
    DailyLimitReachedError,
    TranslationError,
)
from src.core.llm.key_pool import KeyPoolInfo
from src.core.llm.model_profiles import requests_per_minute
from src.core.llm.providers import transport_for_model
from src.utils.unified_logger import get_logger, LogType
from prompts import resolve_system_prompt
from .durations import DurationEstimator
from .events import EventBus, EventType
from .models import Chapter, ChapterStatus, Job, JobResult, RunSummary
from .notifications import NotificationCenter
from .usage import UsageTracker

RETRY_PLACEHOLDER = "Retrying…"
FAILURE_PREFIX = "### "


def pacing_delay_ms(model: str) -> float:
    """Pause between two jobs of ``model``: one request slot plus a buffer."""
    return 60000 / requests_per_minute(model) + PACING_BUFFER_MS


class TranslationScheduler:
    """
    Owns the job queue and the single drain task.

    ``start_translation`` and ``retry_translation`` must be called from the
    event loop that should run the queue; they return immediately and the
    outcome is observed through chapter mutation, the event bus and the
    notification center.
    """

    def __init__(self,
                 transports: Dict[str, StreamingTransport],
                 usage: UsageTracker,
                 estimator: DurationEstimator,
                 notifications: NotificationCenter,
                 events: Optional[EventBus] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            transports: Provider name to transport
            usage: Daily usage accounting
            estimator: Job duration history for ETA
            notifications: User-facing message sink
            events: Event bus (a private one is created when omitted)
            sleep: Awaitable sleep taking seconds (pacing)
            clock: Monotonic clock in seconds (job timing)
        """
        self.transports = transports
        self.usage = usage
        self.estimator = estimator
        self.notifications = notifications
        self.events = events or EventBus()
        self._sleep = sleep
        self._clock = clock

        self._queue: Deque[Job] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._stop_requested = False
        self.current_job: Optional[Job] = None
        self.total_at_start = 0
        self.progress = 0.0
        self.eta_ms = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_processing(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def pending_unit_ids(self) -> List[str]:
        return [job.chapter.unit_id for job in self._queue]

    def status(self) -> dict:
        # Called from Flask threads while the loop thread may clear current_job
        current = self.current_job
        return {
            'is_processing': self.is_processing,
            'progress': round(self.progress, 2),
            'eta_ms': self.eta_ms,
            'total_at_start': self.total_at_start,
            'pending': self.pending_count,
            'current_unit_id': current.chapter.unit_id if current else None,
            'stop_requested': self._stop_requested,
        }

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _admit(self, model: str) -> bool:
        """Configuration and daily cap checks, reported as notifications."""
        try:
            transport = transport_for_model(self.transports, model)
        except ConfigurationError as e:
            self.notifications.error(e.message)
            return False

        problem = transport.configuration_problem()
        if problem:
            self.notifications.error(
                f"Please add an API key for the selected model ({model}) in the settings. {problem}")
            return False

        if self.usage.is_over_limit(model):
            self.notifications.warning(
                f"Daily limit reached for {model} "
                f"({self.usage.current_count(model)}/{self.usage.daily_limit(model)}). "
                f"Try again tomorrow or pick another model.")
            return False
        return True

    def start_translation(self,
                          chapters: Iterable[Chapter],
                          model: str,
                          system_prompt: Optional[str] = None,
                          temperature: float = DEFAULT_TEMPERATURE,
                          thinking_budget: int = 0) -> int:
        """
        Queue every eligible chapter and start draining.

        Returns:
            Number of chapters queued (0 when nothing was started)
        """
        eligible = [c for c in chapters if c.is_eligible]
        if not eligible:
            self.notifications.info("No new or failed chapters to translate.")
            return 0

        if self.is_processing:
            self.notifications.warning("A translation run is already in progress.")
            return 0

        if not self._admit(model):
            return 0

        instructions = resolve_system_prompt(system_prompt)
        for chapter in eligible:
            chapter.status = ChapterStatus.TRANSLATING
        self.events.emit(EventType.UNITS_QUEUED, unit_ids=[c.unit_id for c in eligible])

        self.total_at_start = len(eligible)
        self.progress = 0.0
        self.eta_ms = 0
        self._queue.extend(
            Job(c, model, instructions, temperature, thinking_budget) for c in eligible
        )

        self.notifications.info(f"Started translating {len(eligible)} chapter(s).")
        self._ensure_draining(model)
        return len(eligible)

    def retry_translation(self,
                          chapter: Chapter,
                          model: str,
                          system_prompt: Optional[str] = None,
                          temperature: float = DEFAULT_TEMPERATURE,
                          thinking_budget: int = 0) -> bool:
        """
        Put ``chapter`` at the head of the queue, ahead of pending bulk jobs.

        Returns:
            True when the retry was queued
        """
        if self.current_job and self.current_job.chapter.unit_id == chapter.unit_id:
            self.notifications.warning(f'"{chapter.title}" is already being translated.')
            return False

        if not self._admit(model):
            return False

        before = len(self._queue)
        self._queue = deque(j for j in self._queue if j.chapter.unit_id != chapter.unit_id)
        replaced_pending = len(self._queue) != before

        self._queue.appendleft(Job(
            chapter, model, resolve_system_prompt(system_prompt), temperature, thinking_budget
        ))
        chapter.status = ChapterStatus.TRANSLATING
        chapter.output_text = RETRY_PLACEHOLDER
        self.events.emit(EventType.UNITS_QUEUED, unit_ids=[chapter.unit_id], retry=True)
        get_logger().info(f'Retrying translation for chapter "{chapter.title}".')

        if self.is_processing:
            if not replaced_pending:
                self.total_at_start += 1
        else:
            self.total_at_start = 1
            self.progress = 0.0
            self._ensure_draining(model)
        return True

    def request_stop(self) -> bool:
        """Ask the drain loop to stop before its next job."""
        if not self.is_processing:
            self.notifications.info("No translation is running.")
            return False
        self._stop_requested = True
        self.notifications.info("Stopping after the current chapter.")
        return True

    async def wait_idle(self) -> None:
        """Wait for the current run (if any) to finish."""
        while self.is_processing:
            await asyncio.shield(self._drain_task)

    async def cancel(self) -> None:
        """Abort the run immediately (shutdown). Pending and in-flight chapters go back to idle."""
        interrupted = self.current_job
        if self.is_processing:
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        if interrupted and interrupted.chapter.status == ChapterStatus.TRANSLATING:
            self._queue.appendleft(interrupted)
        self._revert_pending()

    def _ensure_draining(self, model: str):
        if self.is_processing:
            return
        self._stop_requested = False
        loop = asyncio.get_running_loop()
        self._drain_task = loop.create_task(self._drain(model))

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def _publish_progress(self, done: bool = False):
        remaining = len(self._queue)
        if done:
            self.progress = 100.0
            self.eta_ms = 0
        else:
            total = max(self.total_at_start, 1)
            computed = (self.total_at_start - remaining) / total * 100
            self.progress = max(self.progress, min(max(computed, 0.0), 100.0))
            self.eta_ms = self.estimator.estimate_remaining_ms(remaining)

        data = {
            'percentage': self.progress,
            'eta_ms': self.eta_ms,
            'done': self.total_at_start - remaining if not done else self.total_at_start,
            'total': self.total_at_start,
        }
        self.events.emit(EventType.PROGRESS, **data)
        get_logger().debug("Progress", LogType.PROGRESS, data)

    def _revert_pending(self) -> List[str]:
        dropped = list(self._queue)
        self._queue.clear()
        for job in dropped:
            job.chapter.status = ChapterStatus.IDLE
            if job.chapter.output_text == RETRY_PLACEHOLDER:
                job.chapter.output_text = None
        unit_ids = [job.chapter.unit_id for job in dropped]
        if unit_ids:
            self.events.emit(EventType.UNITS_REVERTED, unit_ids=unit_ids)
        return unit_ids

    async def _drain(self, model: str):
        logger = get_logger()
        summary = RunSummary()
        self.events.emit(EventType.RUN_STARTED, total=self.total_at_start, model=model)
        logger.info("Translation started", LogType.TRANSLATION_START,
                    {'model': model, 'total_units': self.total_at_start})

        try:
            while self._queue:
                if self._stop_requested:
                    dropped = self._revert_pending()
                    summary.stopped = True
                    self.notifications.info(
                        f"Translation stopped. {len(dropped)} chapter(s) were not translated.")
                    break

                self._publish_progress()
                job = self._queue.popleft()
                result = await self._run_job(job)

                if result.success:
                    summary.succeeded += 1
                else:
                    summary.failed += 1
                    summary.failed_titles.append(result.title)

                if self._queue and not self._stop_requested:
                    await self._sleep(pacing_delay_ms(job.model) / 1000)

            self._publish_progress(done=True)

            if summary.succeeded > 0:
                self.notifications.success(
                    f"Successfully translated {summary.succeeded} chapter(s)!")
            if summary.failed > 0:
                self.notifications.error(f"Failed to translate {summary.failed} chapter(s).")

            self.events.emit(EventType.RUN_FINISHED, succeeded=summary.succeeded,
                             failed=summary.failed, stopped=summary.stopped)
            logger.info("Translation finished", LogType.TRANSLATION_END, {
                'succeeded': summary.succeeded,
                'failed': summary.failed,
                'stopped': summary.stopped,
            })
        finally:
            self.total_at_start = 0
            self._stop_requested = False
            self.current_job = None

    async def _run_job(self, job: Job) -> JobResult:
        chapter = job.chapter
        self.current_job = job
        started = self._clock()

        chapter.output_text = ''
        self.events.emit(EventType.JOB_STARTED, unit_id=chapter.unit_id,
                         title=chapter.title, model=job.model)
        get_logger().info(f'Starting translation for "{chapter.title}" with model {job.model}.')

        def on_delta(text: str):
            chapter.output_text = (chapter.output_text or '') + text
            self.events.emit(EventType.OUTPUT_DELTA, unit_id=chapter.unit_id, delta=text)

        def on_restart():
            chapter.output_text = ''
            self.events.emit(EventType.OUTPUT_RESET, unit_id=chapter.unit_id)

        def on_key_rotated(info: KeyPoolInfo):
            self.notifications.info(
                f"Switched automatically to API key {info.current} of {info.total} for {job.model}.")
            self.events.emit(EventType.KEY_ROTATED, model=job.model, **info.to_dict())

        try:
            if self.usage.is_over_limit(job.model):
                raise DailyLimitReachedError(
                    job.model, self.usage.current_count(job.model),
                    self.usage.daily_limit(job.model))
            transport = transport_for_model(self.transports, job.model)
            await transport.stream(job.to_request(), on_delta, on_key_rotated, on_restart)
        except Exception as e:
            message = e.message if isinstance(e, TranslationError) else str(e) or type(e).__name__
            elapsed_ms = int((self._clock() - started) * 1000)
            chapter.status = ChapterStatus.FAILED
            chapter.output_text = f"{FAILURE_PREFIX}Translation failed ({chapter.title}): {message}"
            self.notifications.error(f"Translation failed ({chapter.title}): {message}")
            get_logger().error(message, LogType.ERROR_DETAIL,
                               {'title': chapter.title, 'details': str(e)})

            result = JobResult(chapter.unit_id, chapter.title, job.model, False,
                               elapsed_ms, error=message, error_type=type(e).__name__)
            self.events.emit(EventType.JOB_FAILED, result=result)
            return result
        finally:
            self.current_job = None

        elapsed_ms = int((self._clock() - started) * 1000)
        chapter.status = ChapterStatus.COMPLETED
        self.usage.increment(job.model, 1)
        self.estimator.record(elapsed_ms)
        get_logger().info(f'Successfully translated "{chapter.title}".')

        result = JobResult(chapter.unit_id, chapter.title, job.model, True, elapsed_ms)
        self.events.emit(EventType.JOB_COMPLETED, result=result)
        return result
