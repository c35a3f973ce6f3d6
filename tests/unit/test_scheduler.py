"""
Unit tests for the single-flight translation scheduler.

Transports are scripted (tests/helpers.py) and pacing uses a recording
no-op sleep, so every run completes instantly and deterministically.
"""
import asyncio

import pytest

from src.core.llm.exceptions import ProviderRequestError, EmptyResponseError
from src.core.llm.key_pool import KeyPoolInfo
from src.core.queue import (
    ChapterStatus,
    DurationEstimator,
    EventType,
    NotificationType,
    UsageTracker,
)
from src.core.queue.scheduler import RETRY_PLACEHOLDER, FAILURE_PREFIX, pacing_delay_ms
from helpers import make_chapters, ScriptedTransport

MODEL = 'gemini-2.5-flash'


def messages(notifications, type=None):
    return [n.message for n in notifications.recent(type=type)]


def event_data(scheduler, event_type):
    return [e.data for e in scheduler.events.get_events_by_type(event_type)]


class TestBulkRun:
    """start_translation and the drain loop."""

    @pytest.mark.asyncio
    async def test_translates_in_order_one_at_a_time(self, make_scheduler, transports):
        scheduler = make_scheduler()
        chapters = make_chapters('A', 'B', 'C')

        queued = scheduler.start_translation(chapters, MODEL)
        assert queued == 3
        assert all(c.status == ChapterStatus.TRANSLATING for c in chapters)

        await scheduler.wait_idle()

        gemini = transports['gemini']
        assert [r.title for r in gemini.requests] == ['A', 'B', 'C']
        assert gemini.max_in_flight == 1
        assert [c.status for c in chapters] == [ChapterStatus.COMPLETED] * 3
        assert chapters[0].output_text == 'Translated A'
        assert not scheduler.is_processing

    @pytest.mark.asyncio
    async def test_streamed_deltas_are_appended(self, make_scheduler, transports):
        transports['gemini'].script = {'A': ['Once', ' upon', ' a time']}
        scheduler = make_scheduler()
        chapter, = make_chapters('A')

        scheduler.start_translation([chapter], MODEL)
        await scheduler.wait_idle()

        assert chapter.output_text == 'Once upon a time'
        deltas = [d['delta'] for d in event_data(scheduler, EventType.OUTPUT_DELTA)]
        assert deltas == ['Once', ' upon', ' a time']

    @pytest.mark.asyncio
    async def test_only_eligible_chapters_are_queued(self, make_scheduler, transports):
        scheduler = make_scheduler()
        idle, failed, done, empty = make_chapters('Idle', 'Failed', 'Done', 'Empty')
        failed.status = ChapterStatus.FAILED
        done.status = ChapterStatus.COMPLETED
        empty.source_text = '   '

        assert scheduler.start_translation([idle, failed, done, empty], MODEL) == 2
        await scheduler.wait_idle()

        assert [r.title for r in transports['gemini'].requests] == ['Idle', 'Failed']
        assert done.output_text is None
        assert empty.status == ChapterStatus.IDLE

    @pytest.mark.asyncio
    async def test_nothing_to_translate(self, make_scheduler, notifications):
        scheduler = make_scheduler()
        chapter, = make_chapters('Done')
        chapter.status = ChapterStatus.COMPLETED

        assert scheduler.start_translation([chapter], MODEL) == 0
        assert messages(notifications) == ["No new or failed chapters to translate."]
        assert not scheduler.is_processing

    @pytest.mark.asyncio
    async def test_second_bulk_run_is_rejected_while_processing(self, make_scheduler, transports, notifications):
        started, release = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        first = make_chapters('A')
        second = make_chapters('X')

        scheduler.start_translation(first, MODEL)
        await started.wait()
        assert scheduler.start_translation(second, MODEL) == 0
        release.set()
        await scheduler.wait_idle()

        assert "A translation run is already in progress." in messages(notifications, NotificationType.WARNING)
        assert second[0].status == ChapterStatus.IDLE

    @pytest.mark.asyncio
    async def test_status_reports_the_chapter_in_flight(self, make_scheduler, transports):
        started, release = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        a, b = make_chapters('A', 'B')

        scheduler.start_translation([a, b], MODEL)
        await started.wait()
        status = scheduler.status()
        release.set()
        await scheduler.wait_idle()

        assert status['current_unit_id'] == a.unit_id
        assert status['pending'] == 1
        assert scheduler.status()['current_unit_id'] is None

    @pytest.mark.asyncio
    async def test_pacing_between_jobs(self, make_scheduler, recording_sleep):
        scheduler = make_scheduler()

        scheduler.start_translation(make_chapters('A', 'B', 'C'), MODEL)
        await scheduler.wait_idle()

        # rpm 10 -> 6000ms + 200ms buffer, no pause after the last job
        assert pacing_delay_ms(MODEL) == 6200
        assert recording_sleep.delays == [6.2, 6.2]


class TestProgress:
    """Progress and ETA reporting."""

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_ends_at_100(self, make_scheduler):
        scheduler = make_scheduler()

        scheduler.start_translation(make_chapters('A', 'B', 'C', 'D'), MODEL)
        await scheduler.wait_idle()

        percentages = [d['percentage'] for d in event_data(scheduler, EventType.PROGRESS)]
        assert percentages[0] == 0
        assert percentages == sorted(percentages)
        assert percentages[-1] == 100

    @pytest.mark.asyncio
    async def test_eta_uses_duration_history(self, make_scheduler):
        estimator = DurationEstimator(capacity=20, fallback_ms=30000)
        scheduler = make_scheduler(estimator=estimator)

        scheduler.start_translation(make_chapters('A', 'B'), MODEL)
        await scheduler.wait_idle()

        first = event_data(scheduler, EventType.PROGRESS)[0]
        # No history yet: two remaining jobs at the fallback duration
        assert first['eta_ms'] == 60000
        assert len(estimator.samples) == 2

    @pytest.mark.asyncio
    async def test_status_resets_after_run(self, make_scheduler):
        scheduler = make_scheduler()

        scheduler.start_translation(make_chapters('A'), MODEL)
        await scheduler.wait_idle()

        status = scheduler.status()
        assert status['is_processing'] is False
        assert status['total_at_start'] == 0
        assert status['pending'] == 0
        assert status['progress'] == 100


class TestFailures:
    """Job failures are contained at the job boundary."""

    @pytest.mark.asyncio
    async def test_partial_failure_summary(self, make_scheduler, transports, notifications):
        transports['gemini'].script = {'B': ProviderRequestError('gemini API error (400): Bad field', 'gemini', 400)}
        scheduler = make_scheduler()
        a, b, c = make_chapters('A', 'B', 'C')

        scheduler.start_translation([a, b, c], MODEL)
        await scheduler.wait_idle()

        assert [a.status, b.status, c.status] == [
            ChapterStatus.COMPLETED, ChapterStatus.FAILED, ChapterStatus.COMPLETED]
        assert b.output_text.startswith(FAILURE_PREFIX + 'Translation failed (B):')
        assert 'Successfully translated 2 chapter(s)!' in messages(notifications, NotificationType.SUCCESS)
        assert 'Failed to translate 1 chapter(s).' in messages(notifications, NotificationType.ERROR)

        finished = event_data(scheduler, EventType.RUN_FINISHED)[-1]
        assert finished == {'succeeded': 2, 'failed': 1, 'stopped': False}

        failed = event_data(scheduler, EventType.JOB_FAILED)[0]['result']
        assert failed.error_type == 'ProviderRequestError'
        assert not failed.success

    @pytest.mark.asyncio
    async def test_usage_and_duration_only_recorded_on_success(self, make_scheduler, transports):
        transports['gemini'].script = {'B': EmptyResponseError('gemini')}
        usage = UsageTracker()
        estimator = DurationEstimator()
        scheduler = make_scheduler(usage=usage, estimator=estimator)

        scheduler.start_translation(make_chapters('A', 'B', 'C'), MODEL)
        await scheduler.wait_idle()

        assert usage.current_count(MODEL) == 2
        assert len(estimator.samples) == 2

    @pytest.mark.asyncio
    async def test_failed_chapter_can_be_queued_again(self, make_scheduler, transports):
        transports['gemini'].script = {'A': EmptyResponseError('gemini')}
        scheduler = make_scheduler()
        chapter, = make_chapters('A')

        scheduler.start_translation([chapter], MODEL)
        await scheduler.wait_idle()
        assert chapter.status == ChapterStatus.FAILED

        transports['gemini'].script = {}
        assert scheduler.start_translation([chapter], MODEL) == 1
        await scheduler.wait_idle()
        assert chapter.status == ChapterStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_key_rotation_is_reported(self, make_scheduler, transports, notifications):
        class RotatingTransport(ScriptedTransport):
            async def stream(self, request, on_delta, on_key_rotated=None, on_restart=None):
                on_delta('partial output')
                on_restart()
                on_key_rotated(KeyPoolInfo(total=3, current=2))
                on_delta('final output')
                return 'final output'

        transports['gemini'] = RotatingTransport()
        scheduler = make_scheduler()
        chapter, = make_chapters('A')

        scheduler.start_translation([chapter], MODEL)
        await scheduler.wait_idle()

        assert chapter.output_text == 'final output'
        assert f"Switched automatically to API key 2 of 3 for {MODEL}." in messages(notifications)
        assert event_data(scheduler, EventType.KEY_ROTATED) == [{'model': MODEL, 'total': 3, 'current': 2}]


class TestAdmission:
    """Configuration and daily cap checks before anything is queued."""

    @pytest.mark.asyncio
    async def test_missing_configuration(self, make_scheduler, transports, notifications):
        transports['gemini'].problem = 'No API keys configured for gemini.'
        scheduler = make_scheduler()
        chapters = make_chapters('A')

        assert scheduler.start_translation(chapters, MODEL) == 0

        errors = messages(notifications, NotificationType.ERROR)
        assert errors[0].startswith(f'Please add an API key for the selected model ({MODEL})')
        assert chapters[0].status == ChapterStatus.IDLE
        assert transports['gemini'].requests == []

    @pytest.mark.asyncio
    async def test_unknown_model(self, make_scheduler, notifications):
        scheduler = make_scheduler()

        assert scheduler.start_translation(make_chapters('A'), 'mystery-model') == 0
        assert "Unknown model 'mystery-model'" in messages(notifications, NotificationType.ERROR)

    @pytest.mark.asyncio
    async def test_daily_cap_blocks_start(self, make_scheduler, transports, notifications):
        usage = UsageTracker(daily_limits={MODEL: 1})
        usage.increment(MODEL)
        scheduler = make_scheduler(usage=usage)
        chapters = make_chapters('A')

        assert scheduler.start_translation(chapters, MODEL) == 0

        warnings = messages(notifications, NotificationType.WARNING)
        assert warnings[0].startswith(f'Daily limit reached for {MODEL} (1/1)')
        assert chapters[0].status == ChapterStatus.IDLE
        assert transports['gemini'].requests == []

    @pytest.mark.asyncio
    async def test_daily_cap_reached_mid_run(self, make_scheduler, transports):
        usage = UsageTracker(daily_limits={MODEL: 2})
        scheduler = make_scheduler(usage=usage)
        a, b, c = make_chapters('A', 'B', 'C')

        scheduler.start_translation([a, b, c], MODEL)
        await scheduler.wait_idle()

        assert [a.status, b.status, c.status] == [
            ChapterStatus.COMPLETED, ChapterStatus.COMPLETED, ChapterStatus.FAILED]
        assert len(transports['gemini'].requests) == 2
        failed = event_data(scheduler, EventType.JOB_FAILED)[0]['result']
        assert failed.error_type == 'DailyLimitReachedError'


class TestStop:
    """request_stop and cancel."""

    @pytest.mark.asyncio
    async def test_stop_after_current_chapter(self, make_scheduler, transports, notifications):
        started, release = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        a, b, c = make_chapters('A', 'B', 'C')

        scheduler.start_translation([a, b, c], MODEL)
        await started.wait()
        assert scheduler.request_stop() is True
        release.set()
        await scheduler.wait_idle()

        assert a.status == ChapterStatus.COMPLETED
        assert [b.status, c.status] == [ChapterStatus.IDLE, ChapterStatus.IDLE]
        assert [r.title for r in transports['gemini'].requests] == ['A']
        assert "Translation stopped. 2 chapter(s) were not translated." in messages(notifications)
        assert event_data(scheduler, EventType.RUN_FINISHED)[-1]['stopped'] is True
        assert event_data(scheduler, EventType.UNITS_REVERTED)[-1]['unit_ids'] == [b.unit_id, c.unit_id]

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, make_scheduler, notifications):
        scheduler = make_scheduler()

        assert scheduler.request_stop() is False
        assert messages(notifications) == ["No translation is running."]

    @pytest.mark.asyncio
    async def test_cancel_reverts_everything(self, make_scheduler, transports):
        started, _ = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        a, b = make_chapters('A', 'B')

        scheduler.start_translation([a, b], MODEL)
        await started.wait()
        await scheduler.cancel()

        assert not scheduler.is_processing
        assert [a.status, b.status] == [ChapterStatus.IDLE, ChapterStatus.IDLE]
        assert scheduler.pending_count == 0


class TestRetry:
    """retry_translation."""

    @pytest.mark.asyncio
    async def test_retry_when_idle_starts_a_run(self, make_scheduler, transports):
        scheduler = make_scheduler()
        chapter, = make_chapters('A')
        chapter.status = ChapterStatus.FAILED

        assert scheduler.retry_translation(chapter, MODEL) is True
        assert chapter.output_text == RETRY_PLACEHOLDER
        assert scheduler.total_at_start == 1

        await scheduler.wait_idle()
        assert chapter.status == ChapterStatus.COMPLETED
        assert chapter.output_text == 'Translated A'

    @pytest.mark.asyncio
    async def test_retry_preempts_pending_jobs(self, make_scheduler, transports):
        started, release = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        bulk = make_chapters('A', 'B', 'C')
        extra, = make_chapters('D')
        extra.status = ChapterStatus.FAILED

        scheduler.start_translation(bulk, MODEL)
        await started.wait()
        assert scheduler.retry_translation(extra, MODEL) is True
        assert scheduler.total_at_start == 4
        release.set()
        await scheduler.wait_idle()

        assert [r.title for r in transports['gemini'].requests] == ['A', 'D', 'B', 'C']
        assert extra.status == ChapterStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retry_of_pending_chapter_moves_it_forward(self, make_scheduler, transports):
        started, release = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        a, b, c = make_chapters('A', 'B', 'C')

        scheduler.start_translation([a, b, c], MODEL)
        await started.wait()
        assert scheduler.retry_translation(c, MODEL) is True
        assert scheduler.total_at_start == 3
        assert scheduler.pending_unit_ids() == [c.unit_id, b.unit_id]
        release.set()
        await scheduler.wait_idle()

        assert [r.title for r in transports['gemini'].requests] == ['A', 'C', 'B']

    @pytest.mark.asyncio
    async def test_retry_of_in_flight_chapter_is_rejected(self, make_scheduler, transports, notifications):
        started, release = transports['gemini'].gate('A')
        scheduler = make_scheduler()
        a, = make_chapters('A')

        scheduler.start_translation([a], MODEL)
        await started.wait()
        assert scheduler.retry_translation(a, MODEL) is False
        release.set()
        await scheduler.wait_idle()

        assert '"A" is already being translated.' in messages(notifications, NotificationType.WARNING)
        assert len(transports['gemini'].requests) == 1

    @pytest.mark.asyncio
    async def test_retry_respects_daily_cap(self, make_scheduler, notifications):
        usage = UsageTracker(daily_limits={MODEL: 0})
        scheduler = make_scheduler(usage=usage)
        chapter, = make_chapters('A')
        chapter.status = ChapterStatus.FAILED

        assert scheduler.retry_translation(chapter, MODEL) is False
        assert chapter.status == ChapterStatus.FAILED
        assert chapter.output_text is None

    @pytest.mark.asyncio
    async def test_progress_never_decreases_when_retry_grows_the_run(self, make_scheduler, transports):
        started, release = transports['gemini'].gate('B')
        scheduler = make_scheduler()
        a, b = make_chapters('A', 'B')
        extra, = make_chapters('X')

        scheduler.start_translation([a, b], MODEL)
        await started.wait()
        scheduler.retry_translation(extra, MODEL)
        release.set()
        await scheduler.wait_idle()

        percentages = [d['percentage'] for d in event_data(scheduler, EventType.PROGRESS)]
        assert percentages == sorted(percentages)
        assert percentages[-1] == 100
