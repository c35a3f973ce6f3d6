"""
Translation runtime: hosts the job queue on a background asyncio loop

Flask handlers run on request threads; the scheduler, the transports and the
usage sync all live on one event loop owned by a daemon thread. Every call
from a request thread is marshalled onto that loop.
"""
import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional

from src.config import (
    TranslationOptions,
    USAGE_SYNC_ENABLED,
)
from src.core.glossary import TerminologyStore, CodexLibrary, compose_system_prompt
from src.core.llm.base import StreamingTransport
from src.core.llm.model_profiles import MODEL_PROFILES, PROVIDER_GPT_OSS
from src.core.llm.providers import create_transports
from src.core.queue.durations import DurationEstimator
from src.core.queue.events import EventBus, Event, EventType
from src.core.queue.notifications import NotificationCenter, Notification
from src.core.queue.scheduler import TranslationScheduler
from src.core.queue.usage import UsageTracker, SharedUsageClient
from src.persistence.persisted_state import PersistedState
from src.utils.unified_logger import get_logger
from prompts import resolve_system_prompt
from .translation_state import ChapterStore
from .websocket import emit_update, event_to_payload

CALL_TIMEOUT = 30

# Events after which chapter state is worth persisting (not every delta)
_PERSIST_EVENTS = [
    EventType.UNITS_QUEUED,
    EventType.UNITS_REVERTED,
    EventType.JOB_STARTED,
    EventType.JOB_COMPLETED,
    EventType.JOB_FAILED,
]


class WorkbenchRuntime:
    """Owns every long-lived collaborator of the web server and the CLI."""

    def __init__(self,
                 state: PersistedState,
                 transports: Optional[Dict[str, StreamingTransport]] = None,
                 shared_usage: Optional[SharedUsageClient] = None,
                 socketio=None,
                 sleep: Callable[[float], Any] = asyncio.sleep):
        """
        Args:
            state: Persistence for chapters, usage, durations and glossary
            transports: Provider transports (default: built from configuration)
            shared_usage: Shared usage client (default: configured endpoint,
                or none when USAGE_SYNC_ENABLED is false)
            socketio: SocketIO instance for push updates (optional)
            sleep: Pacing sleep forwarded to the scheduler
        """
        self.state = state
        self.socketio = socketio
        self.events = EventBus()
        self.notifications = NotificationCenter()
        self.chapters = ChapterStore(state)
        self.terms = TerminologyStore(state)
        self.codex = CodexLibrary(state)
        if shared_usage is None and USAGE_SYNC_ENABLED:
            shared_usage = SharedUsageClient()
        self.usage = UsageTracker(state, shared_usage)
        self.estimator = DurationEstimator(state)
        self.transports = transports if transports is not None else create_transports()
        self.scheduler = TranslationScheduler(
            self.transports, self.usage, self.estimator, self.notifications,
            events=self.events, sleep=sleep
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

        self.events.subscribe_multiple(_PERSIST_EVENTS, self._on_chapter_event)
        self.events.subscribe_all(self._forward_event)
        self.notifications.add_listener(self._forward_notification)

    # ------------------------------------------------------------------
    # Loop management
    # ------------------------------------------------------------------

    def start(self, sync_usage: bool = True) -> None:
        """Start the background loop thread."""
        if self._thread is not None:
            return
        self._loop = asyncio.new_event_loop()
        ready = threading.Event()

        def _run():
            asyncio.set_event_loop(self._loop)
            self._loop.call_soon(ready.set)
            self._loop.run_forever()

        self._thread = threading.Thread(target=_run, name='translation-loop', daemon=True)
        self._thread.start()
        ready.wait()

        if sync_usage and self.usage.shared:
            asyncio.run_coroutine_threadsafe(self.usage.sync_from_remote(), self._loop)

    def shutdown(self) -> None:
        """Stop the loop, close HTTP clients and flush state."""
        if self._loop is None:
            self.state.close()
            return
        try:
            self._await(self._close_clients())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._loop.close()
            self._loop = None
            self._thread = None
            self.chapters.save()
            self.state.close()

    async def _close_clients(self):
        await self.scheduler.cancel()
        await self.usage.drain()
        for transport in self.transports.values():
            await transport.close()
        if self.usage.shared:
            await self.usage.shared.close()

    def _await(self, coro, timeout: float = CALL_TIMEOUT):
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def call(self, fn: Callable, *args, **kwargs):
        """Run a synchronous function on the loop thread and return its result."""
        if self._loop is None:
            raise RuntimeError("Runtime is not started")

        async def _invoke():
            return fn(*args, **kwargs)

        return self._await(_invoke())

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        self._await(self.scheduler.wait_idle(), timeout)

    # ------------------------------------------------------------------
    # Event wiring
    # ------------------------------------------------------------------

    def _on_chapter_event(self, event: Event):
        self.chapters.save()

    def _forward_event(self, event: Event):
        payload = event_to_payload(event, self.chapters)
        if payload:
            emit_update(self.socketio, *payload)

    def _forward_notification(self, notification: Notification):
        emit_update(self.socketio, 'notification', notification.to_dict())

    # ------------------------------------------------------------------
    # Operations used by the blueprints and the CLI
    # ------------------------------------------------------------------

    def build_system_prompt(self, base: Optional[str]) -> str:
        return compose_system_prompt(
            resolve_system_prompt(base), self.terms.terms, self.codex.active_book
        )

    def start_translation(self, options: TranslationOptions,
                          unit_ids: Optional[List[str]] = None) -> int:
        """Queue eligible chapters (all of them, or only ``unit_ids``)."""
        chapters = self.chapters.live_chapters()
        if unit_ids is not None:
            wanted = set(unit_ids)
            chapters = [c for c in chapters if c.unit_id in wanted]
        return self.call(
            self.scheduler.start_translation, chapters, options.model,
            self.build_system_prompt(options.system_prompt),
            options.temperature, options.thinking_budget
        )

    def retry(self, unit_id: str, options: TranslationOptions) -> Optional[bool]:
        """Retry one chapter. Returns None when the chapter is unknown."""
        chapter = self.chapters.get(unit_id)
        if chapter is None:
            return None
        return self.call(
            self.scheduler.retry_translation, chapter, options.model,
            self.build_system_prompt(options.system_prompt),
            options.temperature, options.thinking_budget
        )

    def request_stop(self) -> bool:
        return self.call(self.scheduler.request_stop)

    def status(self) -> dict:
        status = self.scheduler.status()
        status['chapters'] = self.chapters.status_counts()
        return status

    def update_keys(self, provider: str, keys: List[str],
                    base_url: Optional[str] = None,
                    model_name: Optional[str] = None) -> dict:
        """Re-initialize a provider's key pool (and GPT-OSS endpoint settings)."""
        transport = self.transports.get(provider)
        if transport is None:
            raise KeyError(provider)

        def _apply():
            transport.key_pool.initialize(keys)
            if provider == PROVIDER_GPT_OSS and (base_url is not None or model_name is not None):
                transport.configure(
                    base_url if base_url is not None else transport.base_url,
                    model_name if model_name is not None else transport.model_name,
                )
            return self._describe(provider, transport)

        result = self.call(_apply)
        get_logger().info(f"API keys updated for {provider} ({result['total']} key(s))")
        return result

    @staticmethod
    def _describe(provider: str, transport: StreamingTransport) -> dict:
        info = transport.key_pool.describe().to_dict()
        info['provider'] = provider
        info['configured'] = transport.is_configured()
        info['exhausted'] = transport.key_pool.is_exhausted
        return info

    def key_status(self) -> List[dict]:
        return [self._describe(name, t) for name, t in self.transports.items()]

    def model_overview(self) -> List[dict]:
        counts = self.usage.counts()
        models = []
        for model, profile in MODEL_PROFILES.items():
            entry = profile.to_dict()
            entry['used_today'] = counts.get(model, 0)
            entry['limit_reached'] = self.usage.is_over_limit(model)
            models.append(entry)
        return models
