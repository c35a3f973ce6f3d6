"""
Daily usage accounting per model.

The local record is authoritative. Gemini usage is additionally mirrored to a
shared JSON endpoint so several installations drawing on the same keys see one
counter; that mirror is best effort and never blocks or fails a translation.
"""

import asyncio
from datetime import date
from typing import Callable, Dict, Optional, Set

import httpx

from src.config import (
    MODEL_DAILY_LIMITS,
    USAGE_SYNC_URL,
    USAGE_SYNC_TIMEOUT,
)
from src.core.llm.model_profiles import MODEL_PROFILES
from src.persistence.persisted_state import PersistedState
from src.utils.unified_logger import get_logger, LogType

STATE_KEY = 'daily_usage'


def today_iso() -> str:
    return date.today().isoformat()


def zero_counts() -> Dict[str, int]:
    return {model: 0 for model in MODEL_PROFILES}


def is_valid_record(data) -> bool:
    return (isinstance(data, dict)
            and isinstance(data.get('date'), str)
            and isinstance(data.get('counts'), dict))


class SharedUsageClient:
    """GET/PUT client for the shared ``{date, counts}`` usage record."""

    def __init__(self, url: str = USAGE_SYNC_URL,
                 client: Optional[httpx.AsyncClient] = None,
                 timeout: int = USAGE_SYNC_TIMEOUT):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def fetch(self) -> Optional[dict]:
        """Return the shared record, or None when unavailable or invalid."""
        client = await self._get_client()
        try:
            response = await client.get(self.url, headers={'Cache-Control': 'no-store'})
            if response.status_code != 200:
                get_logger().warning(
                    f"Shared usage fetch failed with status {response.status_code}", LogType.USAGE)
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            get_logger().warning(f"Failed to fetch shared usage data: {e}", LogType.USAGE)
            return None
        return data if is_valid_record(data) else None

    async def push(self, record: dict) -> bool:
        """PUT the full record. Failures are logged, never raised."""
        client = await self._get_client()
        try:
            response = await client.put(self.url, json=record)
        except httpx.HTTPError as e:
            get_logger().warning(
                f"Could not sync usage with the shared counter: {e}. "
                f"Local usage is up to date.", LogType.USAGE)
            return False
        if response.status_code >= 400:
            get_logger().warning(
                f"Failed to update shared usage, server responded with status {response.status_code}",
                LogType.USAGE)
            return False
        return True

    async def close(self):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None


class UsageTracker:
    """Per-model daily counters with cap gating."""

    def __init__(self,
                 state: Optional[PersistedState] = None,
                 shared: Optional[SharedUsageClient] = None,
                 today: Callable[[], str] = today_iso,
                 daily_limits: Optional[Dict[str, int]] = None):
        """
        Args:
            state: Local persistence; None keeps counts in memory only
            shared: Shared counter client; None disables remote sync
            today: Returns the current date as YYYY-MM-DD
            daily_limits: Model to cap table (default: MODEL_DAILY_LIMITS)
        """
        self.state = state
        self.shared = shared
        self.today = today
        self.daily_limits = daily_limits if daily_limits is not None else MODEL_DAILY_LIMITS
        self._record = state.get(STATE_KEY) if state else None
        if not is_valid_record(self._record):
            self._record = {'date': self.today(), 'counts': zero_counts()}
        self._pending: Set[asyncio.Task] = set()

    def _today_record(self) -> dict:
        """Today's record; a record for another date counts as all zeros."""
        today = self.today()
        if self._record.get('date') != today:
            self._record = {'date': today, 'counts': zero_counts()}
        return self._record

    def _save(self):
        if self.state:
            self.state.set(STATE_KEY, self._record)

    def current_count(self, model: str) -> int:
        return int(self._today_record()['counts'].get(model, 0))

    def counts(self) -> Dict[str, int]:
        return dict(self._today_record()['counts'])

    def snapshot(self) -> dict:
        record = self._today_record()
        return {'date': record['date'], 'counts': dict(record['counts'])}

    def daily_limit(self, model: str) -> Optional[int]:
        return self.daily_limits.get(model)

    def is_over_limit(self, model: str) -> bool:
        limit = self.daily_limit(model)
        if limit is None:
            return False
        return self.current_count(model) >= limit

    @staticmethod
    def is_shared(model: str) -> bool:
        profile = MODEL_PROFILES.get(model)
        return bool(profile and profile.shares_usage)

    def increment(self, model: str, by: int = 1) -> None:
        """
        Add ``by`` successful requests to today's count for ``model``.

        Persists locally right away and, for shared models, schedules a
        detached PUT of the full record.
        """
        if by <= 0:
            return
        record = self._today_record()
        record['counts'][model] = int(record['counts'].get(model, 0)) + by
        self._save()

        if self.shared and self.is_shared(model):
            self._schedule_push(self.snapshot())

    def _schedule_push(self, record: dict):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            get_logger().debug("No running event loop, shared usage push skipped", LogType.USAGE)
            return
        task = loop.create_task(self.shared.push(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for detached pushes (tests and shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def sync_from_remote(self) -> dict:
        """
        Reconcile with the shared record at startup.

        Same date: the shared counts are merged in (per model, the higher count
        wins). Different date: a zeroed record for today is pushed and the
        local record is kept. Any failure leaves the local record untouched.
        """
        if not self.shared:
            return self.snapshot()

        today = self.today()
        local = self._today_record()
        shared = await self.shared.fetch()

        if shared and shared['date'] == today:
            for model, count in shared['counts'].items():
                if isinstance(count, int) and count > local['counts'].get(model, 0):
                    local['counts'][model] = count
            self._save()
        elif shared:
            await self.shared.push({'date': today, 'counts': zero_counts()})

        return self.snapshot()
