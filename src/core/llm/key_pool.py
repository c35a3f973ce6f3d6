"""
Rotating pool of API keys for one provider.

The pool is a plain cursor: it never retries anything itself. Transports ask it
for the current key and advance it when a key is rejected; exhaustion is a
terminal condition for the current run.
"""

from dataclasses import dataclass, asdict
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class KeyPoolInfo:
    """Position of the pool cursor, for display and logs.

    Attributes:
        total: Number of keys in the pool
        current: 1-based ordinal of the key in use (0 when the pool is empty)
    """
    total: int
    current: int

    def to_dict(self) -> dict:
        return asdict(self)


def mask_key(key: str) -> str:
    """Return a log-safe representation of an API key."""
    if len(key) <= 8:
        return '****'
    return f"{key[:4]}...{key[-4:]}"


class ApiKeyPool:
    """Ordered API keys with a monotonic cursor."""

    def __init__(self, provider: str, keys: Optional[Iterable[str]] = None):
        self.provider = provider
        self._keys: List[str] = []
        self._cursor = 0
        self.initialize(keys or [])

    def initialize(self, keys: Iterable[str]) -> None:
        """Replace the key list and rewind the cursor."""
        self._keys = [k.strip() for k in keys if k and k.strip()]
        self._cursor = 0

    def current(self) -> Optional[str]:
        """Key under the cursor, or None once every key has been tried."""
        if self._cursor >= len(self._keys):
            return None
        return self._keys[self._cursor]

    def advance(self) -> bool:
        """Move to the next key. Returns whether a key remains."""
        if self._cursor < len(self._keys):
            self._cursor += 1
        return self._cursor < len(self._keys)

    def describe(self) -> KeyPoolInfo:
        if not self._keys:
            return KeyPoolInfo(total=0, current=0)
        return KeyPoolInfo(
            total=len(self._keys),
            current=min(self._cursor + 1, len(self._keys))
        )

    @property
    def is_exhausted(self) -> bool:
        return self._cursor >= len(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        info = self.describe()
        return f"ApiKeyPool(provider={self.provider}, key={info.current}/{info.total})"
