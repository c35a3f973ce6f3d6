"""
Thread-safe chapter state management
"""
import threading
from typing import Any, Dict, Iterable, List, Optional

from src.core.queue.models import Chapter, ChapterStatus
from src.persistence.persisted_state import PersistedState

CHAPTERS_KEY = 'chapters'


class ChapterStore:
    """
    Thread-safe registry of the workbench chapters.

    The scheduler mutates the live Chapter objects on the event loop thread;
    web handlers only ever see dictionary snapshots taken under the lock.
    """

    def __init__(self, state: Optional[PersistedState] = None):
        self.state = state
        self._chapters: Dict[str, Chapter] = {}
        self._lock = threading.RLock()  # RLock to allow nested locking
        self._load()

    def _load(self):
        stored = self.state.get(CHAPTERS_KEY, []) if self.state else []
        with self._lock:
            for raw in stored:
                chapter = Chapter.from_dict(raw)
                # A run interrupted by a restart leaves chapters mid-translation
                if chapter.status == ChapterStatus.TRANSLATING:
                    chapter.status = ChapterStatus.IDLE
                self._chapters[chapter.unit_id] = chapter

    def save(self) -> None:
        """Persist every chapter (debounced by PersistedState)."""
        if not self.state:
            return
        with self._lock:
            snapshot = [c.to_dict() for c in self._chapters.values()]
        self.state.set(CHAPTERS_KEY, snapshot)

    def add_chapters(self, items: Iterable[Dict[str, Any]]) -> List[Chapter]:
        """Create chapters from ``{title, content}`` dictionaries."""
        created = []
        with self._lock:
            for item in items:
                chapter = Chapter.create(
                    title=str(item.get('title', '')).strip() or f"Chapter {len(self._chapters) + 1}",
                    source_text=str(item.get('content', item.get('source_text', ''))),
                )
                self._chapters[chapter.unit_id] = chapter
                created.append(chapter)
        self.save()
        return created

    def get(self, unit_id: str) -> Optional[Chapter]:
        """Live chapter object (for the scheduler)."""
        with self._lock:
            return self._chapters.get(unit_id)

    def live_chapters(self) -> List[Chapter]:
        with self._lock:
            return list(self._chapters.values())

    def snapshot(self, unit_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            chapter = self._chapters.get(unit_id)
            return chapter.to_dict() if chapter else None

    def list_chapters(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [c.to_dict() for c in self._chapters.values()]

    def edit_output(self, unit_id: str, output_text: str) -> Optional[Dict[str, Any]]:
        """
        Replace a chapter's output by hand.

        Returns:
            The updated snapshot, or None when the chapter is unknown

        Raises:
            ValueError: The chapter is owned by the queue right now
        """
        with self._lock:
            chapter = self._chapters.get(unit_id)
            if chapter is None:
                return None
            if chapter.status == ChapterStatus.TRANSLATING:
                raise ValueError("Chapter is being translated and cannot be edited.")
            chapter.output_text = output_text
            snapshot = chapter.to_dict()
        self.save()
        return snapshot

    def remove(self, unit_id: str) -> bool:
        with self._lock:
            chapter = self._chapters.get(unit_id)
            if chapter is None or chapter.status == ChapterStatus.TRANSLATING:
                return False
            del self._chapters[unit_id]
        self.save()
        return True

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ChapterStatus}
        with self._lock:
            for chapter in self._chapters.values():
                counts[chapter.status.value] += 1
        return counts
