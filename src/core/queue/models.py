"""
Data structures shared by the job queue, the web layer and the CLI.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from src.core.llm.base import TranslationRequest


class ChapterStatus(str, Enum):
    """Lifecycle of a chapter: idle -> translating -> completed | failed."""
    IDLE = "idle"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Chapter:
    """A translatable unit.

    ``source_text`` is never modified by the queue. ``output_text`` is
    appended to while streaming and replaced wholesale by manual edits.
    Status and output belong to the queue while the chapter is translating.
    """
    unit_id: str
    title: str
    source_text: str
    output_text: Optional[str] = None
    status: ChapterStatus = ChapterStatus.IDLE

    @classmethod
    def create(cls, title: str, source_text: str) -> 'Chapter':
        return cls(unit_id=uuid.uuid4().hex, title=title, source_text=source_text)

    @property
    def is_eligible(self) -> bool:
        """Whether a bulk run should pick this chapter up."""
        return (bool(self.source_text and self.source_text.strip())
                and self.status in (ChapterStatus.IDLE, ChapterStatus.FAILED))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'unit_id': self.unit_id,
            'title': self.title,
            'source_text': self.source_text,
            'output_text': self.output_text,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Chapter':
        return cls(
            unit_id=data.get('unit_id') or uuid.uuid4().hex,
            title=data.get('title', ''),
            source_text=data.get('source_text', ''),
            output_text=data.get('output_text'),
            status=ChapterStatus(data.get('status', ChapterStatus.IDLE.value)),
        )


@dataclass
class Job:
    """One chapter waiting for (or undergoing) translation."""
    chapter: Chapter
    model: str
    system_prompt: str
    temperature: float
    thinking_budget: int = 0

    def to_request(self) -> TranslationRequest:
        return TranslationRequest(
            title=self.chapter.title,
            source_text=self.chapter.source_text,
            model=self.model,
            system_prompt=self.system_prompt,
            temperature=self.temperature,
            thinking_budget=self.thinking_budget,
        )


@dataclass
class JobResult:
    """Outcome of a single job, published on the event bus."""
    unit_id: str
    title: str
    model: str
    success: bool
    elapsed_ms: int
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'unit_id': self.unit_id,
            'title': self.title,
            'model': self.model,
            'success': self.success,
            'elapsed_ms': self.elapsed_ms,
            'error': self.error,
            'error_type': self.error_type,
        }


@dataclass
class RunSummary:
    """Counters for the run in progress."""
    succeeded: int = 0
    failed: int = 0
    stopped: bool = False
    failed_titles: list = field(default_factory=list)
