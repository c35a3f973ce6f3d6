"""
Translation job queue: scheduling, usage accounting, ETA and notifications.
"""

from .models import Chapter, ChapterStatus, Job, JobResult
from .events import EventBus, Event, EventType
from .durations import DurationEstimator
from .usage import UsageTracker, SharedUsageClient
from .notifications import NotificationCenter, NotificationType
from .scheduler import TranslationScheduler

__all__ = [
    'Chapter',
    'ChapterStatus',
    'Job',
    'JobResult',
    'EventBus',
    'Event',
    'EventType',
    'DurationEstimator',
    'UsageTracker',
    'SharedUsageClient',
    'NotificationCenter',
    'NotificationType',
    'TranslationScheduler',
]
