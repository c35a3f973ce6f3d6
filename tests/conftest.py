"""
Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and provides common fixtures
and configuration for all test modules.
"""

import sys
from pathlib import Path

# Add project root (and this directory, for the helpers module) to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from src.core.llm.model_profiles import PROVIDER_GEMINI, PROVIDER_CEREBRAS, PROVIDER_GPT_OSS
from src.core.queue import (
    DurationEstimator,
    EventBus,
    NotificationCenter,
    TranslationScheduler,
    UsageTracker,
)
from src.persistence import Database, PersistedState
from src.utils.unified_logger import get_logger
from helpers import ScriptedTransport, RecordingSleep


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep console output out of test reports."""
    logger = get_logger()
    previous = logger.console_output
    logger.console_output = False
    yield logger
    logger.console_output = previous


@pytest.fixture
def state(tmp_path):
    """PersistedState over a temporary database, writing through."""
    persisted = PersistedState(Database(str(tmp_path / 'state.db')), debounce_ms=0)
    yield persisted
    persisted.close()


@pytest.fixture
def notifications():
    return NotificationCenter(log_to_console=False)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def transports():
    return {
        PROVIDER_GEMINI: ScriptedTransport(PROVIDER_GEMINI),
        PROVIDER_CEREBRAS: ScriptedTransport(PROVIDER_CEREBRAS),
        PROVIDER_GPT_OSS: ScriptedTransport(PROVIDER_GPT_OSS),
    }


@pytest.fixture
def make_scheduler(transports, notifications, recording_sleep):
    """Factory building a scheduler around scripted transports."""

    def _make(usage=None, estimator=None, events=None):
        bus = events or EventBus()
        bus.enable_history()
        return TranslationScheduler(
            transports,
            usage or UsageTracker(),
            estimator or DurationEstimator(),
            notifications,
            events=bus,
            sleep=recording_sleep,
        )

    return _make
