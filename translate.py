"""
Command-line interface for chapter translation
"""
import os
import sys
import json
import argparse
import asyncio

from src.config import (
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    DEFAULT_THINKING_BUDGET,
    STATE_DB_PATH,
    USAGE_SYNC_ENABLED,
    TranslationOptions,
)
from src.core.glossary import TerminologyStore, CodexLibrary, compose_system_prompt
from src.core.llm.exceptions import TranslationError
from src.core.llm.model_profiles import MODEL_PROFILES
from src.core.llm.providers import create_transports
from src.core.queue import (
    Chapter,
    ChapterStatus,
    DurationEstimator,
    EventType,
    NotificationCenter,
    SharedUsageClient,
    TranslationScheduler,
    UsageTracker,
)
from src.persistence import Database, PersistedState
from src.utils.unified_logger import setup_cli_logger, LogType
from prompts import resolve_system_prompt


def load_chapters(path):
    """Read a JSON list of {title, content} objects."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('chapters', [])
    if not isinstance(data, list):
        raise ValueError("Input must be a JSON list of {title, content} objects")

    chapters = []
    for index, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise ValueError(f"Entry {index} is not an object")
        title = str(item.get('title', '')).strip() or f"Chapter {index}"
        chapters.append(Chapter.create(title, str(item.get('content', ''))))
    return chapters


async def run_translation(chapters, options, state, logger, sync_usage=True,
                          transports=None, sleep=asyncio.sleep):
    """
    Translate ``chapters`` in one bulk run.

    ``transports`` defaults to the ones built from configuration.

    Returns:
        The chapters, mutated in place by the scheduler

    Raises:
        TranslationError: Chapters were eligible but the run was refused
        (missing configuration, unknown model or daily limit reached)
    """
    shared = SharedUsageClient() if (sync_usage and USAGE_SYNC_ENABLED) else None
    usage = UsageTracker(state, shared)
    if transports is None:
        transports = create_transports()
    notifications = NotificationCenter()
    scheduler = TranslationScheduler(
        transports, usage, DurationEstimator(state), notifications, sleep=sleep
    )
    scheduler.events.subscribe(
        EventType.PROGRESS,
        lambda event: logger.info("Progress", LogType.PROGRESS, event.data)
    )

    try:
        await usage.sync_from_remote()
        system_prompt = compose_system_prompt(
            resolve_system_prompt(options.system_prompt),
            TerminologyStore(state).terms,
            CodexLibrary(state).active_book,
        )
        queued = scheduler.start_translation(
            chapters, options.model, system_prompt,
            options.temperature, options.thinking_budget
        )
        if queued:
            await scheduler.wait_idle()
        elif any(c.is_eligible for c in chapters):
            refusals = notifications.recent()
            reason = refusals[-1].message if refusals else "admission refused"
            raise TranslationError(f"Translation was not started: {reason}",
                                   {'model': options.model})
    finally:
        await scheduler.cancel()
        await usage.drain()
        for transport in transports.values():
            await transport.close()
        if shared:
            await shared.close()
    return chapters


def write_results(path, chapters):
    results = [{
        'unit_id': c.unit_id,
        'title': c.title,
        'status': c.status.value,
        'output_text': c.output_text,
    } for c in chapters]
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(results, f, ensure_ascii=False, indent=2)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Translate a JSON list of chapters using an LLM.")
    parser.add_argument("-i", "--input", required=True, help="Path to a JSON file: a list of {title, content} objects.")
    parser.add_argument("-o", "--output", default=None, help="Path to the results JSON. If not specified, uses input filename with suffix.")
    parser.add_argument("-m", "--model", default=DEFAULT_MODEL, choices=sorted(MODEL_PROFILES), help=f"LLM model (default: {DEFAULT_MODEL}).")
    parser.add_argument("--system-prompt", default=None, help="Path to a text file with the translation instructions.")
    parser.add_argument("--temperature", type=float, default=DEFAULT_TEMPERATURE, help=f"Sampling temperature (default: {DEFAULT_TEMPERATURE}).")
    parser.add_argument("--thinking-budget", type=int, default=DEFAULT_THINKING_BUDGET, help=f"Thinking token budget for models that support it (default: {DEFAULT_THINKING_BUDGET}).")
    parser.add_argument("--state-db", default=STATE_DB_PATH, help=f"SQLite file holding usage counters and the glossary (default: {STATE_DB_PATH}).")
    parser.add_argument("--no-sync", action="store_true", help="Do not synchronize daily usage with the shared counter.")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")

    args = parser.parse_args()

    if args.output is None:
        base, _ = os.path.splitext(args.input)
        args.output = f"{base}_translated.json"

    logger = setup_cli_logger(enable_colors=not args.no_color)

    if args.system_prompt:
        with open(args.system_prompt, 'r', encoding='utf-8') as f:
            args.system_prompt = f.read()

    try:
        chapters = load_chapters(args.input)
    except (OSError, ValueError) as e:
        parser.error(f"Cannot read chapters from {args.input}: {e}")

    options = TranslationOptions.from_cli_args(args)
    state = PersistedState(Database(args.state_db), debounce_ms=0)

    try:
        asyncio.run(run_translation(chapters, options, state, logger, sync_usage=not args.no_sync))
        write_results(args.output, chapters)
        logger.info(f"Results written to {args.output}")
    except Exception as e:
        logger.error(f"Translation failed: {str(e)}", LogType.ERROR_DETAIL, {
            'details': str(e),
            'input_file': args.input
        })
        sys.exit(1)
    finally:
        state.close()

    if any(c.status == ChapterStatus.FAILED for c in chapters):
        sys.exit(2)
