"""
Shared test doubles: scripted transports, a recording sleep and SSE encoding.
"""

import asyncio
import json

from src.core.llm.key_pool import ApiKeyPool
from src.core.llm.model_profiles import PROVIDER_GEMINI
from src.core.queue import Chapter


def sse(*events, done=False) -> bytes:
    """Encode JSON events as a server-sent events body."""
    body = ''.join(f"data: {json.dumps(event)}\n\n" for event in events)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode('utf-8')


def gemini_chunk(text, thought=False):
    part = {"text": text}
    if thought:
        part["thought"] = True
    return {"candidates": [{"content": {"role": "model", "parts": [part]}}]}


def chat_chunk(text):
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def make_chapters(*titles):
    return [Chapter.create(title, f"Source text of {title}.") for title in titles]


class ScriptedTransport:
    """
    Stand-in for a provider transport.

    ``script`` maps a chapter title to the deltas to stream, or to an
    exception to raise. Titles passed to ``gate`` wait for their release
    event, which lets a test act while a job is in flight.
    """

    def __init__(self, provider_name=PROVIDER_GEMINI, script=None, problem=None):
        self.provider_name = provider_name
        self.key_pool = ApiKeyPool(provider_name, ['test-key-0001'])
        self.script = script or {}
        self.problem = problem
        self.gates = {}
        self.started = {}
        self.requests = []
        self.in_flight = 0
        self.max_in_flight = 0

    def configuration_problem(self):
        return self.problem

    def is_configured(self):
        return self.problem is None

    def gate(self, title):
        """Block the job for ``title``; returns (started, release) events."""
        self.started[title] = asyncio.Event()
        self.gates[title] = asyncio.Event()
        return self.started[title], self.gates[title]

    async def stream(self, request, on_delta, on_key_rotated=None, on_restart=None):
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if request.title in self.started:
                self.started[request.title].set()
            if request.title in self.gates:
                await self.gates[request.title].wait()
            await asyncio.sleep(0)

            outcome = self.script.get(request.title, [f"Translated {request.title}"])
            if isinstance(outcome, BaseException):
                raise outcome
            for delta in outcome:
                on_delta(delta)
                await asyncio.sleep(0)
            return ''.join(outcome)
        finally:
            self.in_flight -= 1

    async def close(self):
        pass


class RecordingSleep:
    """No-op replacement for asyncio.sleep that remembers the delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)
        await asyncio.sleep(0)
