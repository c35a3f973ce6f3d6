"""
Unit tests for server-sent events decoding.
"""
import pytest

from src.core.llm.utils.sse import iter_sse_data


async def _lines(*lines):
    for line in lines:
        yield line


async def _collect(*lines):
    return [data async for data in iter_sse_data(_lines(*lines))]


class TestIterSseData:
    """Tests for iter_sse_data."""

    @pytest.mark.asyncio
    async def test_one_event_per_blank_line(self):
        events = await _collect('data: {"a": 1}', '', 'data: {"b": 2}', '')
        assert events == ['{"a": 1}', '{"b": 2}']

    @pytest.mark.asyncio
    async def test_multi_line_data_is_joined(self):
        events = await _collect('data: first', 'data: second', '')
        assert events == ['first\nsecond']

    @pytest.mark.asyncio
    async def test_comments_and_other_fields_are_ignored(self):
        events = await _collect(': keep-alive', 'event: message', 'id: 7', 'data: payload', '')
        assert events == ['payload']

    @pytest.mark.asyncio
    async def test_trailing_event_is_flushed(self):
        events = await _collect('data: [DONE]')
        assert events == ['[DONE]']

    @pytest.mark.asyncio
    async def test_data_without_space(self):
        events = await _collect('data:{"x":1}', '')
        assert events == ['{"x":1}']

    @pytest.mark.asyncio
    async def test_blank_lines_alone_yield_nothing(self):
        assert await _collect('', '', '') == []
