"""
Server-sent events decoding for streamed LLM responses.

Both Gemini (``alt=sse``) and the OpenAI-style chat completion endpoints frame
their streams as SSE: ``data:`` lines, a blank line closing each event.
"""

from typing import AsyncIterator

DONE_MARKER = '[DONE]'


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Yield the data payload of each event in an SSE line stream.

    Multi-line data fields are joined with newlines, comment lines (leading
    ``:``) and non-data fields are ignored, and an event still buffered when
    the stream ends is flushed.

    Args:
        lines: Async iterator of decoded lines, e.g. ``response.aiter_lines()``

    Yields:
        The raw data string of each complete event
    """
    data_lines = []
    async for raw_line in lines:
        line = raw_line.rstrip('\r\n')
        if not line:
            if data_lines:
                yield '\n'.join(data_lines)
                data_lines = []
            continue
        if line.startswith(':'):
            continue

        field, _, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]
        if field == 'data':
            data_lines.append(value)

    if data_lines:
        yield '\n'.join(data_lines)
