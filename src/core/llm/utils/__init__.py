"""
LLM Utility Modules

Shared utilities used across multiple providers.

Components:
    - sse: Server-sent events decoding for streamed responses
"""

from .sse import iter_sse_data, DONE_MARKER

__all__ = ['iter_sse_data', 'DONE_MARKER']
