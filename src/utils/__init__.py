"""
Utility modules

The unified logger lives in ``src.utils.unified_logger``; import from there.
"""

__all__ = []
