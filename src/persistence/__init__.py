"""
Persistence module for workbench state.
"""

from .database import Database
from .persisted_state import PersistedState

__all__ = ['Database', 'PersistedState']
