"""
Chat session persistence.

SessionStore applies the idle TTL on top of any SessionDb; SqlSessionDb is
the PostgreSQL-backed implementation.
"""

from .models import SessionData
from .store import SessionDb, SessionStore
from .sql import SqlSessionDb
from .sweeper import run_session_sweeper

__all__ = [
    # Models
    "SessionData",
    # Store
    "SessionDb",
    "SessionStore",
    "SqlSessionDb",
    # Housekeeping
    "run_session_sweeper",
]
