"""
Database models for the situation monitor.

A single key/value table backs the persistent cache tier and
persisted settings such as the debug toggle.
"""

from sitmon.models.base import (
    Base,
    engine,
    SessionLocal,
    create_db_engine,
    create_session_factory,
    init_db,
    get_session,
)
from sitmon.models.stored_value import StoredValue

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'create_db_engine',
    'create_session_factory',
    'init_db',
    'get_session',
    'StoredValue',
]
