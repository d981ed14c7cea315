"""
Persisted debug toggle.

When on, the request layer logs cache hits and misses and the reason a
direct call fell back to relays. The flag is read at call time so it
can be flipped on a running process. A missing flag means off.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

DEBUG_FLAG_KEY = 'sitmon-debug'


def is_debug_mode(store) -> bool:
    """Read the persisted flag. Storage errors count as off."""
    try:
        return store.get(DEBUG_FLAG_KEY) is True
    except SQLAlchemyError as e:
        logger.warning(f'Could not read debug flag: {e}')
        return False


def set_debug_mode(store, enabled: bool) -> None:
    store.set(DEBUG_FLAG_KEY, bool(enabled))
    logger.info(f'Debug mode {"enabled" if enabled else "disabled"}')
