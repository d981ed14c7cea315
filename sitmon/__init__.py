"""
Situation monitor backend package.

Resilient request layer for dashboards that aggregate third-party
feeds (flight tracking, seismic, space weather and similar), served
through Flask.

Modules:
    net/         Timeout, retry, concurrency gate, fetch, relay racing, batching
    cache/       Bounded memory tier over a SQLAlchemy-backed persistent tier
    models/      SQLAlchemy key/value table and session management
    api/         REST endpoints for feeds, statistics and cache maintenance
    debug.py     Persisted debug toggle
    errors.py    Failure taxonomy
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
