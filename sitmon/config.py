"""
Configuration management for the situation monitor.

Loads settings from environment variables with sensible defaults.
All tunables for the request layer (timeouts, retries, concurrency,
caching, relays) are centralized here; every value can still be
overridden per call through FetchOptions.
"""

import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


DEFAULT_RELAYS = (
    'https://api.allorigins.win/raw?url=',
    'https://corsproxy.io/?url=',
)

# Hosts the public batch endpoint may reach
DEFAULT_BATCH_HOSTS = (
    'earthquake.usgs.gov',
    'opensky-network.org',
    'services.swpc.noaa.gov',
    'celestrak.org',
    'eonet.gsfc.nasa.gov',
    'api.gdeltproject.org',
)


def _parse_bool(value: str, default: bool = False) -> bool:
    """Parse a truthy/falsy environment string."""
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_list(value: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    """Parse a comma-separated list, or return default if empty."""
    if not value:
        return default
    items = tuple(item.strip() for item in value.split(',') if item.strip())
    return items or default


@dataclass(frozen=True)
class TTL:
    """Cache TTL presets (seconds), selected per data source."""
    SHORT: float = 60.0  # Volatile feeds (aircraft, space weather alerts)
    DEFAULT: float = 300.0
    LONG: float = 1800.0  # Slowly-changing feeds (TLEs, host intel)


@dataclass(frozen=True)
class NetworkConfig:
    """Request layer settings."""
    timeout_seconds: float = float(os.getenv('FETCH_TIMEOUT_SECONDS', '10'))
    retry_attempts: int = int(os.getenv('RETRY_ATTEMPTS', '3'))
    retry_base_delay_seconds: float = float(os.getenv('RETRY_BASE_DELAY_SECONDS', '1.0'))
    max_concurrent: int = int(os.getenv('MAX_CONCURRENT_REQUESTS', '6'))

    # Relays are slower than direct calls, so they get their own budget
    relay_retry_attempts: int = int(os.getenv('RELAY_RETRY_ATTEMPTS', '2'))
    batch_max_workers: int = int(os.getenv('BATCH_MAX_WORKERS', '8'))
    user_agent: str = os.getenv('USER_AGENT', 'SituationMonitor/2.0')
    batch_allowed_hosts: Tuple[str, ...] = field(
        default_factory=lambda: _parse_list(os.getenv('BATCH_ALLOWED_HOSTS', ''), DEFAULT_BATCH_HOSTS)
    )


@dataclass(frozen=True)
class CacheConfig:
    """Two-tier response cache settings."""
    enabled: bool = _parse_bool(os.getenv('CACHE_ENABLED', ''), default=True)
    ttl_seconds: float = float(os.getenv('CACHE_TTL_SECONDS', str(TTL.DEFAULT)))
    memory_max_entries: int = 100
    persistent_prefix: str = 'cache:'
    stale_retention_hours: int = int(os.getenv('STALE_RETENTION_HOURS', '24'))


@dataclass(frozen=True)
class RelayConfig:
    """Relay endpoints used when a direct call is blocked or failing."""
    endpoints: Tuple[str, ...] = field(
        default_factory=lambda: _parse_list(os.getenv('RELAY_ENDPOINTS', ''), DEFAULT_RELAYS)
    )


@dataclass(frozen=True)
class DatabaseConfig:
    """Database backing the persistent cache tier."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///sitmon.db')


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    network: NetworkConfig
    cache: CacheConfig
    relays: RelayConfig
    database: DatabaseConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        network=NetworkConfig(),
        cache=CacheConfig(),
        relays=RelayConfig(),
        database=DatabaseConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
