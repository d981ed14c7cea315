"""
API module for the situation monitor.

Provides REST endpoints for:
- Upstream feeds served through the resilient request layer
- Request layer statistics, cache maintenance and the debug toggle
"""

from sitmon.api.feeds import feeds_bp
from sitmon.api.network import network_bp

__all__ = ['feeds_bp', 'network_bp']
