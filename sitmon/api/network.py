"""
Request layer status and maintenance endpoints.

Provides endpoints for:
- GET /api/network/stats - Cache and concurrency statistics
- POST /api/network/cache/clear - Drop both cache tiers
- POST /api/network/cache/prune - Drop persisted entries past retention
- GET/PUT /api/network/debug - Read or flip the persisted debug flag
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request, current_app

from sitmon.debug import is_debug_mode, set_debug_mode

logger = logging.getLogger(__name__)

network_bp = Blueprint('network', __name__, url_prefix='/api/network')


def _fetcher():
    return current_app.config['FETCHER']


@network_bp.route('/stats', methods=['GET'])
def get_stats():
    """
    Get request layer statistics.

    Returns hit/miss/error counters, hit rate, memory tier size and
    the number of requests currently in flight.
    """
    start_time = time.perf_counter()
    stats = _fetcher().stats()
    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'cache': stats,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@network_bp.route('/cache/clear', methods=['POST'])
def clear_cache():
    """Empty both cache tiers and reset statistics."""
    _fetcher().clear_cache()
    logger.info('Cache cleared via API')
    return jsonify({'success': True, 'message': 'Cache cleared'})


@network_bp.route('/cache/prune', methods=['POST'])
def prune_cache():
    """
    Remove persisted entries older than the retention window.

    Body (optional): {"older_than_seconds": float}
    """
    data = request.get_json(silent=True) or {}
    older_than = data.get('older_than_seconds')
    if older_than is not None:
        try:
            older_than = float(older_than)
        except (ValueError, TypeError):
            return jsonify({'error': 'older_than_seconds must be a number'}), 400
        if older_than < 0:
            return jsonify({'error': 'older_than_seconds must be >= 0'}), 400

    removed = _fetcher().cache.prune(older_than)
    return jsonify({'success': True, 'removed': removed})


@network_bp.route('/debug', methods=['GET', 'PUT'])
def debug_mode():
    """
    Get or set the persisted debug flag.

    PUT body: {"enabled": bool}
    """
    store = _fetcher().cache.persistent.store

    if request.method == 'GET':
        return jsonify({'enabled': is_debug_mode(store)})

    data = request.get_json(silent=True)
    if not data or not isinstance(data.get('enabled'), bool):
        return jsonify({'error': 'JSON body with boolean "enabled" required'}), 400

    set_debug_mode(store, data['enabled'])
    return jsonify({'success': True, 'enabled': data['enabled']})
