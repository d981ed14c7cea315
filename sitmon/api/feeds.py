"""
Upstream feed endpoints.

Thin callers of the request layer: they validate query parameters,
pick a TTL and forward the upstream payload as-is. Payload parsing is
left to the frontend panels.

Provides endpoints for:
- GET /api/feeds/seismic - USGS earthquake summary feed
- GET /api/feeds/adsb - OpenSky state vectors for a bounding box
- GET /api/feeds/spaceweather - NOAA SWPC solar and geomagnetic indices
- POST /api/feeds/batch - List of allowlisted URLs, one outcome per URL
"""

import ipaddress
import logging
import time
from urllib.parse import urlencode, urlparse

from flask import Blueprint, jsonify, request, current_app

from sitmon.config import TTL
from sitmon.errors import FetchError
from sitmon.net import BatchRequest, FetchOptions

logger = logging.getLogger(__name__)

feeds_bp = Blueprint('feeds', __name__, url_prefix='/api/feeds')

USGS_BASE_URL = 'https://earthquake.usgs.gov/earthquakes/feed/v1.0'
OPENSKY_BASE_URL = 'https://opensky-network.org/api'
SWPC_BASE_URL = 'https://services.swpc.noaa.gov'

FEED_RANGES = ('hour', 'day', 'week', 'month')
FEED_MAGNITUDES = ('significant', 'all', '4.5', '2.5', '1.0')

SPACE_WEATHER_FEEDS = {
    'solar_flux': f'{SWPC_BASE_URL}/json/f107_cm_flux.json',
    'kp_index': f'{SWPC_BASE_URL}/json/planetary_k_index_1m.json',
    'sunspots': f'{SWPC_BASE_URL}/json/solar-cycle/observed-solar-cycle-indices.json',
}

MAX_BATCH_SIZE = 50

# Options a client may set on a batch entry
BATCH_OPTION_KEYS = ('response_shape', 'cache_ttl_seconds', 'use_cache')


def _upstream_error(e: FetchError, message: str):
    logger.error(f'{message}: {e}')
    return jsonify({'error': message, 'detail': str(e)}), 502


@feeds_bp.route('/seismic', methods=['GET'])
def get_seismic():
    """
    Get earthquakes from the USGS summary feed.

    Query params:
    - range: hour|day|week|month (default day)
    - magnitude: significant|all|4.5|2.5|1.0 (default all)
    """
    feed_range = request.args.get('range', 'day')
    magnitude = request.args.get('magnitude', 'all')

    if feed_range not in FEED_RANGES:
        return jsonify({
            'error': f'Invalid range parameter. Must be one of: {", ".join(FEED_RANGES)}'
        }), 400
    if magnitude not in FEED_MAGNITUDES:
        return jsonify({
            'error': f'Invalid magnitude parameter. Must be one of: {", ".join(FEED_MAGNITUDES)}'
        }), 400

    url = f'{USGS_BASE_URL}/summary/{magnitude}_{feed_range}.geojson'
    try:
        data = current_app.config['PROXY_RACER'].fetch_via_best_route(
            url,
            FetchOptions(response_shape='json', cache_ttl_seconds=TTL.DEFAULT, timeout_seconds=15),
        )
    except FetchError as e:
        return _upstream_error(e, 'Failed to fetch earthquake data')

    return jsonify({
        'earthquakes': data,
        'timestamp': int(time.time() * 1000),
    })


@feeds_bp.route('/adsb', methods=['GET'])
def get_adsb():
    """
    Get aircraft state vectors from OpenSky.

    Query params (all optional): lamin, lomin, lamax, lomax
    """
    params = {}
    for name in ('lamin', 'lomin', 'lamax', 'lomax'):
        value = request.args.get(name)
        if value is None:
            continue
        try:
            params[name] = float(value)
        except ValueError:
            return jsonify({'error': f'Invalid {name} parameter'}), 400

    url = f'{OPENSKY_BASE_URL}/states/all'
    if params:
        url = f'{url}?{urlencode(params)}'

    try:
        # ADS-B moves fast; direct only, relays add little for a 10s-fresh feed
        data = current_app.config['FETCHER'].fetch(
            url,
            FetchOptions(response_shape='json', cache_ttl_seconds=10, timeout_seconds=15),
        )
    except FetchError as e:
        return _upstream_error(e, 'Failed to fetch ADS-B data')

    return jsonify({
        'states': data,
        'timestamp': int(time.time() * 1000),
    })


@feeds_bp.route('/spaceweather', methods=['GET'])
def get_space_weather():
    """
    Get solar flux, Kp index and sunspot series from NOAA SWPC.

    The three feeds are fetched in parallel; a failed feed is reported
    in `errors` while the others are still returned.
    """
    outcomes = current_app.config['BATCH_FETCHER'].fetch_all([
        {
            'url': url,
            'source': name,
            'options': {'response_shape': 'json', 'cache_ttl_seconds': TTL.LONG / 2},
        }
        for name, url in SPACE_WEATHER_FEEDS.items()
    ])

    data = {o.source_label: o.payload for o in outcomes if o.ok}
    errors = {o.source_label: str(o.error) for o in outcomes if not o.ok}
    status = 200 if data else 502

    return jsonify({
        'conditions': data,
        'errors': errors,
        'timestamp': int(time.time() * 1000),
    }), status


@feeds_bp.route('/batch', methods=['POST'])
def fetch_batch():
    """
    Fetch a list of URLs in parallel.

    Body: {"requests": [{"url": str, "source": str, "options": {...}}]}

    Only http(s) URLs on BATCH_ALLOWED_HOSTS (or their subdomains) are
    accepted. Of the options, only those in BATCH_OPTION_KEYS are
    honoured; headers and relays stay under server control.

    Always returns 200 with one outcome per request, in order.
    """
    data = request.get_json(silent=True)
    if not data or not isinstance(data.get('requests'), list):
        return jsonify({'error': 'JSON body with "requests" list required'}), 400

    items = data['requests']
    if len(items) > MAX_BATCH_SIZE:
        return jsonify({'error': f'At most {MAX_BATCH_SIZE} requests per batch'}), 400

    allowed_hosts = current_app.config['BATCH_ALLOWED_HOSTS']
    try:
        batch = [_parse_batch_item(item, allowed_hosts) for item in items]
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({'error': f'Invalid request entry: {e}'}), 400

    outcomes = current_app.config['BATCH_FETCHER'].fetch_all(batch)
    return jsonify({
        'results': [o.to_dict() for o in outcomes],
        'timestamp': int(time.time() * 1000),
    })


def _parse_batch_item(item: dict, allowed_hosts) -> BatchRequest:
    if not isinstance(item, dict) or not isinstance(item.get('url'), str):
        raise ValueError('each entry needs a "url" string')
    check_batch_url(item['url'], allowed_hosts)

    options = item.get('options')
    if options is not None and not isinstance(options, dict):
        raise TypeError('options must be an object')
    options = {k: v for k, v in (options or {}).items() if k in BATCH_OPTION_KEYS}

    return BatchRequest(
        url=item['url'],
        options=FetchOptions.from_dict(options),
        source_label=item.get('source'),
    )


def check_batch_url(url: str, allowed_hosts) -> None:
    """
    Raise ValueError unless `url` is safe to fetch on a client's behalf.

    IP literals are refused when they are not globally routable, even if
    listed, so loopback, private, link-local and metadata addresses never
    get through.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(f'unsupported URL scheme: {parsed.scheme or "none"}')

    host = (parsed.hostname or '').rstrip('.').lower()
    if not host:
        raise ValueError('URL has no host')

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = None
    if address is not None and not address.is_global:
        raise ValueError(f'host not allowed: {host}')

    for allowed in allowed_hosts:
        allowed = allowed.lower()
        if host == allowed or host.endswith('.' + allowed):
            return
    raise ValueError(f'host not allowed: {host}')
