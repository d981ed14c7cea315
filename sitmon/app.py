"""
Situation monitor Flask application.

Main entry point for the web application. Initializes:
- Database schema for the persistent cache tier
- The request layer (fetcher, proxy racer, batch fetcher)
- API routes

Usage:
    python -m sitmon.app

Or with gunicorn:
    gunicorn 'sitmon.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from sitmon.api import feeds_bp, network_bp
from sitmon.cache import PersistentCache, PersistentStore, TieredCache
from sitmon.config import config
from sitmon.models import init_db
from sitmon.net import BatchFetcher, ProxyRacer, ResilientFetcher

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def build_fetcher(session_factory=None) -> ResilientFetcher:
    """Create a request layer stack over the given session factory."""
    store = PersistentStore(session_factory)
    cache = TieredCache(persistent=PersistentCache(store))
    return ResilientFetcher(cache=cache)


def create_app(fetcher: Optional[ResilientFetcher] = None, create_schema: bool = True) -> Flask:
    """
    Application factory for Flask.

    Args:
        fetcher: Pre-built request layer (tests pass an isolated one).
        create_schema: Whether to create tables in the default database.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if create_schema:
        logger.info('Initializing database...')
        init_db()

    fetcher = fetcher or build_fetcher()
    racer = ProxyRacer(fetcher)
    app.config['FETCHER'] = fetcher
    app.config['PROXY_RACER'] = racer
    app.config['BATCH_FETCHER'] = BatchFetcher(racer)
    app.config['BATCH_ALLOWED_HOSTS'] = config.network.batch_allowed_hosts

    app.register_blueprint(feeds_bp)
    app.register_blueprint(network_bp)

    logger.info(
        f'Request layer ready: max {fetcher.gate.max_concurrent} concurrent, '
        f'{len(config.relays.endpoints)} relays'
    )

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))
    logger.info(f'Starting situation monitor on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,
    )


if __name__ == '__main__':
    run_development_server()
