"""
Flask Application Factory - Privacy Settings Monitor API

Wires the platform registry, template system, remote crawler and scraping
engine onto one Flask app. The engine lives in app.extensions so routes and
CLI commands share the same scraper pool and platform cache.
"""

import logging

from flask import Flask, jsonify
from flask_cors import CORS

from config import Config
from models.database import db

LOG_FORMAT = '%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s'


def _configure_logging(app: Flask) -> None:
    from api.middleware import RequestIdLogFilter

    root = logging.getLogger()
    root.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # create_app can run more than once per process (tests); keep one handler
    for handler in root.handlers:
        if getattr(handler, '_privacy_monitor', False):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdLogFilter())
    handler._privacy_monitor = True
    root.addHandler(handler)


def _build_scraping_engine(app: Flask):
    from scrapers.engine import ScrapingEngine
    from scrapers.firecrawl import build_firecrawl_client
    from services.platform_registry import PlatformRegistry
    from services.template_system import TemplateSystem
    from utils.cache import TTLCache

    cache_minutes = app.config['PLATFORM_CONFIG_CACHE_MINUTES']
    registry = PlatformRegistry(
        db.session,
        cache=TTLCache(maxsize=500, ttl=cache_minutes * 60),
        cache_minutes=cache_minutes,
    )

    firecrawl_client = build_firecrawl_client(app.config)
    if firecrawl_client is None:
        app.logger.info("FIRECRAWL_API_KEY not set - fallback scraping disabled")

    return ScrapingEngine(
        db.session,
        registry=registry,
        template_system=TemplateSystem(db.session),
        firecrawl_client=firecrawl_client,
        timeouts=app.config['SCRAPING_TIMEOUTS'],
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config['SQLALCHEMY_DATABASE_URI'] = config_object.database_url()

    _configure_logging(app)

    # Extension and dashboard call from arbitrary origins
    CORS(app,
         resources={r"/api/*": {"origins": "*"}},
         methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
         expose_headers=["X-Request-ID"],
         supports_credentials=False,
         send_wildcard=True)

    # === API MIDDLEWARE ===
    from api.middleware import setup_request_id_middleware, setup_error_handlers
    setup_request_id_middleware(app)
    setup_error_handlers(app)

    db.init_app(app)

    with app.app_context():
        # Import all models before create_all to ensure tables are created
        from models import Platform, PrivacyTemplate, PrivacySnapshot  # noqa: F401
        db.create_all()

    engine = _build_scraping_engine(app)
    with app.app_context():
        from scrapers.platform_scraper import register_platform_scrapers
        register_platform_scrapers(engine)
    app.extensions['scraping_engine'] = engine

    # Register routes
    from routes.scraping import scraping_bp
    app.register_blueprint(scraping_bp, url_prefix='/api/scraping')

    @app.route('/api/health')
    def health():
        engine = app.extensions['scraping_engine']
        return jsonify({
            "status": "ok",
            "scrapers": engine.get_available_scrapers(),
            "firecrawl_enabled": engine.firecrawl_client is not None,
        })

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=app.config.get('DEBUG', False))
