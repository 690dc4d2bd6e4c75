"""
Root pytest configuration for backend tests.

Provides:
- Shared fixtures (app, client, session, registry, engine)
- Seeded default platforms
"""

import sys
import threading
from pathlib import Path

# Add backend directory to Python path so imports like
# `from services.template_system import ...` and `from scrapers.base import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest


@pytest.fixture
def app():
    """Create test Flask application on an in-memory database."""
    from app import create_app
    from config import TestingConfig
    from models.database import db

    app = create_app(TestingConfig)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def session(app):
    from models.database import db
    return db.session


@pytest.fixture
def engine(app):
    return app.extensions['scraping_engine']


@pytest.fixture
def registry(engine):
    return engine.registry


@pytest.fixture
def seeded(registry):
    """Default platforms registered; returns {slug: PlatformConfig}."""
    registry.initialize_default_platforms()
    return {p.slug: p for p in registry.get_active_platforms()}


@pytest.fixture
def google(seeded):
    return seeded['google']


@pytest.fixture
def release():
    """Event released at teardown so blocked scrapes can finish."""
    event = threading.Event()
    yield event
    event.set()
