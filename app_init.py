"""
Application Initialization Module
Properly initializes Flask app with all infrastructure components
"""
import os
from flask import Flask
from config import get_config
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from database.connection import configure_engine, init_db
from database.seed import seed_database
import logging

logger = logging.getLogger(__name__)


def create_app(config_class=None):
    """
    Application factory that creates and configures Flask app with all infrastructure

    Args:
        config_class: Configuration class; defaults to the one selected by FLASK_ENV

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    app.config.from_object(config_class or get_config())

    setup_logging(app)

    logger.info("=" * 60)
    logger.info("Initializing PortaPro Field Service Backend")
    logger.info("=" * 60)
    logger.info(f"Environment: {os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Debug mode: {app.debug}")

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    initialize_database(app)

    # Register health check endpoints
    register_health_checks(app)

    from app import register_blueprints
    register_blueprints(app)

    if app.config.get('SCHEDULER_ENABLED'):
        start_background_services(app)

    logger.info("Application initialization complete")
    logger.info("=" * 60)

    return app


def initialize_database(app):
    """
    Bind the engine to DATABASE_URL. In development and tests the tables
    are created and seeded directly; production schemas come from Alembic.

    Args:
        app: Flask application instance
    """
    configure_engine(app.config['DATABASE_URL'], echo=app.config.get('SQLALCHEMY_ECHO', False))

    if app.config.get('AUTO_CREATE_TABLES'):
        init_db()
        seed_database()


def start_background_services(app):
    """Start the polling scheduler with the default jobs."""
    from services.scheduler import init_scheduler

    app.scheduler = init_scheduler(app.config)
    logger.info("Background scheduler started")
