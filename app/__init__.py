"""
PortaPro Field Service Backend - Application Package

This package contains the modular backend structure:
- api/: HTTP route handlers (Flask Blueprints)
- utils/: Shared utility functions (request helpers, timezones)

The app factory and core Flask setup remain in app_init.py at the project root.
Business logic lives in the top-level services/ package.
"""

import logging

logger = logging.getLogger(__name__)


def register_blueprints(app):
    """
    Register all API blueprints with the Flask app.
    Called from app_init.create_app after the database is configured.

    Blueprints are imported here rather than at module level because they
    import services that import app.utils.

    Args:
        app: Flask application instance
    """
    from app.api.customers import customers_bp
    from app.api.jobs import jobs_bp
    from app.api.billing import billing_bp
    from app.api.inventory import inventory_bp
    from app.api.fleet import fleet_bp
    from app.api.maintenance import maintenance_bp
    from app.api.compliance import compliance_bp
    from app.api.notifications import notifications_bp
    from app.api.maps import maps_bp
    from app.api.scheduler import scheduler_bp

    for blueprint in (customers_bp, jobs_bp, billing_bp, inventory_bp, fleet_bp,
                      maintenance_bp, compliance_bp, notifications_bp, maps_bp, scheduler_bp):
        app.register_blueprint(blueprint)
    logger.info("Registered API blueprints")


__all__ = ['register_blueprints']
