"""
PortaPro Field Service Backend

Routes live in the app/ package as Flask Blueprints, one per domain.
Business logic lives in services/, persistence in database/.

Run locally:
    flask --app application run
"""
import os
import logging

from app_init import create_app

app = create_app()
logger = logging.getLogger(__name__)


if __name__ == '__main__':
    # Production schemas are managed by Alembic: alembic upgrade head
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting development server on port {port}")
    app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))
