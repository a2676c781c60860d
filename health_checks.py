"""
Health Check & Monitoring Endpoints
Provides endpoints for deployment health checks and monitoring
"""
import os
import sys
import time
import psutil
from datetime import datetime
from typing import Dict, Any
from flask import Blueprint, jsonify, current_app
import logging

from database.connection import check_db_connection

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__)

# Track application start time
START_TIME = time.time()

SERVICE_NAME = 'portapro-backend'


def get_system_metrics() -> Dict[str, Any]:
    """
    Get basic process metrics

    Returns:
        Dictionary of system metrics
    """
    try:
        process = psutil.Process()

        return {
            'cpu_percent': process.cpu_percent(interval=0.1),
            'memory_mb': process.memory_info().rss / 1024 / 1024,
            'memory_percent': process.memory_percent(),
            'threads': process.num_threads(),
        }
    except psutil.Error as e:
        logger.warning(f"Failed to get system metrics: {e}")
        return {}


def get_uptime() -> Dict[str, Any]:
    """
    Get application uptime

    Returns:
        Dictionary with uptime information
    """
    uptime_seconds = time.time() - START_TIME

    return {
        'uptime_seconds': round(uptime_seconds, 2),
        'uptime_minutes': round(uptime_seconds / 60, 2),
        'uptime_hours': round(uptime_seconds / 3600, 2),
        'started_at': datetime.fromtimestamp(START_TIME).isoformat()
    }


def check_providers(app) -> Dict[str, bool]:
    """
    Report which outbound providers are configured

    Args:
        app: Flask application instance

    Returns:
        Dictionary of provider availability
    """
    return {
        'email_resend': bool(app.config.get('RESEND_API_KEY')),
        'email_smtp': bool(app.config.get('SMTP_HOST')),
        'sms_twilio': bool(app.config.get('TWILIO_ACCOUNT_SID') and app.config.get('TWILIO_AUTH_TOKEN')),
        'scheduler': bool(app.config.get('SCHEDULER_ENABLED')),
    }


def check_database() -> Dict[str, Any]:
    """Run a trivial query against the configured database"""
    try:
        check_db_connection()
        return {'connected': True}
    except RuntimeError as e:
        return {'connected': False, 'error': str(e)}


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint
    Returns 200 when the process is up and the database answers
    """
    database = check_database()
    status = 'healthy' if database['connected'] else 'degraded'

    return jsonify({
        'status': status,
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME,
        'uptime': get_uptime(),
        'database': database,
        'providers': check_providers(current_app),
        'system': get_system_metrics(),
    }), 200 if database['connected'] else 503


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """
    Readiness probe endpoint
    Returns 200 if application is ready to serve requests
    """
    database = check_database()
    is_ready = database['connected']

    return jsonify({
        'status': 'ready' if is_ready else 'not_ready',
        'timestamp': datetime.utcnow().isoformat(),
        'checks': {
            'database': database,
            'providers': check_providers(current_app),
        }
    }), 200 if is_ready else 503


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Basic metrics endpoint
    """
    return jsonify({
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME,
        'version': '1.0.0',
        'environment': os.environ.get('FLASK_ENV', 'production'),
        'uptime': get_uptime(),
        'system': get_system_metrics(),
        'providers': check_providers(current_app),
        'python_version': sys.version.split()[0]
    }), 200


@health_bp.route('/ping', methods=['GET'])
def ping():
    """
    Simple ping endpoint
    Returns immediate response for basic connectivity tests
    """
    return 'pong', 200


def register_health_checks(app):
    """
    Register health check blueprint with Flask app

    Args:
        app: Flask application instance
    """
    app.register_blueprint(health_bp, url_prefix='/api')
    logger.info("Health check endpoints registered")
    logger.info("Available endpoints: /api/health, /api/ready, /api/metrics, /api/ping")
