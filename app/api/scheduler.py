"""
Scheduler Routes Blueprint

Handles background job scheduler (service role only):
- /api/scheduler/status: Get scheduler status
- /api/scheduler/run/<job_id>: Manually trigger a job
- /api/scheduler/jobs/<job_id>/enable, /disable: Toggle a job
"""

import logging
from flask import Blueprint, current_app, jsonify

from app.utils.helpers import json_errors
from security import require_api_key
from services.scheduler import get_scheduler, register_default_jobs

logger = logging.getLogger(__name__)

# Create blueprint
scheduler_bp = Blueprint('scheduler_bp', __name__)


def _scheduler():
    """The global scheduler; default jobs are registered when the loop was never started."""
    scheduler = get_scheduler()
    if not scheduler.jobs:
        register_default_jobs(scheduler, current_app.config)
    return scheduler


# ============================================================================
# SCHEDULER API
# ============================================================================

@scheduler_bp.route('/api/scheduler/status', methods=['GET'])
@require_api_key
@json_errors('getting scheduler status')
def get_scheduler_status():
    """Get the status of background jobs."""
    scheduler = _scheduler()
    return jsonify({
        'success': True,
        'running': scheduler.running,
        'jobs': scheduler.get_job_status()
    })


@scheduler_bp.route('/api/scheduler/run/<job_id>', methods=['POST'])
@require_api_key
@json_errors('running scheduler job')
def run_scheduler_job(job_id):
    """Manually trigger a scheduled job."""
    outcome = _scheduler().run_job_now(job_id)
    if outcome is None:
        return jsonify({'success': False, 'error': 'Job not found'}), 404
    if not outcome['success']:
        return jsonify({'success': False, 'job_id': job_id, 'error': outcome['error']}), 500
    return jsonify({'success': True, 'job_id': job_id, 'result': outcome['result']})


@scheduler_bp.route('/api/scheduler/jobs/<job_id>/enable', methods=['POST'])
@require_api_key
@json_errors('enabling scheduler job')
def enable_job(job_id):
    if not _scheduler().enable_job(job_id):
        return jsonify({'success': False, 'error': 'Job not found'}), 404
    return jsonify({'success': True, 'job_id': job_id, 'enabled': True})


@scheduler_bp.route('/api/scheduler/jobs/<job_id>/disable', methods=['POST'])
@require_api_key
@json_errors('disabling scheduler job')
def disable_job(job_id):
    if not _scheduler().disable_job(job_id):
        return jsonify({'success': False, 'error': 'Job not found'}), 404
    return jsonify({'success': True, 'job_id': job_id, 'enabled': False})
