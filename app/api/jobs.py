"""
Job Routes Blueprint

Handles scheduling and field work:
- /api/jobs: list (date, status, driver, type, customer) and create
- /api/jobs/<id>: get, update; /status for lifecycle changes
- /api/jobs/<id>/history: event log for the job
- /api/jobs/bulk-assign-templates: replace template ids on many jobs
- /api/jobs/<id>/consumables, /equipment: stock usage and equipment
- /api/jobs/<id>/service-report/evaluate, /submit: service report rules
- /api/drivers/<id>/schedule: a driver's jobs for a day
- /api/report-templates: service report template CRUD
"""

import logging
from datetime import date
from flask import Blueprint, current_app, request, jsonify

from app.utils.helpers import (
    get_json_body, parse_bool, date_arg, current_organization_id, current_user_id, json_errors
)
from database.connection import get_db_session
from services.event_logger import get_event_logger
from services.job_service import JobService
from services.notification_service import NotificationService
from services import rules_engine
from validators import ValidationError, parse_date

logger = logging.getLogger(__name__)

# Create blueprint
jobs_bp = Blueprint('jobs_bp', __name__)


def job_service(session):
    org_id = current_organization_id(session)
    return JobService(session, org_id, current_user_id(),
                      notifications=NotificationService(session, org_id, current_app.config))


# ============================================================================
# JOBS
# ============================================================================

@jobs_bp.route('/api/jobs', methods=['GET'])
@json_errors('listing jobs')
def list_jobs():
    with get_db_session() as session:
        jobs = job_service(session).list_jobs(
            scheduled_date=date_arg('date'),
            status=request.args.get('status'),
            driver_id=request.args.get('driver_id'),
            job_type=request.args.get('job_type'),
            customer_id=request.args.get('customer_id'),
        )
        return jsonify({'success': True, 'jobs': jobs, 'count': len(jobs)})


@jobs_bp.route('/api/jobs', methods=['POST'])
@json_errors('creating job')
def create_job():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'job': job_service(session).create_job(data)}), 201


@jobs_bp.route('/api/jobs/<job_id>', methods=['GET'])
@json_errors('getting job')
def get_job(job_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'job': job_service(session).get_job(job_id)})


@jobs_bp.route('/api/jobs/<job_id>', methods=['PUT', 'PATCH'])
@json_errors('updating job')
def update_job(job_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'job': job_service(session).update_job(job_id, data)})


@jobs_bp.route('/api/jobs/<job_id>/status', methods=['POST'])
@json_errors('updating job status')
def update_job_status(job_id):
    data = get_json_body()
    if not data.get('status'):
        raise ValidationError('status is required', 'status')
    with get_db_session() as session:
        job = job_service(session).update_status(
            job_id, data['status'], force=parse_bool(data.get('force')), note=data.get('note')
        )
        return jsonify({'success': True, 'job': job})


@jobs_bp.route('/api/jobs/<job_id>/history', methods=['GET'])
@json_errors('getting job history')
def job_history(job_id):
    with get_db_session() as session:
        events = get_event_logger(session, current_organization_id(session)).get_entity_history(
            'job', job_id, limit=request.args.get('limit', 50, type=int)
        )
        return jsonify({'success': True, 'events': events})


@jobs_bp.route('/api/jobs/bulk-assign-templates', methods=['POST'])
@json_errors('assigning templates')
def bulk_assign_templates():
    data = get_json_body()
    with get_db_session() as session:
        result = job_service(session).bulk_assign_templates(data.get('job_ids'), data.get('template_ids'))
        return jsonify({'success': True, **result})


@jobs_bp.route('/api/drivers/<driver_id>/schedule', methods=['GET'])
@json_errors('getting driver schedule')
def driver_schedule(driver_id):
    day = date_arg('date', date.today())
    with get_db_session() as session:
        jobs = job_service(session).driver_schedule(driver_id, day)
        return jsonify({'success': True, 'date': day.isoformat(), 'jobs': jobs})


# ============================================================================
# CONSUMABLES & EQUIPMENT
# ============================================================================

@jobs_bp.route('/api/jobs/<job_id>/consumables', methods=['POST'])
@json_errors('recording job consumables')
def add_job_consumables(job_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, **job_service(session).add_consumables(job_id, data)}), 201


@jobs_bp.route('/api/jobs/<job_id>/equipment', methods=['POST'])
@json_errors('assigning equipment')
def assign_equipment(job_id):
    data = get_json_body()
    with get_db_session() as session:
        assignment = job_service(session).assign_equipment(job_id, data)
        return jsonify({'success': True, 'assignment': assignment}), 201


@jobs_bp.route('/api/equipment-assignments/<assignment_id>/return', methods=['POST'])
@json_errors('returning equipment')
def return_equipment(assignment_id):
    data = get_json_body()
    return_date = parse_date(data.get('return_date'), 'return_date')
    with get_db_session() as session:
        assignment = job_service(session).return_equipment(assignment_id, return_date)
        return jsonify({'success': True, 'assignment': assignment})


# ============================================================================
# SERVICE REPORTS
# ============================================================================

@jobs_bp.route('/api/report-templates', methods=['GET'])
@json_errors('listing report templates')
def list_templates():
    with get_db_session() as session:
        return jsonify({'success': True, 'templates': job_service(session).list_templates()})


@jobs_bp.route('/api/report-templates', methods=['POST'])
@json_errors('creating report template')
def create_template():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'template': job_service(session).create_template(data)}), 201


def _evaluate_report(session, job_id, data):
    service = job_service(session)
    job = service.get_job(job_id)
    template_id = data.get('template_id')
    if not template_id:
        raise ValidationError('template_id is required', 'template_id')
    template = service.get_template(template_id)
    result = rules_engine.evaluate_template(
        template.rules or {},
        data.get('data') or {},
        units=data.get('units'),
        job_data=job,
        last_visit=data.get('last_visit'),
    )
    return service, job, template, result


@jobs_bp.route('/api/jobs/<job_id>/service-report/evaluate', methods=['POST'])
@json_errors('evaluating service report')
def evaluate_service_report(job_id):
    """Required fields, fee suggestions, defaults and blocking issues for a report draft."""
    data = get_json_body()
    with get_db_session() as session:
        _, _, _, result = _evaluate_report(session, job_id, data)
        return jsonify({'success': True, **result})


@jobs_bp.route('/api/jobs/<job_id>/service-report/submit', methods=['POST'])
@json_errors('submitting service report')
def submit_service_report(job_id):
    data = get_json_body()
    with get_db_session() as session:
        service, job, template, result = _evaluate_report(session, job_id, data)
        if not result['can_submit']:
            return jsonify({'success': False, 'error': 'Service report has blocking issues',
                            'issues': result['issues']}), 400

        service.events.log('job', job['id'], 'SERVICE_REPORT_SUBMITTED',
                           description=f"{template.name} submitted for job {job['job_number']}",
                           metadata={'template_id': template.id, 'audit': result['audit']})
        return jsonify({'success': True, 'audit': result['audit'], 'fees': result['fees']})
