"""
Map Routes Blueprint

GeoJSON marker feeds for the dispatch and inventory maps:
- /api/maps/inventory: storage locations and job sites holding equipment
- /api/maps/jobs: scheduled job sites for a day (optionally one driver)

Responses carry a hash of the whole feature collection as ETag; a matching
If-None-Match gets 304. marker_hash in the body only tracks positions.
"""

import logging
from datetime import date
from flask import Blueprint, request, jsonify

from app.utils.helpers import date_arg, current_organization_id, json_errors
from database.connection import get_db_session
from services.map_service import MapService, content_hash

logger = logging.getLogger(__name__)

# Create blueprint
maps_bp = Blueprint('maps_bp', __name__)


def _marker_response(collection):
    etag = content_hash(collection['features'])
    if etag in request.if_none_match:
        return '', 304, {'ETag': f'"{etag}"'}
    response = jsonify({'success': True, **collection})
    response.set_etag(etag)
    return response


@maps_bp.route('/api/maps/inventory', methods=['GET'])
@json_errors('loading inventory markers')
def inventory_markers():
    with get_db_session() as session:
        collection = MapService(session, current_organization_id(session)).inventory_markers(
            as_of=date_arg('date', date.today())
        )
    return _marker_response(collection)


@maps_bp.route('/api/maps/jobs', methods=['GET'])
@json_errors('loading job markers')
def job_markers():
    with get_db_session() as session:
        collection = MapService(session, current_organization_id(session)).job_markers(
            date_arg('date', date.today()), driver_id=request.args.get('driver_id')
        )
    return _marker_response(collection)
