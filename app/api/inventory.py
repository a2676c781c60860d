"""
Inventory Routes Blueprint

Handles rentable products, consumables and storage locations:
- /api/products: product CRUD, tracked items, stock summary, availability
- /api/products/<id>/adjust-stock: +/- master stock
- /api/consumables: CRUD, low stock, per-location stock, transfers, counts
- /api/consumable-bundles: bundle list/create
- /api/storage-locations: storage location CRUD
"""

import logging
from datetime import date
from flask import Blueprint, request, jsonify

from app.utils.helpers import (
    get_json_body, parse_bool, date_arg, current_organization_id, current_user_id, json_errors
)
from database.connection import get_db_session
from services.inventory_service import InventoryService
from validators import ValidationError, parse_number

logger = logging.getLogger(__name__)

# Create blueprint
inventory_bp = Blueprint('inventory_bp', __name__)


def inventory_service(session):
    return InventoryService(session, current_organization_id(session), current_user_id())


# ============================================================================
# PRODUCTS
# ============================================================================

@inventory_bp.route('/api/products', methods=['GET'])
@json_errors('listing products')
def list_products():
    with get_db_session() as session:
        return jsonify({'success': True, 'products': inventory_service(session).list_products()})


@inventory_bp.route('/api/products', methods=['POST'])
@json_errors('creating product')
def create_product():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'product': inventory_service(session).create_product(data)}), 201


@inventory_bp.route('/api/products/<product_id>', methods=['GET'])
@json_errors('getting product')
def get_product(product_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'product': inventory_service(session).get_product(product_id)})


@inventory_bp.route('/api/products/<product_id>', methods=['PUT', 'PATCH'])
@json_errors('updating product')
def update_product(product_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'product': inventory_service(session).update_product(product_id, data)})


@inventory_bp.route('/api/products/<product_id>/items', methods=['GET'])
@json_errors('listing tracked items')
def list_items(product_id):
    with get_db_session() as session:
        items = inventory_service(session).list_items(product_id, status=request.args.get('status'))
        return jsonify({'success': True, 'items': items})


@inventory_bp.route('/api/products/<product_id>/items', methods=['POST'])
@json_errors('creating tracked item')
def create_item(product_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'item': inventory_service(session).create_item(product_id, data)}), 201


@inventory_bp.route('/api/product-items/<item_id>/status', methods=['POST'])
@json_errors('updating tracked item status')
def update_item_status(item_id):
    data = get_json_body()
    if not data.get('status'):
        raise ValidationError('status is required', 'status')
    with get_db_session() as session:
        return jsonify({'success': True, 'item': inventory_service(session).update_item_status(item_id, data['status'])})


@inventory_bp.route('/api/products/<product_id>/stock', methods=['GET'])
@json_errors('getting stock summary')
def stock_summary(product_id):
    with get_db_session() as session:
        summary = inventory_service(session).unified_stock(product_id, as_of=date_arg('as_of'))
        return jsonify({'success': True, 'stock': summary})


@inventory_bp.route('/api/products/<product_id>/availability', methods=['GET'])
@json_errors('checking availability')
def availability(product_id):
    start = date_arg('start_date', date.today())
    end = date_arg('end_date')
    quantity = int(parse_number(request.args.get('quantity'), 'quantity', 1, min_value=1))
    with get_db_session() as session:
        result = inventory_service(session).check_availability(product_id, start, end, quantity)
        return jsonify({'success': True, **result})


@inventory_bp.route('/api/products/<product_id>/adjust-stock', methods=['POST'])
@json_errors('adjusting stock')
def adjust_stock(product_id):
    data = get_json_body()
    with get_db_session() as session:
        result = inventory_service(session).adjust_master_stock(
            product_id, data.get('quantity_change'), reason=data.get('reason'), notes=data.get('notes')
        )
        return jsonify(result)


# ============================================================================
# CONSUMABLES
# ============================================================================

@inventory_bp.route('/api/consumables', methods=['GET'])
@json_errors('listing consumables')
def list_consumables():
    with get_db_session() as session:
        consumables = inventory_service(session).list_consumables(
            category=request.args.get('category'),
            search=request.args.get('search'),
            low_stock_only=parse_bool(request.args.get('low_stock')),
            active_only=not parse_bool(request.args.get('include_inactive')),
        )
        return jsonify({'success': True, 'consumables': consumables, 'count': len(consumables)})


@inventory_bp.route('/api/consumables', methods=['POST'])
@json_errors('creating consumable')
def create_consumable():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'consumable': inventory_service(session).create_consumable(data)}), 201


@inventory_bp.route('/api/consumables/low-stock', methods=['GET'])
@json_errors('listing low stock')
def low_stock():
    with get_db_session() as session:
        return jsonify({'success': True, 'consumables': inventory_service(session).low_stock()})


@inventory_bp.route('/api/consumables/value', methods=['GET'])
@json_errors('computing stock value')
def stock_value():
    with get_db_session() as session:
        return jsonify({'success': True, **inventory_service(session).stock_value()})


@inventory_bp.route('/api/consumables/<consumable_id>', methods=['GET'])
@json_errors('getting consumable')
def get_consumable(consumable_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'consumable': inventory_service(session).get_consumable(consumable_id)})


@inventory_bp.route('/api/consumables/<consumable_id>', methods=['PUT', 'PATCH'])
@json_errors('updating consumable')
def update_consumable(consumable_id):
    data = get_json_body()
    with get_db_session() as session:
        consumable = inventory_service(session).update_consumable(consumable_id, data)
        return jsonify({'success': True, 'consumable': consumable})


@inventory_bp.route('/api/consumables/<consumable_id>', methods=['DELETE'])
@json_errors('deleting consumable')
def delete_consumable(consumable_id):
    with get_db_session() as session:
        inventory_service(session).delete_consumable(consumable_id)
        return jsonify({'success': True})


@inventory_bp.route('/api/consumables/<consumable_id>/movements', methods=['GET'])
@json_errors('listing stock movements')
def stock_movements(consumable_id):
    with get_db_session() as session:
        movements = inventory_service(session).stock_movements(
            consumable_id, limit=request.args.get('limit', 100, type=int)
        )
        return jsonify({'success': True, 'movements': movements})


@inventory_bp.route('/api/consumables/<consumable_id>/transfer', methods=['POST'])
@json_errors('transferring stock')
def transfer_stock(consumable_id):
    data = get_json_body()
    with get_db_session() as session:
        result = inventory_service(session).transfer_stock(
            consumable_id, data.get('from_location_id'), data.get('to_location_id'),
            data.get('quantity'), notes=data.get('notes')
        )
        return jsonify({'success': True, **result})


@inventory_bp.route('/api/consumables/<consumable_id>/count', methods=['POST'])
@json_errors('recording stock count')
def record_stock_count(consumable_id):
    data = get_json_body()
    if data.get('counted_quantity') in (None, ''):
        raise ValidationError('counted_quantity is required', 'counted_quantity')
    with get_db_session() as session:
        result = inventory_service(session).record_stock_count(
            consumable_id, data['counted_quantity'],
            storage_location_id=data.get('storage_location_id'), notes=data.get('notes')
        )
        return jsonify({'success': True, **result})


# ============================================================================
# BUNDLES & STORAGE LOCATIONS
# ============================================================================

@inventory_bp.route('/api/consumable-bundles', methods=['GET'])
@json_errors('listing bundles')
def list_bundles():
    with get_db_session() as session:
        return jsonify({'success': True, 'bundles': inventory_service(session).list_bundles()})


@inventory_bp.route('/api/consumable-bundles', methods=['POST'])
@json_errors('creating bundle')
def create_bundle():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'bundle': inventory_service(session).create_bundle(data)}), 201


@inventory_bp.route('/api/storage-locations', methods=['GET'])
@json_errors('listing storage locations')
def list_storage_locations():
    with get_db_session() as session:
        locations = inventory_service(session).list_locations(
            active_only=not parse_bool(request.args.get('include_inactive'))
        )
        return jsonify({'success': True, 'locations': locations})


@inventory_bp.route('/api/storage-locations', methods=['POST'])
@json_errors('creating storage location')
def create_storage_location():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'location': inventory_service(session).create_location(data)}), 201


@inventory_bp.route('/api/storage-locations/<location_id>', methods=['PUT', 'PATCH'])
@json_errors('updating storage location')
def update_storage_location(location_id):
    data = get_json_body()
    with get_db_session() as session:
        location = inventory_service(session).update_location(location_id, data)
        return jsonify({'success': True, 'location': location})


@inventory_bp.route('/api/storage-locations/<location_id>', methods=['DELETE'])
@json_errors('deleting storage location')
def delete_storage_location(location_id):
    with get_db_session() as session:
        inventory_service(session).delete_location(location_id)
        return jsonify({'success': True})
