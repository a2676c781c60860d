"""
Inventory Service - products (rentable units), tracked items, consumables
and storage locations.

Covers unified stock summaries, date-range availability, master stock
adjustments, per-location consumable stock, transfers and stock counts.
"""

import hashlib
import json
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Dict, Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from database.models import (
    Consumable, ConsumableBundle, ConsumableBundleItem, ConsumableLocationStock,
    EquipmentAssignment, Product, ProductItem, ProductLocationStock,
    StockAdjustment, StockMovement, StorageLocation
)
from services.event_logger import EventLogger
from validators import NotFoundError, ValidationError, parse_number

logger = logging.getLogger(__name__)

ITEM_STATUSES = ('available', 'assigned', 'maintenance', 'out_of_service')
MAX_AVAILABILITY_DAYS = 366

PRODUCT_FIELDS = ['name', 'description', 'stock_total', 'default_price_per_day',
                  'track_inventory', 'low_stock_threshold']
CONSUMABLE_FIELDS = ['name', 'sku', 'category', 'unit_cost', 'unit_price',
                     'on_hand_qty', 'reorder_threshold', 'is_active']
LOCATION_FIELDS = ['name', 'description', 'street', 'city', 'state', 'zip',
                   'latitude', 'longitude', 'is_default', 'is_active']


def assignment_end(assignment: EquipmentAssignment) -> date:
    """Last day an assignment holds stock (return date, or the assigned day itself)."""
    return assignment.return_date or assignment.assigned_date


def stock_hash(payload: Dict[str, Any]) -> str:
    """Stable SHA-256 of a stock summary, for client-side change detection."""
    encoded = json.dumps(payload, sort_keys=True, default=str).encode('utf-8')
    return hashlib.sha256(encoded).hexdigest()


class InventoryService:
    """Repository for inventory database operations."""

    def __init__(self, session: Session, organization_id: str, user_id: str = None):
        self.session = session
        self.organization_id = organization_id
        self.events = EventLogger(session, organization_id, 'user' if user_id else 'system', user_id)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def _product(self, product_id: str) -> Product:
        product = self.session.query(Product).filter(
            Product.id == product_id,
            Product.organization_id == self.organization_id
        ).first()
        if not product:
            raise NotFoundError('product', product_id)
        return product

    def _consumable(self, consumable_id: str) -> Consumable:
        consumable = self.session.query(Consumable).filter(
            Consumable.id == consumable_id,
            Consumable.organization_id == self.organization_id
        ).first()
        if not consumable:
            raise NotFoundError('consumable', consumable_id)
        return consumable

    def _location(self, location_id: str) -> StorageLocation:
        location = self.session.query(StorageLocation).filter(
            StorageLocation.id == location_id,
            StorageLocation.organization_id == self.organization_id
        ).first()
        if not location:
            raise NotFoundError('storage_location', location_id)
        return location

    def default_location(self) -> Optional[StorageLocation]:
        return self.session.query(StorageLocation).filter(
            StorageLocation.organization_id == self.organization_id,
            StorageLocation.is_default == True,  # noqa: E712
            StorageLocation.is_active == True  # noqa: E712
        ).first()

    def _active_assignments(self, product_id: str, start: date, end: date) -> List[EquipmentAssignment]:
        """Non-returned assignments of a product overlapping [start, end]."""
        candidates = self.session.query(EquipmentAssignment).filter(
            EquipmentAssignment.organization_id == self.organization_id,
            EquipmentAssignment.product_id == product_id,
            EquipmentAssignment.status != 'returned',
            EquipmentAssignment.assigned_date <= end
        ).all()
        return [a for a in candidates if assignment_end(a) >= start]

    # =========================================================================
    # PRODUCTS & TRACKED ITEMS
    # =========================================================================

    def list_products(self) -> List[Dict]:
        products = self.session.query(Product).filter(
            Product.organization_id == self.organization_id
        ).order_by(Product.name).all()
        return [p.to_dict() for p in products]

    def get_product(self, product_id: str) -> Dict:
        return self._product(product_id).to_dict()

    def create_product(self, data: Dict) -> Dict:
        if not data.get('name'):
            raise ValidationError('name is required', 'name')
        product = Product(organization_id=self.organization_id)
        for key in PRODUCT_FIELDS:
            if key in data:
                setattr(product, key, data[key])
        product.stock_total = int(parse_number(data.get('stock_total'), 'stock_total', 0, min_value=0))
        self.session.add(product)
        self.session.flush()
        logger.info(f"Created product: {product.id} ({product.name})")
        return product.to_dict()

    def update_product(self, product_id: str, data: Dict) -> Dict:
        product = self._product(product_id)
        for key in PRODUCT_FIELDS:
            if key in data and key != 'stock_total':
                setattr(product, key, data[key])
        product.updated_at = datetime.utcnow()
        self.session.flush()
        return product.to_dict()

    def list_items(self, product_id: str, status: str = None) -> List[Dict]:
        self._product(product_id)
        query = self.session.query(ProductItem).filter(
            ProductItem.organization_id == self.organization_id,
            ProductItem.product_id == product_id
        )
        if status:
            query = query.filter(ProductItem.status == status)
        return [i.to_dict() for i in query.order_by(ProductItem.item_code).all()]

    def create_item(self, product_id: str, data: Dict) -> Dict:
        product = self._product(product_id)
        if not data.get('item_code'):
            raise ValidationError('item_code is required', 'item_code')
        status = data.get('status', 'available')
        if status not in ITEM_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ITEM_STATUSES)}", 'status')

        item = ProductItem(
            organization_id=self.organization_id,
            product_id=product.id,
            item_code=data['item_code'],
            status=status,
            condition=data.get('condition'),
            storage_location_id=data.get('storage_location_id'),
            notes=data.get('notes'),
        )
        self.session.add(item)
        self.session.flush()
        logger.info(f"Created tracked item {item.item_code} for product {product.id}")
        return item.to_dict()

    def update_item_status(self, item_id: str, status: str) -> Dict:
        if status not in ITEM_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ITEM_STATUSES)}", 'status')
        item = self.session.query(ProductItem).filter(
            ProductItem.id == item_id,
            ProductItem.organization_id == self.organization_id
        ).first()
        if not item:
            raise NotFoundError('product_item', item_id)
        item.status = status
        self.session.flush()
        return item.to_dict()

    # =========================================================================
    # STOCK SUMMARY & AVAILABILITY
    # =========================================================================

    def unified_stock(self, product_id: str, as_of: date = None) -> Dict[str, Any]:
        """Master stock, tracked-unit breakdown, today's usage and a change hash."""
        product = self._product(product_id)
        today = as_of or date.today()

        counts = {status: 0 for status in ITEM_STATUSES}
        for item in product.items:
            counts[item.status] = counts.get(item.status, 0) + 1
        tracked_total = sum(counts.values())

        master = product.stock_total or 0
        future_horizon = today + timedelta(days=3650)
        assignments = self._active_assignments(product.id, today, future_horizon)
        on_job_today = sum(a.quantity or 0 for a in assignments if a.assigned_date <= today)
        reserved_future = sum(a.quantity or 0 for a in assignments if a.assigned_date > today)
        unavailable_units = counts['maintenance'] + counts['out_of_service']

        if not product.track_inventory:
            tracking_method = 'none'
        elif tracked_total == 0:
            tracking_method = 'bulk'
        elif tracked_total >= master:
            tracking_method = 'individual'
        else:
            tracking_method = 'hybrid'

        summary = {
            'product_id': product.id,
            'product_name': product.name,
            'master_stock': master,
            'tracked_units': tracked_total,
            'tracked_by_status': counts,
            'bulk_pool': max(0, master - tracked_total),
            'on_job_today': on_job_today,
            'reserved_future': reserved_future,
            'physically_available': max(0, master - on_job_today - unavailable_units),
            'tracking_method': tracking_method,
            'as_of': today.isoformat(),
        }
        summary['stock_hash'] = stock_hash(summary)
        return summary

    def check_availability(self, product_id: str, start_date: date, end_date: date = None,
                           requested_quantity: int = 1) -> Dict[str, Any]:
        """
        Per-day availability of a product over [start_date, end_date].

        available(day) = stock_total - sum(quantity of assignments covering day)
        """
        product = self._product(product_id)
        end_date = end_date or start_date
        if end_date < start_date:
            raise ValidationError('end_date must be on or after start_date', 'end_date')
        span = (end_date - start_date).days + 1
        if span > MAX_AVAILABILITY_DAYS:
            raise ValidationError(f'Date range cannot exceed {MAX_AVAILABILITY_DAYS} days', 'end_date')

        assignments = self._active_assignments(product.id, start_date, end_date)
        stock_total = product.stock_total or 0

        daily = []
        for offset in range(span):
            day = start_date + timedelta(days=offset)
            booked = sum(
                a.quantity or 0 for a in assignments
                if a.assigned_date <= day <= assignment_end(a)
            )
            daily.append({'date': day.isoformat(), 'booked': booked, 'available': stock_total - booked})

        available_values = [d['available'] for d in daily]
        min_available = min(available_values)
        if min_available >= requested_quantity:
            status = 'available'
        elif min_available > 0:
            status = 'partial'
        else:
            status = 'unavailable'

        return {
            'product_id': product.id,
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
            'requested_quantity': requested_quantity,
            'stock_total': stock_total,
            'daily': daily,
            'summary': {
                'min_available': min_available,
                'max_available': max(available_values),
                'avg_available': round(sum(available_values) / len(available_values), 2),
            },
            'status': status,
            'is_available': status == 'available',
        }

    def adjust_master_stock(self, product_id: str, quantity_change: int,
                            reason: str = None, notes: str = None) -> Dict[str, Any]:
        """Apply +/-N to master stock and the default location, never below zero."""
        product = self._product(product_id)
        try:
            quantity_change = int(quantity_change)
        except (TypeError, ValueError):
            raise ValidationError('quantity_change must be an integer', 'quantity_change')

        old_stock = product.stock_total or 0
        new_stock = max(0, old_stock + quantity_change)
        product.stock_total = new_stock

        location = self.default_location()
        if location:
            row = self.session.query(ProductLocationStock).filter(
                ProductLocationStock.product_id == product.id,
                ProductLocationStock.storage_location_id == location.id
            ).first()
            if row is None:
                row = ProductLocationStock(
                    organization_id=self.organization_id,
                    product_id=product.id,
                    storage_location_id=location.id,
                    quantity=0,
                )
                self.session.add(row)
            row.quantity = max(0, (row.quantity or 0) + quantity_change)

        self.session.add(StockAdjustment(
            organization_id=self.organization_id,
            product_id=product.id,
            old_stock=old_stock,
            new_stock=new_stock,
            quantity_change=quantity_change,
            reason=reason,
            notes=notes,
        ))
        self.session.flush()
        self.events.log('product', product.id, 'STOCK_ADJUSTED',
                        description=f"Stock for {product.name} adjusted {old_stock} -> {new_stock}",
                        metadata={'quantity_change': quantity_change, 'reason': reason})

        logger.info(f"Adjusted stock for product {product.id}: {old_stock} -> {new_stock} ({reason})")
        return {
            'success': True,
            'old_stock': old_stock,
            'new_stock': new_stock,
            'quantity_change': quantity_change,
            'reason': reason,
        }

    # =========================================================================
    # CONSUMABLES
    # =========================================================================

    def list_consumables(self, category: str = None, search: str = None,
                         low_stock_only: bool = False, active_only: bool = True) -> List[Dict]:
        query = self.session.query(Consumable).filter(
            Consumable.organization_id == self.organization_id
        )
        if active_only:
            query = query.filter(Consumable.is_active == True)  # noqa: E712
        if category:
            query = query.filter(Consumable.category == category)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Consumable.name.ilike(pattern), Consumable.sku.ilike(pattern)))
        if low_stock_only:
            query = query.filter(Consumable.on_hand_qty <= Consumable.reorder_threshold)
        return [c.to_dict() for c in query.order_by(Consumable.name).all()]

    def get_consumable(self, consumable_id: str) -> Dict:
        consumable = self._consumable(consumable_id)
        data = consumable.to_dict()
        data['location_stock'] = self.location_stock(consumable_id)
        return data

    def create_consumable(self, data: Dict) -> Dict:
        if not data.get('name'):
            raise ValidationError('name is required', 'name')
        consumable = Consumable(organization_id=self.organization_id)
        for key in CONSUMABLE_FIELDS:
            if key in data:
                setattr(consumable, key, data[key])
        consumable.on_hand_qty = int(parse_number(data.get('on_hand_qty'), 'on_hand_qty', 0, min_value=0))
        consumable.reorder_threshold = int(parse_number(data.get('reorder_threshold'), 'reorder_threshold', 0, min_value=0))
        self.session.add(consumable)
        self.session.flush()
        logger.info(f"Created consumable: {consumable.id} ({consumable.name})")
        return consumable.to_dict()

    def update_consumable(self, consumable_id: str, data: Dict) -> Dict:
        consumable = self._consumable(consumable_id)
        for key in CONSUMABLE_FIELDS:
            if key in data:
                setattr(consumable, key, data[key])
        consumable.updated_at = datetime.utcnow()
        self.session.flush()
        return consumable.to_dict()

    def delete_consumable(self, consumable_id: str) -> bool:
        consumable = self._consumable(consumable_id)
        consumable.is_active = False
        self.session.flush()
        logger.info(f"Deleted (deactivated) consumable: {consumable_id}")
        return True

    def low_stock(self) -> List[Dict]:
        """Active consumables with on_hand_qty <= reorder_threshold."""
        return self.list_consumables(low_stock_only=True)

    def consume(self, consumable: Consumable, quantity: int, job_id: str = None) -> int:
        """Decrement on-hand for job usage, clamped at zero. Returns the new on-hand."""
        before = consumable.on_hand_qty or 0
        consumable.on_hand_qty = max(0, before - quantity)
        self.session.add(StockMovement(
            organization_id=self.organization_id,
            consumable_id=consumable.id,
            movement_type='job_usage',
            quantity_change=consumable.on_hand_qty - before,
            reference_id=job_id,
            notes=f"Used on job {job_id}" if job_id else None,
        ))
        return consumable.on_hand_qty

    def location_stock(self, consumable_id: str) -> List[Dict]:
        rows = self.session.query(ConsumableLocationStock).filter(
            ConsumableLocationStock.organization_id == self.organization_id,
            ConsumableLocationStock.consumable_id == consumable_id
        ).all()
        return [r.to_dict() for r in rows]

    def _location_row(self, consumable_id: str, location_id: str, create: bool = False):
        row = self.session.query(ConsumableLocationStock).filter(
            ConsumableLocationStock.consumable_id == consumable_id,
            ConsumableLocationStock.storage_location_id == location_id
        ).first()
        if row is None and create:
            row = ConsumableLocationStock(
                organization_id=self.organization_id,
                consumable_id=consumable_id,
                storage_location_id=location_id,
                quantity=0,
            )
            self.session.add(row)
        return row

    def transfer_stock(self, consumable_id: str, from_location_id: str, to_location_id: str,
                       quantity: int, notes: str = None) -> Dict[str, Any]:
        """Move consumable stock between two storage locations."""
        consumable = self._consumable(consumable_id)
        quantity = int(parse_number(quantity, 'quantity', 0))
        if quantity <= 0:
            raise ValidationError('quantity must be greater than zero', 'quantity')
        if from_location_id == to_location_id:
            raise ValidationError('Source and destination must differ', 'to_location_id')
        self._location(from_location_id)
        self._location(to_location_id)

        source = self._location_row(consumable.id, from_location_id)
        available = source.quantity if source else 0
        if available < quantity:
            raise ValidationError(
                f"Insufficient stock at source location ({available} available, {quantity} requested)",
                'quantity'
            )

        dest = self._location_row(consumable.id, to_location_id, create=True)
        source.quantity -= quantity
        dest.quantity = (dest.quantity or 0) + quantity

        for location_id, change, kind in ((from_location_id, -quantity, 'transfer_out'),
                                          (to_location_id, quantity, 'transfer_in')):
            self.session.add(StockMovement(
                organization_id=self.organization_id,
                consumable_id=consumable.id,
                storage_location_id=location_id,
                movement_type=kind,
                quantity_change=change,
                notes=notes,
            ))
        self.session.flush()
        self.events.log('consumable', consumable.id, 'STOCK_TRANSFERRED',
                        metadata={'from': from_location_id, 'to': to_location_id, 'quantity': quantity})

        logger.info(f"Transferred {quantity} x {consumable.name} {from_location_id} -> {to_location_id}")
        return {
            'success': True,
            'consumable_id': consumable.id,
            'quantity': quantity,
            'from_location_quantity': source.quantity,
            'to_location_quantity': dest.quantity,
        }

    def record_stock_count(self, consumable_id: str, counted_quantity: int,
                           storage_location_id: str = None, notes: str = None) -> Dict[str, Any]:
        """Set an absolute counted quantity and record the variance."""
        consumable = self._consumable(consumable_id)
        counted = int(parse_number(counted_quantity, 'counted_quantity', min_value=0))

        if storage_location_id:
            self._location(storage_location_id)
            row = self._location_row(consumable.id, storage_location_id, create=True)
            previous = row.quantity or 0
            variance = counted - previous
            row.quantity = counted
            consumable.on_hand_qty = max(0, (consumable.on_hand_qty or 0) + variance)
        else:
            previous = consumable.on_hand_qty or 0
            variance = counted - previous
            consumable.on_hand_qty = counted

        self.session.add(StockMovement(
            organization_id=self.organization_id,
            consumable_id=consumable.id,
            storage_location_id=storage_location_id,
            movement_type='stock_count',
            quantity_change=variance,
            notes=notes,
        ))
        self.session.flush()
        self.events.log('consumable', consumable.id, 'STOCK_COUNTED',
                        metadata={'previous': previous, 'counted': counted, 'variance': variance})

        return {
            'consumable_id': consumable.id,
            'storage_location_id': storage_location_id,
            'previous_quantity': previous,
            'counted_quantity': counted,
            'variance': variance,
            'on_hand_qty': consumable.on_hand_qty,
        }

    def stock_value(self) -> Dict[str, Any]:
        """Sum of on-hand x unit cost (unit price when cost is unset)."""
        items = []
        total = 0.0
        consumables = self.session.query(Consumable).filter(
            Consumable.organization_id == self.organization_id,
            Consumable.is_active == True  # noqa: E712
        ).order_by(Consumable.name).all()
        for c in consumables:
            unit_value = c.unit_cost or c.unit_price or 0
            value = round((c.on_hand_qty or 0) * unit_value, 2)
            total += value
            items.append({'id': c.id, 'name': c.name, 'on_hand_qty': c.on_hand_qty,
                          'unit_value': unit_value, 'value': value})
        return {'total_value': round(total, 2), 'item_count': len(items), 'items': items}

    def stock_movements(self, consumable_id: str, limit: int = 100) -> List[Dict]:
        rows = self.session.query(StockMovement).filter(
            StockMovement.organization_id == self.organization_id,
            StockMovement.consumable_id == consumable_id
        ).order_by(StockMovement.created_at.desc()).limit(limit).all()
        return [r.to_dict() for r in rows]

    # =========================================================================
    # BUNDLES
    # =========================================================================

    def list_bundles(self) -> List[Dict]:
        bundles = self.session.query(ConsumableBundle).filter(
            ConsumableBundle.organization_id == self.organization_id
        ).order_by(ConsumableBundle.name).all()
        return [b.to_dict() for b in bundles]

    def get_bundle(self, bundle_id: str) -> ConsumableBundle:
        bundle = self.session.query(ConsumableBundle).filter(
            ConsumableBundle.id == bundle_id,
            ConsumableBundle.organization_id == self.organization_id
        ).first()
        if not bundle:
            raise NotFoundError('bundle', bundle_id)
        return bundle

    def create_bundle(self, data: Dict) -> Dict:
        if not data.get('name'):
            raise ValidationError('name is required', 'name')
        items = data.get('items') or []
        if not items:
            raise ValidationError('A bundle needs at least one item', 'items')

        bundle = ConsumableBundle(
            organization_id=self.organization_id,
            name=data['name'],
            description=data.get('description'),
            price=parse_number(data.get('price'), 'price', 0, min_value=0),
        )
        for entry in items:
            consumable = self._consumable(entry.get('consumable_id'))
            bundle.items.append(ConsumableBundleItem(
                consumable_id=consumable.id,
                quantity=int(parse_number(entry.get('quantity'), 'quantity', 1, min_value=1)),
            ))
        self.session.add(bundle)
        self.session.flush()
        logger.info(f"Created consumable bundle: {bundle.id} ({bundle.name})")
        return bundle.to_dict()

    # =========================================================================
    # STORAGE LOCATIONS
    # =========================================================================

    def list_locations(self, active_only: bool = True) -> List[Dict]:
        query = self.session.query(StorageLocation).filter(
            StorageLocation.organization_id == self.organization_id
        )
        if active_only:
            query = query.filter(StorageLocation.is_active == True)  # noqa: E712
        return [loc.to_dict() for loc in query.order_by(StorageLocation.name).all()]

    def _clear_default_location(self, keep_id: str = None):
        for loc in self.session.query(StorageLocation).filter(
            StorageLocation.organization_id == self.organization_id,
            StorageLocation.is_default == True  # noqa: E712
        ).all():
            if loc.id != keep_id:
                loc.is_default = False

    def create_location(self, data: Dict) -> Dict:
        if not data.get('name'):
            raise ValidationError('name is required', 'name')
        location = StorageLocation(organization_id=self.organization_id)
        for key in LOCATION_FIELDS:
            if key in data:
                setattr(location, key, data[key])
        if location.is_default:
            self._clear_default_location()
        self.session.add(location)
        self.session.flush()
        logger.info(f"Created storage location: {location.id} ({location.name})")
        return location.to_dict()

    def update_location(self, location_id: str, data: Dict) -> Dict:
        location = self._location(location_id)
        for key in LOCATION_FIELDS:
            if key in data:
                setattr(location, key, data[key])
        if data.get('is_default'):
            self._clear_default_location(keep_id=location.id)
        self.session.flush()
        return location.to_dict()

    def delete_location(self, location_id: str) -> bool:
        location = self._location(location_id)
        location.is_active = False
        location.is_default = False
        self.session.flush()
        return True
