"""
Tests for stock summaries, availability, consumables and storage locations
"""
import pytest
from datetime import date, timedelta

from database.models import ProductLocationStock
from services.inventory_service import InventoryService, stock_hash
from validators import NotFoundError, ValidationError

DAY = date(2026, 6, 1)


@pytest.fixture
def inventory(db_session, org_id):
    return InventoryService(db_session, org_id)


@pytest.mark.unit
class TestUnifiedStock:
    """Tests for the unified stock summary"""

    def test_bulk_product(self, inventory, factory):
        product = factory.product(stock_total=10)
        job = factory.job(scheduled_date=DAY)
        factory.assignment(job, product, quantity=3)
        factory.assignment(factory.job(scheduled_date=DAY + timedelta(days=5)), product, quantity=2,
                           assigned_date=DAY + timedelta(days=5))

        summary = inventory.unified_stock(product.id, as_of=DAY)
        assert summary['tracking_method'] == 'bulk'
        assert summary['on_job_today'] == 3
        assert summary['reserved_future'] == 2
        assert summary['physically_available'] == 7
        assert summary['bulk_pool'] == 10

    def test_hybrid_product_counts_unusable_units(self, inventory, factory):
        product = factory.product(stock_total=5)
        factory.item(product)
        factory.item(product, status='maintenance')
        factory.item(product, status='out_of_service')

        summary = inventory.unified_stock(product.id, as_of=DAY)
        assert summary['tracking_method'] == 'hybrid'
        assert summary['tracked_units'] == 3
        assert summary['tracked_by_status']['maintenance'] == 1
        assert summary['bulk_pool'] == 2
        assert summary['physically_available'] == 3

    def test_individual_and_untracked(self, inventory, factory):
        tracked = factory.product(stock_total=1)
        factory.item(tracked)
        assert inventory.unified_stock(tracked.id, as_of=DAY)['tracking_method'] == 'individual'

        untracked = factory.product(track_inventory=False)
        assert inventory.unified_stock(untracked.id, as_of=DAY)['tracking_method'] == 'none'

    def test_hash_changes_with_stock(self, inventory, factory):
        product = factory.product(stock_total=4)
        before = inventory.unified_stock(product.id, as_of=DAY)['stock_hash']
        inventory.adjust_master_stock(product.id, 1)
        after = inventory.unified_stock(product.id, as_of=DAY)['stock_hash']
        assert before != after

    def test_stock_hash_ignores_key_order(self):
        assert stock_hash({'a': 1, 'b': 2}) == stock_hash({'b': 2, 'a': 1})


@pytest.mark.unit
class TestAvailability:
    """Tests for date-range availability"""

    def test_daily_breakdown(self, inventory, factory):
        product = factory.product(stock_total=4)
        job = factory.job(scheduled_date=DAY)
        factory.assignment(job, product, quantity=3, return_date=DAY + timedelta(days=1))

        result = inventory.check_availability(product.id, DAY, DAY + timedelta(days=2), requested_quantity=2)
        assert [d['available'] for d in result['daily']] == [1, 1, 4]
        assert result['summary'] == {'min_available': 1, 'max_available': 4, 'avg_available': 2.0}
        assert result['status'] == 'partial'
        assert result['is_available'] is False

    def test_overbooking_goes_negative(self, inventory, factory):
        product = factory.product(stock_total=1)
        job = factory.job(scheduled_date=DAY)
        factory.assignment(job, product, quantity=2)
        result = inventory.check_availability(product.id, DAY)
        assert result['daily'][0]['available'] == -1
        assert result['status'] == 'unavailable'

    def test_returned_assignments_are_ignored(self, inventory, factory):
        product = factory.product(stock_total=2)
        factory.assignment(factory.job(scheduled_date=DAY), product, quantity=2, status='returned')
        assert inventory.check_availability(product.id, DAY, requested_quantity=2)['status'] == 'available'

    def test_invalid_ranges(self, inventory, factory):
        product = factory.product()
        with pytest.raises(ValidationError):
            inventory.check_availability(product.id, DAY, DAY - timedelta(days=1))
        with pytest.raises(ValidationError):
            inventory.check_availability(product.id, DAY, DAY + timedelta(days=366))

    def test_unknown_product(self, inventory):
        with pytest.raises(NotFoundError):
            inventory.check_availability('missing', DAY)


@pytest.mark.unit
class TestMasterStock:
    """Tests for master stock adjustments"""

    def test_adjust_updates_default_location(self, inventory, factory, db_session):
        product = factory.product(stock_total=10)
        result = inventory.adjust_master_stock(product.id, 5, reason='purchase')
        assert result == {'success': True, 'old_stock': 10, 'new_stock': 15,
                          'quantity_change': 5, 'reason': 'purchase'}

        row = db_session.query(ProductLocationStock).filter_by(product_id=product.id).one()
        assert row.storage_location_id == inventory.default_location().id
        assert row.quantity == 5

    def test_adjust_floors_at_zero(self, inventory, factory):
        product = factory.product(stock_total=2)
        assert inventory.adjust_master_stock(product.id, -5, reason='damaged')['new_stock'] == 0

    def test_adjust_rejects_non_integer(self, inventory, factory):
        product = factory.product()
        with pytest.raises(ValidationError):
            inventory.adjust_master_stock(product.id, 'lots')


@pytest.mark.unit
class TestConsumables:
    """Tests for consumable records and stock"""

    def test_low_stock_filter(self, inventory, factory):
        factory.consumable(name='Deodorizer', sku='DEO-1', on_hand_qty=3, reorder_threshold=5)
        factory.consumable(name='Sanitizer', sku='SAN-1', on_hand_qty=40)
        assert [c['name'] for c in inventory.low_stock()] == ['Deodorizer']

    def test_list_filters(self, inventory, factory):
        factory.consumable()
        factory.consumable(name='Deodorizer', sku='DEO-1', category='chemicals')
        assert len(inventory.list_consumables(category='chemicals')) == 1
        assert [c['name'] for c in inventory.list_consumables(search='tp-')] == ['Toilet Paper Case']

    def test_soft_delete_hides_consumable(self, inventory, factory):
        paper = factory.consumable()
        inventory.delete_consumable(paper.id)
        assert inventory.list_consumables() == []
        assert len(inventory.list_consumables(active_only=False)) == 1

    def test_create_requires_name(self, inventory):
        with pytest.raises(ValidationError):
            inventory.create_consumable({'sku': 'X'})

    def test_stock_value_prefers_cost(self, inventory, factory):
        factory.consumable(on_hand_qty=10, unit_cost=2.0, unit_price=4.5)
        factory.consumable(name='Hand Soap', sku='HS-1', on_hand_qty=4, unit_cost=0, unit_price=3.0)
        value = inventory.stock_value()
        assert value['total_value'] == 32.0
        assert value['item_count'] == 2

    def test_bundle_requires_items(self, inventory):
        with pytest.raises(ValidationError):
            inventory.create_bundle({'name': 'Empty Kit', 'items': []})


@pytest.mark.unit
class TestLocationStock:
    """Tests for transfers and counts between storage locations"""

    def test_transfer_moves_quantity(self, inventory, factory):
        paper = factory.consumable()
        north = factory.storage_location()
        south = factory.storage_location(name='South Yard')
        inventory.record_stock_count(paper.id, 20, storage_location_id=north.id)

        result = inventory.transfer_stock(paper.id, north.id, south.id, 8)
        assert result['from_location_quantity'] == 12
        assert result['to_location_quantity'] == 8

    def test_transfer_guards(self, inventory, factory):
        paper = factory.consumable()
        north = factory.storage_location()
        south = factory.storage_location(name='South Yard')
        with pytest.raises(ValidationError):
            inventory.transfer_stock(paper.id, north.id, south.id, 0)
        with pytest.raises(ValidationError):
            inventory.transfer_stock(paper.id, north.id, north.id, 1)
        with pytest.raises(ValidationError):
            inventory.transfer_stock(paper.id, north.id, south.id, 1)

    def test_stock_count_records_variance(self, inventory, factory):
        paper = factory.consumable(on_hand_qty=50)
        result = inventory.record_stock_count(paper.id, 44)
        assert result['previous_quantity'] == 50
        assert result['variance'] == -6
        assert result['on_hand_qty'] == 44

    def test_location_count_adjusts_on_hand_by_variance(self, inventory, factory):
        paper = factory.consumable(on_hand_qty=50)
        north = factory.storage_location()
        result = inventory.record_stock_count(paper.id, 10, storage_location_id=north.id)
        assert result['variance'] == 10
        assert result['on_hand_qty'] == 60


@pytest.mark.unit
class TestStorageLocations:
    """Tests for storage location defaults"""

    def test_new_default_replaces_seeded_default(self, inventory):
        seeded = inventory.default_location()
        created = inventory.create_location({'name': 'East Depot', 'is_default': True})
        assert inventory.default_location().id == created['id']
        assert seeded.is_default is False

    def test_delete_is_soft_and_drops_default(self, inventory):
        location = inventory.default_location()
        inventory.delete_location(location.id)
        assert location.is_active is False
        assert location.is_default is False
        assert inventory.default_location() is None
