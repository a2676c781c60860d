"""
Tests for map markers and their change hash
"""
import pytest
from datetime import date, timedelta

from services.map_service import MapService, content_hash, feature, marker_hash

DAY = date(2026, 6, 1)


@pytest.fixture
def maps(db_session, org_id):
    return MapService(db_session, org_id)


@pytest.mark.unit
class TestMarkerHash:

    def test_order_independent(self):
        a = feature('a', 'job', 30.1, -97.7)
        b = feature('b', 'job', 30.2, -97.8)
        assert marker_hash([a, b]) == marker_hash([b, a])

    def test_moves_change_hash(self):
        before = [feature('a', 'job', 30.1, -97.7)]
        after = [feature('a', 'job', 30.1001, -97.7)]
        assert marker_hash(before) != marker_hash(after)

    def test_non_position_properties_ignored(self):
        assert marker_hash([feature('a', 'job', 1, 2, status='assigned')]) == \
            marker_hash([feature('a', 'job', 1, 2, status='completed')])

    def test_content_hash_covers_properties(self):
        assigned = [feature('a', 'job', 1, 2, status='assigned')]
        assert content_hash(assigned) == content_hash([feature('a', 'job', 1, 2, status='assigned')])
        assert content_hash(assigned) != content_hash([feature('a', 'job', 1, 2, status='in_progress')])

    def test_geojson_is_lng_lat(self):
        assert feature('a', 'job', 30.1, -97.7)['geometry']['coordinates'] == [-97.7, 30.1]


@pytest.mark.unit
class TestJobMarkers:

    def test_only_located_jobs(self, maps, factory):
        customer = factory.customer()
        site = factory.location(customer, latitude=30.26, longitude=-97.74)
        factory.job(customer, service_location_id=site.id, job_number='DEL-001')
        factory.job(customer, job_number='DEL-002')
        factory.job(customer, service_location_id=site.id, status='cancelled')

        collection = maps.job_markers(DAY)
        assert collection['type'] == 'FeatureCollection'
        assert [f['properties']['job_number'] for f in collection['features']] == ['DEL-001']
        assert collection['features'][0]['properties']['customer_name'] == 'Lakeside Events'

    def test_driver_filter(self, maps, factory):
        customer = factory.customer()
        site = factory.location(customer, latitude=30.26, longitude=-97.74)
        driver = factory.user()
        factory.job(customer, service_location_id=site.id, driver_id=driver.id)
        factory.job(customer, service_location_id=site.id)
        assert len(maps.job_markers(DAY, driver_id=driver.id)['features']) == 1


@pytest.mark.unit
class TestInventoryMarkers:

    def test_yards_and_job_sites(self, maps, factory):
        factory.storage_location(latitude=30.3, longitude=-97.7)
        factory.storage_location(name='No GPS Yard')
        customer = factory.customer()
        site = factory.location(customer, latitude=30.26, longitude=-97.74)
        job = factory.job(customer, service_location_id=site.id)
        standard = factory.product()
        ada = factory.product(name='ADA Unit')
        factory.assignment(job, standard, quantity=4)
        factory.assignment(job, ada, quantity=1)
        factory.assignment(job, standard, quantity=9, status='returned')

        features = {f['properties']['kind']: f for f in maps.inventory_markers(DAY)['features']}
        assert features['storage_location']['properties']['name'] == 'North Yard'
        assert features['job_site']['properties']['unit_count'] == 5
        assert features['job_site']['properties']['products'] == ['ADA Unit', 'Standard Unit']

    def test_returned_before_date_not_shown(self, maps, factory):
        customer = factory.customer()
        site = factory.location(customer, latitude=30.26, longitude=-97.74)
        job = factory.job(customer, service_location_id=site.id)
        factory.assignment(job, factory.product(), return_date=DAY + timedelta(days=1))
        assert maps.inventory_markers(DAY + timedelta(days=2))['features'] == []
