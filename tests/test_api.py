"""
Integration tests for the HTTP API blueprints
"""
import io
import pytest

from config import TestingConfig
from services.customer_repository import CustomerRepository

CUSTOMER = {'name': 'Riverside Fair', 'email': 'office@riverside.test', 'phone': '5125550111',
            'customer_type': 'events_festivals', 'service_zip': '78701'}


def _create_customer(client, **overrides):
    response = client.post('/api/customers', json={**CUSTOMER, **overrides})
    assert response.status_code == 201
    return response.get_json()['customer']


@pytest.mark.integration
class TestCustomersAPI:
    """Customer CRUD, locations and CSV import"""

    def test_crud(self, client):
        customer = _create_customer(client)

        listed = client.get('/api/customers?search=riverside').get_json()
        assert listed['count'] == 1

        updated = client.put(f"/api/customers/{customer['id']}", json={'notes': 'Gate code 4411'})
        assert updated.get_json()['customer']['notes'] == 'Gate code 4411'

        assert client.delete(f"/api/customers/{customer['id']}").status_code == 200
        assert client.get('/api/customers').get_json()['count'] == 0
        assert client.get('/api/customers?include_inactive=true').get_json()['count'] == 1

    def test_validation_error_shape(self, client):
        response = client.post('/api/customers', json={'name': 'Bad Email', 'email': 'not-an-email'})
        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert body['error']

    def test_unknown_customer(self, client):
        assert client.get('/api/customers/missing').status_code == 404

    def test_non_object_body(self, client):
        assert client.post('/api/customers', json=['not', 'an', 'object']).status_code == 400

    def test_locations(self, client):
        customer = _create_customer(client)
        response = client.post(f"/api/customers/{customer['id']}/locations",
                               json={'location_name': 'North Lot', 'zip': '78701', 'is_default': True})
        assert response.status_code == 201
        locations = client.get(f"/api/customers/{customer['id']}/locations").get_json()['locations']
        assert [loc['location_name'] for loc in locations] == ['North Lot']

    def test_import_json_csv(self, client):
        response = client.post('/api/customers/import',
                               json={'csv': CustomerRepository.generate_csv_template()})
        assert response.get_json()['result'] == {'success': 1, 'failed': 0, 'errors': []}

    def test_import_file_upload(self, client):
        data = {'file': (io.BytesIO(CustomerRepository.generate_csv_template().encode('utf-8')), 'customers.csv')}
        response = client.post('/api/customers/import', data=data, content_type='multipart/form-data')
        assert response.get_json()['result']['success'] == 1

    def test_import_rejects_other_files(self, client):
        data = {'file': (io.BytesIO(b'MZ'), 'customers.exe')}
        response = client.post('/api/customers/import', data=data, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_template_download(self, client):
        response = client.get('/api/customers/import/template')
        assert response.mimetype == 'text/csv'
        assert b'name' in response.data.splitlines()[0]

    def test_tax_rate_resolution(self, client):
        customer = _create_customer(client)
        client.post('/api/tax-rates', json={'zip_code': '78701', 'rate_percent': 8.25})
        body = client.get(f"/api/customers/{customer['id']}/tax-rate").get_json()
        assert body['rate_percent'] == 8.25

    def test_unknown_organization_header(self, client):
        response = client.get('/api/customers', headers={'X-Organization-Id': 'nope'})
        assert response.status_code == 404


@pytest.mark.integration
class TestJobsAPI:
    """Job lifecycle through the API"""

    def test_create_update_complete(self, client, seeded):
        ids = seeded(lambda f: {'customer': f.customer(service_zip='78701').id, 'driver': f.user().id})

        created = client.post('/api/jobs', json={'customer_id': ids['customer'], 'job_type': 'delivery',
                                                 'scheduled_date': '2026-06-01'})
        assert created.status_code == 201
        job = created.get_json()['job']
        assert job['job_number'] == 'DEL-001'
        assert job['status'] == 'unassigned'

        assigned = client.patch(f"/api/jobs/{job['id']}", json={'driver_id': ids['driver']}).get_json()['job']
        assert assigned['status'] == 'assigned'

        schedule = client.get(f"/api/drivers/{ids['driver']}/schedule?date=2026-06-01").get_json()
        assert [j['id'] for j in schedule['jobs']] == [job['id']]

        done = client.post(f"/api/jobs/{job['id']}/status", json={'status': 'completed'})
        assert done.get_json()['job']['status'] == 'completed'

        events = client.get(f"/api/jobs/{job['id']}/history").get_json()['events']
        assert 'JOB_COMPLETED' in {e['event_type'] for e in events}

        locked = client.patch(f"/api/jobs/{job['id']}", json={'notes': 'late'})
        assert locked.status_code == 400

    def test_status_required(self, client, seeded):
        job_id = seeded(lambda f: f.job().id)
        assert client.post(f'/api/jobs/{job_id}/status', json={}).status_code == 400

    def test_unknown_job(self, client):
        response = client.get('/api/jobs/missing')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Job not found: missing'

    def test_service_report_submit(self, client, seeded):
        job_id = seeded(lambda f: f.job().id)
        template = client.post('/api/report-templates', json={
            'name': 'Pump-out',
            'rules': {'auto_requirements': [{
                'id': 'r1', 'conditions': [{'field': 'waste_level', 'operator': 'greater_than', 'value': 80}],
                'required_fields': ['pump_notes'],
            }]},
        }).get_json()['template']

        evaluated = client.post(f'/api/jobs/{job_id}/service-report/evaluate',
                                json={'template_id': template['id'], 'data': {'waste_level': 95}}).get_json()
        assert evaluated['required_fields'] == ['pump_notes']
        assert evaluated['can_submit'] is False

        blocked = client.post(f'/api/jobs/{job_id}/service-report/submit',
                              json={'template_id': template['id'], 'data': {'waste_level': 95}})
        assert blocked.status_code == 400
        assert blocked.get_json()['issues'][0]['field_id'] == 'pump_notes'

        accepted = client.post(f'/api/jobs/{job_id}/service-report/submit',
                               json={'template_id': template['id'],
                                     'data': {'waste_level': 95, 'pump_notes': 'Pumped 40 gal'}})
        assert accepted.status_code == 200

    def test_equipment_and_return(self, client, seeded):
        ids = seeded(lambda f: {'job': f.job().id, 'product': f.product(stock_total=2).id})
        assignment = client.post(f"/api/jobs/{ids['job']}/equipment",
                                 json={'product_id': ids['product'], 'quantity': 2}).get_json()['assignment']
        returned = client.post(f"/api/equipment-assignments/{assignment['id']}/return",
                               json={'return_date': '2026-06-04'})
        assert returned.get_json()['assignment']['status'] == 'returned'


@pytest.mark.integration
class TestBillingAPI:
    """Quotes, invoices, payments and documents"""

    ITEMS = [{'product_name': 'Standard Unit', 'quantity': 2, 'unit_price': 100}]

    def test_quote_to_paid_invoice(self, client):
        customer = _create_customer(client)
        quote = client.post('/api/quotes', json={'customer_id': customer['id'], 'items': self.ITEMS}).get_json()['quote']
        assert quote['total_amount'] == 200.0

        converted = client.post(f"/api/quotes/{quote['id']}/convert")
        assert converted.status_code == 201
        invoice = converted.get_json()['invoice']
        assert invoice['total_amount'] == 200.0

        paid = client.post(f"/api/invoices/{invoice['id']}/payments", json={'amount': 200})
        assert paid.status_code == 201
        assert paid.get_json()['invoice']['status'] == 'paid'

        overpay = client.post(f"/api/invoices/{invoice['id']}/payments", json={'amount': 1})
        assert overpay.status_code == 400

    def test_pdf_download(self, client):
        customer = _create_customer(client)
        quote = client.post('/api/quotes', json={'customer_id': customer['id'], 'items': self.ITEMS}).get_json()['quote']

        response = client.get(f"/api/quotes/{quote['id']}/pdf")
        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

        assert client.get(f"/api/receipts/{quote['id']}/pdf").status_code == 404
        assert client.get('/api/invoices/missing/pdf').status_code == 404

    def test_send_without_email_provider(self, client):
        customer = _create_customer(client)
        quote = client.post('/api/quotes', json={'customer_id': customer['id'], 'items': self.ITEMS}).get_json()['quote']
        response = client.post(f"/api/quotes/{quote['id']}/send", json={})
        assert response.status_code == 502
        assert response.get_json()['success'] is False


@pytest.mark.integration
class TestMapsAPI:

    def test_etag_round_trip(self, client, seeded):
        seeded(lambda f: f.storage_location(latitude=30.3, longitude=-97.7))

        first = client.get('/api/maps/inventory?date=2026-06-01')
        assert first.status_code == 200
        etag = first.headers['ETag']

        cached = client.get('/api/maps/inventory?date=2026-06-01', headers={'If-None-Match': etag})
        assert cached.status_code == 304

        seeded(lambda f: f.storage_location(name='South Yard', latitude=29.9, longitude=-97.9))
        changed = client.get('/api/maps/inventory?date=2026-06-01', headers={'If-None-Match': etag})
        assert changed.status_code == 200

    def test_property_change_refreshes_etag(self, client, seeded):
        def located_job(f):
            customer = f.customer()
            site = f.location(customer, latitude=30.26, longitude=-97.74)
            return f.job(customer, service_location_id=site.id).id
        job_id = seeded(located_job)

        first = client.get('/api/maps/jobs?date=2026-06-01')
        etag = first.headers['ETag']

        client.post(f'/api/jobs/{job_id}/status', json={'status': 'in_progress'})
        fresh = client.get('/api/maps/jobs?date=2026-06-01', headers={'If-None-Match': etag})
        assert fresh.status_code == 200
        body = fresh.get_json()
        assert body['features'][0]['properties']['status'] == 'in_progress'
        assert body['marker_hash'] == first.get_json()['marker_hash']
        assert fresh.headers['ETag'] != etag

    def test_bad_date(self, client):
        assert client.get('/api/maps/jobs?date=June').status_code == 400


@pytest.mark.integration
class TestSchedulerAPI:

    def test_status_registers_default_jobs(self, client):
        body = client.get('/api/scheduler/status').get_json()
        assert body['running'] is False
        assert 'check_expirations' in body['jobs']

    def test_run_job(self, client):
        response = client.post('/api/scheduler/run/cleanup_notifications')
        assert response.status_code == 200
        assert list(response.get_json()['result'].values()) == [0]

    def test_unknown_job(self, client):
        assert client.post('/api/scheduler/run/nope').status_code == 404

    def test_disable_and_enable(self, client):
        assert client.post('/api/scheduler/jobs/low_stock_alerts/disable').get_json()['enabled'] is False
        assert client.get('/api/scheduler/status').get_json()['jobs']['low_stock_alerts']['enabled'] is False
        assert client.post('/api/scheduler/jobs/low_stock_alerts/enable').get_json()['enabled'] is True


@pytest.mark.integration
class TestServiceApiKey:

    @pytest.fixture
    def keyed_client(self, tmp_path):
        from app_init import create_app
        config = type('KeyedConfig', (TestingConfig,), {'LOG_DIR': str(tmp_path / 'logs'), 'API_KEY': 'svc-key'})
        return create_app(config).test_client()

    def test_key_required(self, keyed_client):
        assert keyed_client.get('/api/scheduler/status').status_code == 401
        assert keyed_client.get('/api/scheduler/status', headers={'X-API-Key': 'wrong'}).status_code == 403
        assert keyed_client.get('/api/scheduler/status', headers={'X-API-Key': 'svc-key'}).status_code == 200

    def test_user_routes_stay_open(self, keyed_client):
        assert keyed_client.get('/api/customers').status_code == 200
