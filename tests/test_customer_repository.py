"""
Tests for customer repository, CSV import and tax resolution
"""
import pytest
from services.customer_repository import CustomerRepository
from services.event_logger import EventLogger
from services.tax_service import TaxService
from validators import ValidationError


@pytest.fixture
def repo(db_session, org_id):
    return CustomerRepository(db_session, org_id)


@pytest.mark.unit
class TestCustomers:
    """Tests for customer CRUD"""

    def test_create_customer_defaults_type_and_logs(self, repo, db_session, org_id):
        customer = repo.create_customer({'name': 'Riverside Builders', 'phone': '5125550111'})
        assert customer['customer_type'] == 'not_selected'

        history = EventLogger(db_session, org_id).get_entity_history('customer', customer['id'])
        assert history[0]['event_type'] == 'CREATED'

    def test_create_customer_rejects_bad_email(self, repo):
        with pytest.raises(ValidationError):
            repo.create_customer({'name': 'Acme', 'email': 'not-an-email'})

    def test_search_matches_name_email_and_phone(self, repo):
        repo.create_customer({'name': 'Riverside Builders', 'email': 'jobs@riverside.test'})
        repo.create_customer({'name': 'Harbor Fest', 'phone': '5125550199'})

        assert [c['name'] for c in repo.list_customers(search='river')] == ['Riverside Builders']
        assert [c['name'] for c in repo.list_customers(search='0199')] == ['Harbor Fest']

    def test_delete_is_soft(self, repo):
        customer = repo.create_customer({'name': 'Harbor Fest', 'phone': '5125550199'})
        assert repo.delete_customer(customer['id']) is True
        assert repo.list_customers() == []
        assert repo.get_customer(customer['id'])['is_active'] is False

    def test_update_missing_customer(self, repo):
        assert repo.update_customer('missing', {'name': 'x'}) is None


@pytest.mark.unit
class TestServiceLocations:
    """Tests for service location defaults"""

    def test_new_default_clears_previous(self, repo):
        customer = repo.create_customer({'name': 'Harbor Fest', 'phone': '5125550199'})
        first = repo.add_location(customer['id'], {'location_name': 'North Lot', 'is_default': True})
        second = repo.add_location(customer['id'], {'location_name': 'South Lot', 'is_default': True})

        locations = {loc['id']: loc for loc in repo.list_locations(customer['id'])}
        assert locations[first['id']]['is_default'] is False
        assert locations[second['id']]['is_default'] is True

    def test_location_name_required(self, repo):
        customer = repo.create_customer({'name': 'Harbor Fest', 'phone': '5125550199'})
        with pytest.raises(ValidationError):
            repo.add_location(customer['id'], {'street': '1 Main'})


@pytest.mark.unit
class TestCsvImport:
    """Tests for bulk customer import"""

    def test_import_counts_and_errors(self, repo):
        text = (
            "# exported from spreadsheet\n"
            "name,customer_type,phone,email\n"
            "\n"
            "Riverside Builders,construction,5125550111,\n"
            ",commercial,5125550112,\n"
            "No Contact LLC,commercial,,\n"
            "Odd Type Co,spaceport,,hello@odd.test\n"
        )
        result = repo.import_customers(text)

        assert result['success'] == 2
        assert result['failed'] == 2
        assert result['errors'] == [
            'Row 2: name is required',
            'Row 3 (No Contact LLC): phone or email is required',
        ]
        odd = repo.list_customers(search='Odd Type')[0]
        assert odd['customer_type'] == 'not_selected'

    def test_import_locations_keep_only_first_default(self, repo):
        text = (
            "name,phone,"
            "service_location_1_name,service_location_1_is_default,service_location_1_gps_lat,service_location_1_gps_lng,"
            "service_location_2_name,service_location_2_is_default,service_location_2_gps_lat,service_location_2_gps_lng\n"
            "Harbor Fest,5125550199,Gate A,true,30.26,-97.74,Gate B,TRUE,30.27,\n"
        )
        assert repo.import_customers(text)['success'] == 1

        customer = repo.list_customers(search='Harbor')[0]
        locations = {loc['location_name']: loc for loc in repo.list_locations(customer['id'])}
        assert locations['Gate A']['is_default'] is True
        assert locations['Gate A']['latitude'] == 30.26
        assert locations['Gate B']['is_default'] is False
        assert locations['Gate B']['latitude'] is None
        assert locations['Gate B']['longitude'] is None

    def test_header_only_csv_rejected(self, repo):
        with pytest.raises(ValidationError):
            repo.import_customers("name,phone\n")

    def test_template_has_two_location_blocks(self):
        template = CustomerRepository.generate_csv_template()
        header = template.splitlines()[0]
        assert 'service_location_2_gps_lng' in header
        assert 'service_location_3_name' not in header

    def test_template_round_trips_through_import(self, repo):
        result = repo.import_customers(CustomerRepository.generate_csv_template())
        assert result == {'success': 1, 'failed': 0, 'errors': []}


@pytest.mark.unit
class TestTaxResolution:
    """Tests for the tax rate lookup chain"""

    def test_customer_override_wins(self, db_session, org_id, factory):
        customer = factory.customer(tax_rate_override=5.5, service_zip='78701')
        TaxService(db_session, org_id).upsert_rate(8.25, zip_code='78701')
        assert TaxService(db_session, org_id).resolve_for_customer(customer.id) == {
            'rate_percent': 5.5, 'source': 'customer_override'}

    def test_service_zip_before_billing_zip(self, db_session, org_id, factory):
        taxes = TaxService(db_session, org_id)
        taxes.upsert_rate(8.25, zip_code='78701-0001')
        taxes.upsert_rate(6.0, zip_code='10001')
        customer = factory.customer(service_zip='78701', billing_zip='10001')
        assert taxes.resolve_for_customer(customer.id) == {'rate_percent': 8.25, 'source': 'zip:service_zip'}

    def test_default_location_zip(self, db_session, org_id, factory):
        taxes = TaxService(db_session, org_id)
        taxes.upsert_rate(7.0, zip_code='73301')
        customer = factory.customer()
        factory.location(customer, zip='73301', is_default=True)
        assert taxes.resolve_for_customer(customer.id)['source'] == 'zip:service_location_zip'

    def test_state_rate(self, db_session, org_id, factory):
        taxes = TaxService(db_session, org_id)
        taxes.upsert_rate(6.25, state='tx')
        customer = factory.customer(billing_state='TX')
        assert taxes.resolve_for_customer(customer.id) == {'rate_percent': 6.25, 'source': 'state'}

    def test_falls_through_to_config_default(self, db_session, org_id, app_config):
        result = TaxService(db_session, org_id, app_config).resolve_for_customer(None)
        assert result == {'rate_percent': 0.0, 'source': 'config_default'}

    def test_upsert_updates_existing_zip_rate(self, db_session, org_id):
        taxes = TaxService(db_session, org_id)
        first = taxes.upsert_rate(8.0, zip_code='78701')
        second = taxes.upsert_rate(8.25, zip_code='78701')
        assert first['id'] == second['id']
        assert second['rate_percent'] == 8.25
