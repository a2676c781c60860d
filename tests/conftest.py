"""
Pytest configuration and shared fixtures
"""
import sys
import uuid
from datetime import date
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def app_config():
    """Fixture providing test configuration"""
    from config import TestingConfig
    return TestingConfig


@pytest.fixture(autouse=True)
def reset_scheduler(monkeypatch):
    """Each test starts without a global scheduler instance"""
    import services.scheduler
    monkeypatch.setattr(services.scheduler, '_scheduler', None)


@pytest.fixture
def app(tmp_path, app_config):
    """Flask app bound to a fresh in-memory database with the default organization seeded"""
    from app_init import create_app

    config = type('IsolatedTestingConfig', (app_config,), {'LOG_DIR': str(tmp_path / 'logs')})
    return create_app(config)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    """A session on the test database; committed when the test finishes"""
    from database.connection import get_db_session

    with get_db_session() as session:
        yield session


@pytest.fixture
def org_id(db_session):
    from database.seed import get_or_create_default_organization
    return get_or_create_default_organization(db_session).id


@pytest.fixture
def email_client():
    """Stand-in for EmailClient that records sends and always succeeds"""
    client = Mock()
    client.enabled = True
    client.send_email.return_value = {'success': True, 'email_id': 'em_test_1', 'provider': 'resend'}
    return client


@pytest.fixture
def sms_client():
    client = Mock()
    client.send_sms.return_value = {'success': True, 'message_sid': 'SM_test_1', 'status': 'queued'}
    return client


@pytest.fixture
def notifications(db_session, org_id, app_config, email_client, sms_client):
    from services.notification_service import NotificationService
    return NotificationService(db_session, org_id, app_config,
                               email_client=email_client, sms_client=sms_client)


class ModelFactory:
    """Builds persisted rows with sensible defaults for service tests"""

    def __init__(self, session, organization_id):
        self.session = session
        self.organization_id = organization_id

    def _save(self, row):
        self.session.add(row)
        self.session.flush()
        return row

    def customer(self, **fields):
        from database.models import Customer
        data = {'name': 'Lakeside Events', 'email': 'ops@lakeside.test',
                'phone': '5551234567', 'customer_type': 'events_festivals'}
        data.update(fields)
        return self._save(Customer(organization_id=self.organization_id, **data))

    def location(self, customer, **fields):
        from database.models import CustomerServiceLocation
        data = {'location_name': 'Main Gate', 'street': '1 Park Rd', 'city': 'Austin',
                'state': 'TX', 'zip': '78701'}
        data.update(fields)
        return self._save(CustomerServiceLocation(organization_id=self.organization_id,
                                                  customer_id=customer.id, **data))

    def user(self, role='driver', **fields):
        from database.models import User
        data = {'email': f"{role}-{uuid.uuid4().hex[:8]}@portapro.test",
                'first_name': 'Dana', 'last_name': 'Reyes', 'phone': '+15125550100'}
        data.update(fields)
        return self._save(User(organization_id=self.organization_id, role=role, **data))

    def product(self, **fields):
        from database.models import Product
        data = {'name': 'Standard Unit', 'stock_total': 10, 'default_price_per_day': 25.0}
        data.update(fields)
        return self._save(Product(organization_id=self.organization_id, **data))

    def item(self, product, **fields):
        from database.models import ProductItem
        data = {'item_code': f"PT-{uuid.uuid4().hex[:6]}", 'status': 'available'}
        data.update(fields)
        return self._save(ProductItem(organization_id=self.organization_id, product_id=product.id, **data))

    def consumable(self, **fields):
        from database.models import Consumable
        data = {'name': 'Toilet Paper Case', 'sku': 'TP-48', 'category': 'paper',
                'unit_cost': 2.0, 'unit_price': 4.5, 'on_hand_qty': 50, 'reorder_threshold': 10}
        data.update(fields)
        return self._save(Consumable(organization_id=self.organization_id, **data))

    def storage_location(self, **fields):
        from database.models import StorageLocation
        data = {'name': 'North Yard'}
        data.update(fields)
        return self._save(StorageLocation(organization_id=self.organization_id, **data))

    def vehicle(self, **fields):
        from database.models import Vehicle
        data = {'license_plate': f"TRK-{uuid.uuid4().hex[:4].upper()}", 'make': 'Ford',
                'model': 'F-550', 'year': 2022, 'vehicle_type': 'service_truck', 'status': 'active'}
        data.update(fields)
        return self._save(Vehicle(organization_id=self.organization_id, **data))

    def job(self, customer=None, **fields):
        from database.models import Job
        customer = customer or self.customer()
        data = {'job_number': f"JOB-{uuid.uuid4().hex[:4]}", 'job_type': 'delivery',
                'scheduled_date': date(2026, 6, 1), 'status': 'unassigned'}
        data.update(fields)
        return self._save(Job(organization_id=self.organization_id, customer_id=customer.id, **data))

    def assignment(self, job, product, **fields):
        from database.models import EquipmentAssignment
        data = {'quantity': 1, 'assigned_date': job.scheduled_date, 'status': 'assigned'}
        data.update(fields)
        return self._save(EquipmentAssignment(organization_id=self.organization_id, job_id=job.id,
                                              product_id=product.id, **data))


@pytest.fixture
def factory(db_session, org_id):
    return ModelFactory(db_session, org_id)


@pytest.fixture
def seeded(app):
    """
    Commit rows through a separate session before API calls.

    Usage:
        ids = seeded(lambda f: {'customer': f.customer().id})
    """
    from database.connection import get_db_session
    from database.seed import get_or_create_default_organization

    def build(fn):
        with get_db_session() as session:
            return fn(ModelFactory(session, get_or_create_default_organization(session).id))
    return build
