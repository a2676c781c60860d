"""
SQLAlchemy models for the PortaPro field-service backend.
Defines the core tables for customers, jobs, inventory, billing, fleet,
driver compliance and notifications.

Ids are 36-character UUID strings and JSON columns use the generic JSON
type so the same schema runs on PostgreSQL and SQLite.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Date,
    ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database.connection import Base


def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


def _id_column():
    return Column(String(36), primary_key=True, default=generate_uuid)


def _org_column():
    return Column(String(36), ForeignKey('organizations.id'), nullable=False)


# =============================================================================
# ORGANIZATION (Multi-tenant foundation)
# =============================================================================

class Organization(Base):
    """
    Organization/Company - every row in the system is scoped to one.
    """
    __tablename__ = 'organizations'

    id = _id_column()
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    settings = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'settings': self.settings or {},
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class CompanySettings(Base):
    """Per-organization company profile, billing defaults and job number counters."""
    __tablename__ = 'company_settings'

    id = _id_column()
    organization_id = Column(String(36), ForeignKey('organizations.id'), nullable=False, unique=True)
    company_name = Column(String(255))
    company_email = Column(String(255))
    support_email = Column(String(255))  # compliance digests
    company_phone = Column(String(50))
    company_address = Column(Text)
    default_tax_rate = Column(Float)  # percent, None = fall through to config
    payment_terms_days = Column(Integer, default=30)
    quote_terms = Column(Text)
    invoice_terms = Column(Text)

    # Job numbering: <prefix>-<next number padded to 3>
    delivery_prefix = Column(String(20), default='DEL')
    delivery_next_number = Column(Integer, default=1)
    pickup_prefix = Column(String(20), default='PKP')
    pickup_next_number = Column(Integer, default=1)
    service_prefix = Column(String(20), default='SVC')
    service_next_number = Column(Integer, default=1)
    survey_prefix = Column(String(20), default='SURVEY')
    survey_next_number = Column(Integer, default=1)
    job_prefix = Column(String(20), default='JOB')
    job_next_number = Column(Integer, default=1)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'company_name': self.company_name,
            'company_email': self.company_email,
            'support_email': self.support_email,
            'company_phone': self.company_phone,
            'company_address': self.company_address,
            'default_tax_rate': self.default_tax_rate,
            'payment_terms_days': self.payment_terms_days,
            'quote_terms': self.quote_terms,
            'invoice_terms': self.invoice_terms,
            'delivery_prefix': self.delivery_prefix,
            'delivery_next_number': self.delivery_next_number,
            'pickup_prefix': self.pickup_prefix,
            'pickup_next_number': self.pickup_next_number,
            'service_prefix': self.service_prefix,
            'service_next_number': self.service_next_number,
            'survey_prefix': self.survey_prefix,
            'survey_next_number': self.survey_next_number,
            'job_prefix': self.job_prefix,
            'job_next_number': self.job_next_number,
        }


# =============================================================================
# USERS (office staff and drivers)
# =============================================================================

class User(Base):
    """Application users. Drivers are users with role='driver'."""
    __tablename__ = 'users'

    id = _id_column()
    organization_id = _org_column()
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(50))
    password_hash = Column(String(255))
    role = Column(String(50), default='dispatcher')  # owner, admin, dispatcher, driver
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_users_organization', 'organization_id'),
        Index('ix_users_role', 'role'),
    )

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part) or self.email

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# CUSTOMERS
# =============================================================================

class Customer(Base):
    """Customer records with billing and service addresses."""
    __tablename__ = 'customers'

    id = _id_column()
    organization_id = _org_column()
    name = Column(String(255), nullable=False)
    customer_type = Column(String(50), default='commercial')  # commercial, residential, events, construction...
    email = Column(String(255))
    phone = Column(String(50))
    billing_street = Column(String(255))
    billing_city = Column(String(100))
    billing_state = Column(String(2))
    billing_zip = Column(String(10))
    service_street = Column(String(255))
    service_city = Column(String(100))
    service_state = Column(String(2))
    service_zip = Column(String(10))
    notes = Column(Text)
    tax_rate_override = Column(Float)  # percent
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    service_locations = relationship(
        "CustomerServiceLocation", back_populates="customer", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('ix_customers_organization', 'organization_id'),
        Index('ix_customers_name', 'name'),
        Index('ix_customers_email', 'email'),
    )

    def to_dict(self, include_locations=False):
        data = {
            'id': self.id,
            'organization_id': self.organization_id,
            'name': self.name,
            'customer_type': self.customer_type,
            'email': self.email,
            'phone': self.phone,
            'billing_street': self.billing_street,
            'billing_city': self.billing_city,
            'billing_state': self.billing_state,
            'billing_zip': self.billing_zip,
            'service_street': self.service_street,
            'service_city': self.service_city,
            'service_state': self.service_state,
            'service_zip': self.service_zip,
            'notes': self.notes,
            'tax_rate_override': self.tax_rate_override,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_locations:
            data['service_locations'] = [loc.to_dict() for loc in self.service_locations]
        return data


class CustomerServiceLocation(Base):
    """Physical sites where units are placed for a customer."""
    __tablename__ = 'customer_service_locations'

    id = _id_column()
    organization_id = _org_column()
    customer_id = Column(String(36), ForeignKey('customers.id'), nullable=False)
    location_name = Column(String(255), nullable=False)
    street = Column(String(255))
    city = Column(String(100))
    state = Column(String(2))
    zip = Column(String(10))
    latitude = Column(Float)
    longitude = Column(Float)
    is_default = Column(Boolean, default=False)
    access_instructions = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="service_locations")

    __table_args__ = (
        Index('ix_service_locations_customer', 'customer_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'location_name': self.location_name,
            'street': self.street,
            'city': self.city,
            'state': self.state,
            'zip': self.zip,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'is_default': self.is_default,
            'access_instructions': self.access_instructions,
            'created_at': _iso(self.created_at),
        }


class TaxRate(Base):
    """
    Sales tax rate table. A row keyed by zip_code is a ZIP rate; a row with
    only state set is the state-wide rate.
    """
    __tablename__ = 'tax_rates'

    id = _id_column()
    organization_id = _org_column()
    zip_code = Column(String(5))
    state = Column(String(2))
    rate_percent = Column(Float, nullable=False)
    description = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_tax_rates_zip', 'organization_id', 'zip_code'),
        Index('ix_tax_rates_state', 'organization_id', 'state'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'zip_code': self.zip_code,
            'state': self.state,
            'rate_percent': self.rate_percent,
            'description': self.description,
        }


# =============================================================================
# JOBS
# =============================================================================

class Job(Base):
    """Scheduled delivery, pickup, service or survey visit."""
    __tablename__ = 'jobs'

    id = _id_column()
    organization_id = _org_column()
    job_number = Column(String(50), nullable=False)
    job_type = Column(String(50), nullable=False)  # delivery, pickup, service, on-site-survey, partial-pickup, return
    status = Column(String(50), default='unassigned')  # assigned, unassigned, in_progress, completed, cancelled
    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(String(5))  # HH:MM local to timezone
    timezone = Column(String(64))
    customer_id = Column(String(36), ForeignKey('customers.id'), nullable=False)
    service_location_id = Column(String(36), ForeignKey('customer_service_locations.id'))
    driver_id = Column(String(36), ForeignKey('users.id'))
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'))
    notes = Column(Text)
    special_instructions = Column(Text)
    assigned_template_ids = Column(JSON, default=list)
    total_price = Column(Float, default=0)
    actual_completion_time = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    service_location = relationship("CustomerServiceLocation")
    driver = relationship("User")
    vehicle = relationship("Vehicle")
    equipment_assignments = relationship("EquipmentAssignment", back_populates="job")
    consumables = relationship("JobConsumable", back_populates="job")

    __table_args__ = (
        Index('ix_jobs_organization', 'organization_id'),
        Index('ix_jobs_scheduled_date', 'scheduled_date'),
        Index('ix_jobs_driver', 'driver_id'),
        Index('ix_jobs_status', 'status'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'job_number': self.job_number,
            'job_type': self.job_type,
            'status': self.status,
            'scheduled_date': _iso(self.scheduled_date),
            'scheduled_time': self.scheduled_time,
            'timezone': self.timezone,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'service_location_id': self.service_location_id,
            'driver_id': self.driver_id,
            'vehicle_id': self.vehicle_id,
            'notes': self.notes,
            'special_instructions': self.special_instructions,
            'assigned_template_ids': self.assigned_template_ids or [],
            'total_price': self.total_price,
            'actual_completion_time': _iso(self.actual_completion_time),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class MaintenanceReportTemplate(Base):
    """Service report form template assigned to jobs."""
    __tablename__ = 'maintenance_report_templates'

    id = _id_column()
    organization_id = _org_column()
    name = Column(String(255), nullable=False)
    template_type = Column(String(50), default='service')
    sections = Column(JSON, default=list)
    rules = Column(JSON, default=dict)  # auto_requirements, fee_suggestions, default_values, unit_loop
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'template_type': self.template_type,
            'sections': self.sections or [],
            'rules': self.rules or {},
            'is_active': self.is_active,
        }


# =============================================================================
# PRODUCTS & EQUIPMENT
# =============================================================================

class Product(Base):
    """Rentable unit type (standard unit, ADA unit, handwash station...)."""
    __tablename__ = 'products'

    id = _id_column()
    organization_id = _org_column()
    name = Column(String(255), nullable=False)
    description = Column(Text)
    stock_total = Column(Integer, default=0)
    default_price_per_day = Column(Float, default=0)
    track_inventory = Column(Boolean, default=True)
    low_stock_threshold = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("ProductItem", back_populates="product")

    __table_args__ = (
        Index('ix_products_organization', 'organization_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'stock_total': self.stock_total,
            'default_price_per_day': self.default_price_per_day,
            'track_inventory': self.track_inventory,
            'low_stock_threshold': self.low_stock_threshold,
            'created_at': _iso(self.created_at),
        }


class ProductItem(Base):
    """Individually tracked unit of a product."""
    __tablename__ = 'product_items'

    id = _id_column()
    organization_id = _org_column()
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    item_code = Column(String(100), nullable=False)
    status = Column(String(50), default='available')  # available, assigned, maintenance, out_of_service
    condition = Column(String(50))
    storage_location_id = Column(String(36), ForeignKey('storage_locations.id'))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", back_populates="items")

    __table_args__ = (
        Index('ix_product_items_product', 'product_id'),
        UniqueConstraint('organization_id', 'item_code', name='uq_product_items_code'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'item_code': self.item_code,
            'status': self.status,
            'condition': self.condition,
            'storage_location_id': self.storage_location_id,
            'notes': self.notes,
        }


class EquipmentAssignment(Base):
    """Product quantity or tracked unit placed on a job for a date range."""
    __tablename__ = 'equipment_assignments'

    id = _id_column()
    organization_id = _org_column()
    job_id = Column(String(36), ForeignKey('jobs.id'), nullable=False)
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    product_item_id = Column(String(36), ForeignKey('product_items.id'))
    quantity = Column(Integer, default=1)
    assigned_date = Column(Date, nullable=False)
    return_date = Column(Date)
    status = Column(String(50), default='assigned')  # assigned, delivered, returned
    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("Job", back_populates="equipment_assignments")
    product = relationship("Product")
    product_item = relationship("ProductItem")

    __table_args__ = (
        Index('ix_equipment_assignments_product', 'product_id'),
        Index('ix_equipment_assignments_job', 'job_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'job_id': self.job_id,
            'product_id': self.product_id,
            'product_item_id': self.product_item_id,
            'quantity': self.quantity,
            'assigned_date': _iso(self.assigned_date),
            'return_date': _iso(self.return_date),
            'status': self.status,
        }


class ProductLocationStock(Base):
    """Master stock of a product held at a storage location."""
    __tablename__ = 'product_location_stock'

    id = _id_column()
    organization_id = _org_column()
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    storage_location_id = Column(String(36), ForeignKey('storage_locations.id'), nullable=False)
    quantity = Column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint('product_id', 'storage_location_id', name='uq_product_location_stock'),
    )

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'storage_location_id': self.storage_location_id,
            'quantity': self.quantity,
        }


class StockAdjustment(Base):
    """Audit row for manual master stock changes."""
    __tablename__ = 'stock_adjustments'

    id = _id_column()
    organization_id = _org_column()
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    old_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    quantity_change = Column(Integer, nullable=False)
    reason = Column(String(255))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'old_stock': self.old_stock,
            'new_stock': self.new_stock,
            'quantity_change': self.quantity_change,
            'reason': self.reason,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# CONSUMABLES & STORAGE
# =============================================================================

class StorageLocation(Base):
    """Yard, warehouse or depot holding stock."""
    __tablename__ = 'storage_locations'

    id = _id_column()
    organization_id = _org_column()
    name = Column(String(255), nullable=False)
    description = Column(Text)
    street = Column(String(255))
    city = Column(String(100))
    state = Column(String(2))
    zip = Column(String(10))
    latitude = Column(Float)
    longitude = Column(Float)
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'street': self.street,
            'city': self.city,
            'state': self.state,
            'zip': self.zip,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'is_default': self.is_default,
            'is_active': self.is_active,
        }


class Consumable(Base):
    """Supplies used on service visits (paper, deodorizer, sanitizer...)."""
    __tablename__ = 'consumables'

    id = _id_column()
    organization_id = _org_column()
    name = Column(String(255), nullable=False)
    sku = Column(String(100))
    category = Column(String(100))
    unit_cost = Column(Float, default=0)
    unit_price = Column(Float, default=0)
    on_hand_qty = Column(Integer, default=0)
    reorder_threshold = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_consumables_organization', 'organization_id'),
    )

    @property
    def is_low_stock(self):
        return (self.on_hand_qty or 0) <= (self.reorder_threshold or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'sku': self.sku,
            'category': self.category,
            'unit_cost': self.unit_cost,
            'unit_price': self.unit_price,
            'on_hand_qty': self.on_hand_qty,
            'reorder_threshold': self.reorder_threshold,
            'is_low_stock': self.is_low_stock,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class ConsumableBundle(Base):
    """Named group of consumables billed together."""
    __tablename__ = 'consumable_bundles'

    id = _id_column()
    organization_id = _org_column()
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Float, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship("ConsumableBundleItem", back_populates="bundle", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'items': [item.to_dict() for item in self.items],
        }


class ConsumableBundleItem(Base):
    __tablename__ = 'consumable_bundle_items'

    id = _id_column()
    bundle_id = Column(String(36), ForeignKey('consumable_bundles.id'), nullable=False)
    consumable_id = Column(String(36), ForeignKey('consumables.id'), nullable=False)
    quantity = Column(Integer, default=1)

    bundle = relationship("ConsumableBundle", back_populates="items")
    consumable = relationship("Consumable")

    def to_dict(self):
        return {
            'consumable_id': self.consumable_id,
            'quantity': self.quantity,
        }


class ConsumableLocationStock(Base):
    """On-hand quantity of a consumable at a storage location."""
    __tablename__ = 'consumable_location_stock'

    id = _id_column()
    organization_id = _org_column()
    consumable_id = Column(String(36), ForeignKey('consumables.id'), nullable=False)
    storage_location_id = Column(String(36), ForeignKey('storage_locations.id'), nullable=False)
    quantity = Column(Integer, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('consumable_id', 'storage_location_id', name='uq_consumable_location_stock'),
    )

    def to_dict(self):
        return {
            'consumable_id': self.consumable_id,
            'storage_location_id': self.storage_location_id,
            'quantity': self.quantity,
        }


class StockMovement(Base):
    """Ledger of consumable quantity changes."""
    __tablename__ = 'stock_movements'

    id = _id_column()
    organization_id = _org_column()
    consumable_id = Column(String(36), ForeignKey('consumables.id'), nullable=False)
    storage_location_id = Column(String(36), ForeignKey('storage_locations.id'))
    movement_type = Column(String(50), nullable=False)  # job_usage, transfer_in, transfer_out, stock_count, adjustment
    quantity_change = Column(Integer, nullable=False)
    reference_id = Column(String(36))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_stock_movements_consumable', 'consumable_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'consumable_id': self.consumable_id,
            'storage_location_id': self.storage_location_id,
            'movement_type': self.movement_type,
            'quantity_change': self.quantity_change,
            'reference_id': self.reference_id,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }


class JobConsumable(Base):
    """Consumable used or billed on a job."""
    __tablename__ = 'job_consumables'

    id = _id_column()
    organization_id = _org_column()
    job_id = Column(String(36), ForeignKey('jobs.id'), nullable=False)
    consumable_id = Column(String(36), ForeignKey('consumables.id'))
    bundle_id = Column(String(36), ForeignKey('consumable_bundles.id'))
    billing_method = Column(String(20), nullable=False)  # per-use, bundle, subscription
    quantity = Column(Integer, default=1)
    unit_price = Column(Float, default=0)
    line_total = Column(Float, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("Job", back_populates="consumables")
    consumable = relationship("Consumable")

    def to_dict(self):
        return {
            'id': self.id,
            'job_id': self.job_id,
            'consumable_id': self.consumable_id,
            'bundle_id': self.bundle_id,
            'billing_method': self.billing_method,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
        }


# =============================================================================
# QUOTES, INVOICES & PAYMENTS
# =============================================================================

def _billing_totals(doc):
    return {
        'subtotal': doc.subtotal,
        'discount_type': doc.discount_type,
        'discount_value': doc.discount_value,
        'discount_amount': doc.discount_amount,
        'additional_fees': doc.additional_fees,
        'tax_rate': doc.tax_rate,
        'tax_amount': doc.tax_amount,
        'total_amount': doc.total_amount,
    }


class Quote(Base):
    """Customer quote."""
    __tablename__ = 'quotes'

    id = _id_column()
    organization_id = _org_column()
    quote_number = Column(String(50), nullable=False)
    customer_id = Column(String(36), ForeignKey('customers.id'), nullable=False)
    job_id = Column(String(36), ForeignKey('jobs.id'))
    status = Column(String(50), default='draft')  # draft, sent, accepted, rejected, expired
    subtotal = Column(Float, default=0)
    discount_type = Column(String(20), default='percentage')  # percentage, fixed
    discount_value = Column(Float, default=0)
    discount_amount = Column(Float, default=0)
    additional_fees = Column(Float, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total_amount = Column(Float, default=0)
    expiration_date = Column(Date)
    notes = Column(Text)
    terms = Column(Text)
    sent_at = Column(DateTime)
    invoice_id = Column(String(36), ForeignKey('invoices.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    items = relationship("QuoteItem", back_populates="quote", cascade="all, delete-orphan",
                         order_by="QuoteItem.sort_order")

    __table_args__ = (
        Index('ix_quotes_organization', 'organization_id'),
        Index('ix_quotes_customer', 'customer_id'),
        Index('ix_quotes_status', 'status'),
    )

    def to_dict(self):
        data = {
            'id': self.id,
            'organization_id': self.organization_id,
            'quote_number': self.quote_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'job_id': self.job_id,
            'status': self.status,
            'expiration_date': _iso(self.expiration_date),
            'notes': self.notes,
            'terms': self.terms,
            'sent_at': _iso(self.sent_at),
            'invoice_id': self.invoice_id,
            'items': [item.to_dict() for item in self.items],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        data.update(_billing_totals(self))
        return data


class QuoteItem(Base):
    __tablename__ = 'quote_items'

    id = _id_column()
    quote_id = Column(String(36), ForeignKey('quotes.id'), nullable=False)
    product_name = Column(String(255), nullable=False)
    description = Column(Text)
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    line_total = Column(Float, default=0)
    sort_order = Column(Integer, default=0)

    quote = relationship("Quote", back_populates="items")

    def to_dict(self):
        return {
            'id': self.id,
            'product_name': self.product_name,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
        }


class Invoice(Base):
    """Customer invoice."""
    __tablename__ = 'invoices'

    id = _id_column()
    organization_id = _org_column()
    invoice_number = Column(String(50), nullable=False)
    customer_id = Column(String(36), ForeignKey('customers.id'), nullable=False)
    job_id = Column(String(36), ForeignKey('jobs.id'))
    quote_id = Column(String(36))
    status = Column(String(50), default='draft')  # draft, sent, partial, paid, cancelled
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date)
    subtotal = Column(Float, default=0)
    discount_type = Column(String(20), default='percentage')
    discount_value = Column(Float, default=0)
    discount_amount = Column(Float, default=0)
    additional_fees = Column(Float, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total_amount = Column(Float, default=0)
    amount_paid = Column(Float, default=0)
    notes = Column(Text)
    terms = Column(Text)
    sent_at = Column(DateTime)
    paid_at = Column(DateTime)
    last_reminder_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
                         order_by="InvoiceItem.sort_order")
    payments = relationship("Payment", back_populates="invoice")

    __table_args__ = (
        Index('ix_invoices_organization', 'organization_id'),
        Index('ix_invoices_customer', 'customer_id'),
        Index('ix_invoices_status', 'status'),
        Index('ix_invoices_due_date', 'due_date'),
    )

    @property
    def balance_due(self):
        return round((self.total_amount or 0) - (self.amount_paid or 0), 2)

    def to_dict(self):
        data = {
            'id': self.id,
            'organization_id': self.organization_id,
            'invoice_number': self.invoice_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'job_id': self.job_id,
            'quote_id': self.quote_id,
            'status': self.status,
            'invoice_date': _iso(self.invoice_date),
            'due_date': _iso(self.due_date),
            'amount_paid': self.amount_paid,
            'balance_due': self.balance_due,
            'notes': self.notes,
            'terms': self.terms,
            'sent_at': _iso(self.sent_at),
            'paid_at': _iso(self.paid_at),
            'items': [item.to_dict() for item in self.items],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        data.update(_billing_totals(self))
        return data


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'

    id = _id_column()
    invoice_id = Column(String(36), ForeignKey('invoices.id'), nullable=False)
    product_name = Column(String(255), nullable=False)
    description = Column(Text)
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    line_total = Column(Float, default=0)
    sort_order = Column(Integer, default=0)

    invoice = relationship("Invoice", back_populates="items")

    def to_dict(self):
        return {
            'id': self.id,
            'product_name': self.product_name,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
        }


class Payment(Base):
    """Payment received against an invoice."""
    __tablename__ = 'payments'

    id = _id_column()
    organization_id = _org_column()
    invoice_id = Column(String(36), ForeignKey('invoices.id'), nullable=False)
    amount = Column(Float, nullable=False)
    payment_method = Column(String(50))  # cash, check, card, ach
    reference_number = Column(String(100))
    payment_date = Column(Date, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        Index('ix_payments_invoice', 'invoice_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'amount': self.amount,
            'payment_method': self.payment_method,
            'reference_number': self.reference_number,
            'payment_date': _iso(self.payment_date),
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# FLEET
# =============================================================================

class Vehicle(Base):
    """Pump truck, delivery truck or trailer."""
    __tablename__ = 'vehicles'

    id = _id_column()
    organization_id = _org_column()
    license_plate = Column(String(20), nullable=False)
    make = Column(String(100))
    model = Column(String(100))
    year = Column(Integer)
    vin = Column(String(17))
    vehicle_type = Column(String(50))  # pump_truck, flatbed, trailer...
    status = Column(String(50), default='active')  # active, maintenance, out_of_service, retired
    current_mileage = Column(Integer, default=0)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_vehicles_organization', 'organization_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'license_plate': self.license_plate,
            'make': self.make,
            'model': self.model,
            'year': self.year,
            'vin': self.vin,
            'vehicle_type': self.vehicle_type,
            'status': self.status,
            'current_mileage': self.current_mileage,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class VehicleLoadCapacity(Base):
    """How many units of a product a vehicle can carry."""
    __tablename__ = 'vehicle_load_capacities'

    id = _id_column()
    organization_id = _org_column()
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False)
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    max_capacity = Column(Integer, default=0)

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint('vehicle_id', 'product_id', name='uq_vehicle_load_capacity'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'max_capacity': self.max_capacity,
        }


class DailyVehicleLoad(Base):
    """Units of a product loaded on a vehicle for a given day."""
    __tablename__ = 'daily_vehicle_loads'

    id = _id_column()
    organization_id = _org_column()
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False)
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    load_date = Column(Date, nullable=False)
    assigned_quantity = Column(Integer, default=0)
    is_manual_override = Column(Boolean, default=False)
    notes = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('vehicle_id', 'product_id', 'load_date', name='uq_daily_vehicle_load'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'product_id': self.product_id,
            'load_date': _iso(self.load_date),
            'assigned_quantity': self.assigned_quantity,
            'is_manual_override': self.is_manual_override,
            'notes': self.notes,
        }


class MaintenanceRecord(Base):
    """Scheduled or completed vehicle maintenance."""
    __tablename__ = 'maintenance_records'

    id = _id_column()
    organization_id = _org_column()
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False)
    maintenance_type = Column(String(100), nullable=False)
    description = Column(Text)
    scheduled_date = Column(Date)
    completed_date = Column(Date)
    cost = Column(Float, default=0)
    vendor_name = Column(String(255))
    mileage_at_service = Column(Integer)
    status = Column(String(50), default='scheduled')  # scheduled, in_progress, completed, cancelled
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    vehicle = relationship("Vehicle")

    __table_args__ = (
        Index('ix_maintenance_records_vehicle', 'vehicle_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'license_plate': self.vehicle.license_plate if self.vehicle else None,
            'maintenance_type': self.maintenance_type,
            'description': self.description,
            'scheduled_date': _iso(self.scheduled_date),
            'completed_date': _iso(self.completed_date),
            'cost': self.cost,
            'vendor_name': self.vendor_name,
            'mileage_at_service': self.mileage_at_service,
            'status': self.status,
            'notes': self.notes,
        }


class WorkOrder(Base):
    """Repair work order against a vehicle or unit."""
    __tablename__ = 'work_orders'

    id = _id_column()
    organization_id = _org_column()
    work_order_number = Column(String(50))
    asset_type = Column(String(50), nullable=False)  # vehicle, product_item
    asset_id = Column(String(36), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(String(20), default='normal')  # critical, high, normal, low
    status = Column(String(50), default='open')
    due_date = Column(Date)
    source = Column(String(50), default='manual')  # manual, dvir, pm_schedule
    source_id = Column(String(36))
    assigned_to = Column(String(36), ForeignKey('users.id'))
    vendor_id = Column(String(36))
    technician_signature = Column(Text)
    driver_verification_required = Column(Boolean, default=False)
    driver_signature = Column(Text)
    resolution_notes = Column(Text)
    meter_open = Column(Integer)
    meter_close = Column(Integer)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parts = relationship("WorkOrderPart", back_populates="work_order", cascade="all, delete-orphan")
    history = relationship("WorkOrderHistory", back_populates="work_order", cascade="all, delete-orphan",
                           order_by="WorkOrderHistory.created_at")

    __table_args__ = (
        Index('ix_work_orders_organization', 'organization_id'),
        Index('ix_work_orders_asset', 'asset_type', 'asset_id'),
        Index('ix_work_orders_status', 'status'),
    )

    def to_dict(self, include_history=False):
        data = {
            'id': self.id,
            'work_order_number': self.work_order_number,
            'asset_type': self.asset_type,
            'asset_id': self.asset_id,
            'description': self.description,
            'priority': self.priority,
            'status': self.status,
            'due_date': _iso(self.due_date),
            'source': self.source,
            'source_id': self.source_id,
            'assigned_to': self.assigned_to,
            'vendor_id': self.vendor_id,
            'has_technician_signature': bool(self.technician_signature),
            'driver_verification_required': self.driver_verification_required,
            'resolution_notes': self.resolution_notes,
            'meter_open': self.meter_open,
            'meter_close': self.meter_close,
            'completed_at': _iso(self.completed_at),
            'parts': [part.to_dict() for part in self.parts],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_history:
            data['history'] = [entry.to_dict() for entry in self.history]
        return data


class WorkOrderPart(Base):
    __tablename__ = 'work_order_parts'

    id = _id_column()
    work_order_id = Column(String(36), ForeignKey('work_orders.id'), nullable=False)
    consumable_id = Column(String(36), ForeignKey('consumables.id'))
    part_name = Column(String(255), nullable=False)
    quantity = Column(Integer, default=1)
    unit_cost = Column(Float, default=0)
    source = Column(String(20), default='warehouse')  # truck_stock, warehouse, vendor

    work_order = relationship("WorkOrder", back_populates="parts")
    consumable = relationship("Consumable")

    def to_dict(self):
        return {
            'id': self.id,
            'consumable_id': self.consumable_id,
            'part_name': self.part_name,
            'quantity': self.quantity,
            'unit_cost': self.unit_cost,
            'source': self.source,
        }


class WorkOrderHistory(Base):
    __tablename__ = 'work_order_history'

    id = _id_column()
    work_order_id = Column(String(36), ForeignKey('work_orders.id'), nullable=False)
    from_status = Column(String(50))
    to_status = Column(String(50), nullable=False)
    message = Column(Text)
    changed_by = Column(String(36))
    created_at = Column(DateTime, default=datetime.utcnow)

    work_order = relationship("WorkOrder", back_populates="history")

    def to_dict(self):
        return {
            'from_status': self.from_status,
            'to_status': self.to_status,
            'message': self.message,
            'changed_by': self.changed_by,
            'created_at': _iso(self.created_at),
        }


class DVIRReport(Base):
    """Driver vehicle inspection report."""
    __tablename__ = 'dvir_reports'

    id = _id_column()
    organization_id = _org_column()
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False)
    driver_id = Column(String(36), ForeignKey('users.id'))
    report_type = Column(String(20), default='pre_trip')  # pre_trip, post_trip
    odometer = Column(Integer)
    items = Column(JSON, default=dict)  # {item_key: {'result': 'pass' | 'fail', 'notes': str}}
    major_defect_present = Column(Boolean, default=False)
    defects_count = Column(Integer, default=0)
    status = Column(String(20), default='submitted')
    notes = Column(Text)
    submitted_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_dvir_reports_vehicle', 'vehicle_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'driver_id': self.driver_id,
            'report_type': self.report_type,
            'odometer': self.odometer,
            'items': self.items or {},
            'major_defect_present': self.major_defect_present,
            'defects_count': self.defects_count,
            'status': self.status,
            'notes': self.notes,
            'submitted_at': _iso(self.submitted_at),
        }


class DVIRDefect(Base):
    __tablename__ = 'dvir_defects'

    id = _id_column()
    organization_id = _org_column()
    dvir_id = Column(String(36), ForeignKey('dvir_reports.id'), nullable=False)
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False)
    item_key = Column(String(100), nullable=False)
    severity = Column(String(20), default='major')
    status = Column(String(20), default='open')  # open, closed
    notes = Column(Text)
    work_order_id = Column(String(36), ForeignKey('work_orders.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    closed_at = Column(DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'dvir_id': self.dvir_id,
            'vehicle_id': self.vehicle_id,
            'item_key': self.item_key,
            'severity': self.severity,
            'status': self.status,
            'notes': self.notes,
            'work_order_id': self.work_order_id,
            'created_at': _iso(self.created_at),
            'closed_at': _iso(self.closed_at),
        }


class FuelLog(Base):
    """Fuel purchase or yard-tank fill."""
    __tablename__ = 'fuel_logs'

    id = _id_column()
    organization_id = _org_column()
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False)
    driver_id = Column(String(36), ForeignKey('users.id'))
    log_date = Column(Date, nullable=False)
    gallons = Column(Float, nullable=False)
    cost = Column(Float, default=0)
    cost_per_gallon = Column(Float)
    odometer = Column(Integer)
    vendor_name = Column(String(255))
    source_type = Column(String(50), default='retail_station')  # retail_station, yard_tank, mobile_service
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_fuel_logs_vehicle', 'vehicle_id'),
        Index('ix_fuel_logs_date', 'log_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'driver_id': self.driver_id,
            'log_date': _iso(self.log_date),
            'gallons': self.gallons,
            'cost': self.cost,
            'cost_per_gallon': self.cost_per_gallon,
            'odometer': self.odometer,
            'vendor_name': self.vendor_name,
            'source_type': self.source_type,
            'notes': self.notes,
        }


# =============================================================================
# DRIVER COMPLIANCE
# =============================================================================

class DriverCredential(Base):
    """License and DOT medical card for a driver."""
    __tablename__ = 'driver_credentials'

    id = _id_column()
    organization_id = _org_column()
    driver_id = Column(String(36), ForeignKey('users.id'), nullable=False, unique=True)
    license_number = Column(String(50))
    license_class = Column(String(10))
    license_state = Column(String(2))
    license_expiry_date = Column(Date)
    medical_card_expiry_date = Column(Date)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    driver = relationship("User")

    def to_dict(self):
        return {
            'id': self.id,
            'driver_id': self.driver_id,
            'license_number': self.license_number,
            'license_class': self.license_class,
            'license_state': self.license_state,
            'license_expiry_date': _iso(self.license_expiry_date),
            'medical_card_expiry_date': _iso(self.medical_card_expiry_date),
        }


class DriverTrainingRecord(Base):
    __tablename__ = 'driver_training_records'

    id = _id_column()
    organization_id = _org_column()
    driver_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    training_type = Column(String(255), nullable=False)
    completed_on = Column(Date)
    next_due = Column(Date)
    notes = Column(Text)

    driver = relationship("User")

    def to_dict(self):
        return {
            'id': self.id,
            'driver_id': self.driver_id,
            'training_type': self.training_type,
            'completed_on': _iso(self.completed_on),
            'next_due': _iso(self.next_due),
            'notes': self.notes,
        }


class ExpirationNotificationLog(Base):
    """Record of expiration reminders already sent, for de-duplication."""
    __tablename__ = 'expiration_notification_logs'

    id = _id_column()
    organization_id = _org_column()
    driver_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    item_type = Column(String(50), nullable=False)  # license, medical_card, training
    item_name = Column(String(255), nullable=False)
    days_until_expiry = Column(Integer, nullable=False)
    channel = Column(String(20), default='email')
    sent_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_expiration_logs_lookup', 'driver_id', 'item_type', 'days_until_expiry'),
    )


# =============================================================================
# NOTIFICATIONS & EVENT LOG
# =============================================================================

class Notification(Base):
    """In-app notifications for alerts, reminders, and system messages."""
    __tablename__ = 'notifications'

    id = _id_column()
    organization_id = _org_column()
    user_id = Column(String(36), ForeignKey('users.id'))  # None = broadcast to all
    title = Column(String(255), nullable=False)
    message = Column(Text)
    notification_type = Column(String(50), default='info')  # info, warning, alert, reminder, success
    priority = Column(String(20), default='normal')  # low, normal, high, urgent
    entity_type = Column(String(50))
    entity_id = Column(String(36))
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime)
    sent_email = Column(Boolean, default=False)
    extra_data = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_notifications_organization', 'organization_id'),
        Index('ix_notifications_user', 'user_id'),
        Index('ix_notifications_is_read', 'is_read'),
        Index('ix_notifications_created_at', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'user_id': self.user_id,
            'title': self.title,
            'message': self.message,
            'notification_type': self.notification_type,
            'priority': self.priority,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'is_read': self.is_read,
            'read_at': _iso(self.read_at),
            'sent_email': self.sent_email,
            'metadata': self.extra_data or {},
            'created_at': _iso(self.created_at)
        }


class NotificationPreference(Base):
    """
    Per-user delivery preferences. `event_preferences` maps an event type to
    {'email': bool, 'sms': bool}; missing events fall back to the global toggles.
    """
    __tablename__ = 'notification_preferences'

    id = _id_column()
    organization_id = _org_column()
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False, unique=True)
    email_enabled = Column(Boolean, default=True)
    sms_enabled = Column(Boolean, default=False)
    event_preferences = Column(JSON, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'email_enabled': self.email_enabled,
            'sms_enabled': self.sms_enabled,
            'event_preferences': self.event_preferences or {},
        }


class EventLog(Base):
    """
    Append-only audit trail: job status changes, quotes sent, payments,
    stock movements, DVIR defects.
    """
    __tablename__ = 'event_log'

    id = _id_column()
    organization_id = Column(String(36), ForeignKey('organizations.id'))
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    actor_type = Column(String(50))  # user, system, driver
    actor_id = Column(String(36))
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    event_type = Column(String(100), nullable=False)
    description = Column(Text)
    extra_data = Column(JSON, default=dict)

    __table_args__ = (
        Index('ix_event_log_organization', 'organization_id'),
        Index('ix_event_log_entity', 'entity_type', 'entity_id'),
        Index('ix_event_log_timestamp', 'timestamp'),
        Index('ix_event_log_event_type', 'event_type'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'timestamp': _iso(self.timestamp),
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'event_type': self.event_type,
            'description': self.description,
            'metadata': self.extra_data or {}
        }
