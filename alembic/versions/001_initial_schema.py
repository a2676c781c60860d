"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates all tables for the PortaPro field service backend.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', sa.String(36), nullable=False)


def _org():
    return sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id'), nullable=False)


def _created():
    return sa.Column('created_at', sa.DateTime(), default=sa.func.now())


def _updated():
    return sa.Column('updated_at', sa.DateTime(), default=sa.func.now())


def upgrade() -> None:
    # Organizations & settings
    op.create_table('organizations',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('settings', sa.JSON()),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )

    op.create_table('company_settings',
        _id(),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('company_name', sa.String(255)),
        sa.Column('company_email', sa.String(255)),
        sa.Column('support_email', sa.String(255)),
        sa.Column('company_phone', sa.String(50)),
        sa.Column('company_address', sa.Text()),
        sa.Column('default_tax_rate', sa.Float()),
        sa.Column('payment_terms_days', sa.Integer(), default=30),
        sa.Column('quote_terms', sa.Text()),
        sa.Column('invoice_terms', sa.Text()),
        sa.Column('delivery_prefix', sa.String(20)),
        sa.Column('delivery_next_number', sa.Integer()),
        sa.Column('pickup_prefix', sa.String(20)),
        sa.Column('pickup_next_number', sa.Integer()),
        sa.Column('service_prefix', sa.String(20)),
        sa.Column('service_next_number', sa.Integer()),
        sa.Column('survey_prefix', sa.String(20)),
        sa.Column('survey_next_number', sa.Integer()),
        sa.Column('job_prefix', sa.String(20)),
        sa.Column('job_next_number', sa.Integer()),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id')
    )

    op.create_table('users',
        _id(), _org(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('phone', sa.String(50)),
        sa.Column('password_hash', sa.String(255)),
        sa.Column('role', sa.String(50), default='dispatcher'),
        sa.Column('is_active', sa.Boolean(), default=True),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_organization', 'users', ['organization_id'])
    op.create_index('ix_users_role', 'users', ['role'])

    # Customers
    op.create_table('customers',
        _id(), _org(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('customer_type', sa.String(50), default='commercial'),
        sa.Column('email', sa.String(255)),
        sa.Column('phone', sa.String(50)),
        sa.Column('billing_street', sa.String(255)),
        sa.Column('billing_city', sa.String(100)),
        sa.Column('billing_state', sa.String(2)),
        sa.Column('billing_zip', sa.String(10)),
        sa.Column('service_street', sa.String(255)),
        sa.Column('service_city', sa.String(100)),
        sa.Column('service_state', sa.String(2)),
        sa.Column('service_zip', sa.String(10)),
        sa.Column('notes', sa.Text()),
        sa.Column('tax_rate_override', sa.Float()),
        sa.Column('is_active', sa.Boolean(), default=True),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_organization', 'customers', ['organization_id'])
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_email', 'customers', ['email'])

    op.create_table('customer_service_locations',
        _id(), _org(),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('location_name', sa.String(255), nullable=False),
        sa.Column('street', sa.String(255)),
        sa.Column('city', sa.String(100)),
        sa.Column('state', sa.String(2)),
        sa.Column('zip', sa.String(10)),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('is_default', sa.Boolean(), default=False),
        sa.Column('access_instructions', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_service_locations_customer', 'customer_service_locations', ['customer_id'])

    op.create_table('tax_rates',
        _id(), _org(),
        sa.Column('zip_code', sa.String(5)),
        sa.Column('state', sa.String(2)),
        sa.Column('rate_percent', sa.Float(), nullable=False),
        sa.Column('description', sa.String(255)),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tax_rates_zip', 'tax_rates', ['organization_id', 'zip_code'])
    op.create_index('ix_tax_rates_state', 'tax_rates', ['organization_id', 'state'])

    # Fleet and storage (referenced by jobs and inventory)
    op.create_table('vehicles',
        _id(), _org(),
        sa.Column('license_plate', sa.String(20), nullable=False),
        sa.Column('make', sa.String(100)),
        sa.Column('model', sa.String(100)),
        sa.Column('year', sa.Integer()),
        sa.Column('vin', sa.String(17)),
        sa.Column('vehicle_type', sa.String(50)),
        sa.Column('status', sa.String(50), default='active'),
        sa.Column('current_mileage', sa.Integer(), default=0),
        sa.Column('notes', sa.Text()),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_vehicles_organization', 'vehicles', ['organization_id'])

    op.create_table('storage_locations',
        _id(), _org(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('street', sa.String(255)),
        sa.Column('city', sa.String(100)),
        sa.Column('state', sa.String(2)),
        sa.Column('zip', sa.String(10)),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('is_default', sa.Boolean(), default=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('products',
        _id(), _org(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('stock_total', sa.Integer(), default=0),
        sa.Column('default_price_per_day', sa.Float(), default=0),
        sa.Column('track_inventory', sa.Boolean(), default=True),
        sa.Column('low_stock_threshold', sa.Integer(), default=0),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_products_organization', 'products', ['organization_id'])

    # Jobs
    op.create_table('jobs',
        _id(), _org(),
        sa.Column('job_number', sa.String(50), nullable=False),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(50), default='unassigned'),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('scheduled_time', sa.String(5)),
        sa.Column('timezone', sa.String(64)),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('service_location_id', sa.String(36), sa.ForeignKey('customer_service_locations.id')),
        sa.Column('driver_id', sa.String(36), sa.ForeignKey('users.id')),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id')),
        sa.Column('notes', sa.Text()),
        sa.Column('special_instructions', sa.Text()),
        sa.Column('assigned_template_ids', sa.JSON()),
        sa.Column('total_price', sa.Float(), default=0),
        sa.Column('actual_completion_time', sa.DateTime()),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_jobs_organization', 'jobs', ['organization_id'])
    op.create_index('ix_jobs_scheduled_date', 'jobs', ['scheduled_date'])
    op.create_index('ix_jobs_driver', 'jobs', ['driver_id'])
    op.create_index('ix_jobs_status', 'jobs', ['status'])

    op.create_table('maintenance_report_templates',
        _id(), _org(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('template_type', sa.String(50), default='service'),
        sa.Column('sections', sa.JSON()),
        sa.Column('rules', sa.JSON()),
        sa.Column('is_active', sa.Boolean(), default=True),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )

    # Rental inventory
    op.create_table('product_items',
        _id(), _org(),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('item_code', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), default='available'),
        sa.Column('condition', sa.String(50)),
        sa.Column('storage_location_id', sa.String(36), sa.ForeignKey('storage_locations.id')),
        sa.Column('notes', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'item_code', name='uq_product_items_code')
    )
    op.create_index('ix_product_items_product', 'product_items', ['product_id'])

    op.create_table('equipment_assignments',
        _id(), _org(),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('product_item_id', sa.String(36), sa.ForeignKey('product_items.id')),
        sa.Column('quantity', sa.Integer(), default=1),
        sa.Column('assigned_date', sa.Date(), nullable=False),
        sa.Column('return_date', sa.Date()),
        sa.Column('status', sa.String(50), default='assigned'),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_equipment_assignments_product', 'equipment_assignments', ['product_id'])
    op.create_index('ix_equipment_assignments_job', 'equipment_assignments', ['job_id'])

    op.create_table('product_location_stock',
        _id(), _org(),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('storage_location_id', sa.String(36), sa.ForeignKey('storage_locations.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), default=0),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'storage_location_id', name='uq_product_location_stock')
    )

    op.create_table('stock_adjustments',
        _id(), _org(),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('old_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(255)),
        sa.Column('notes', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )

    # Consumables
    op.create_table('consumables',
        _id(), _org(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100)),
        sa.Column('category', sa.String(100)),
        sa.Column('unit_cost', sa.Float(), default=0),
        sa.Column('unit_price', sa.Float(), default=0),
        sa.Column('on_hand_qty', sa.Integer(), default=0),
        sa.Column('reorder_threshold', sa.Integer(), default=0),
        sa.Column('is_active', sa.Boolean(), default=True),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_consumables_organization', 'consumables', ['organization_id'])

    op.create_table('consumable_bundles',
        _id(), _org(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Float(), default=0),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('consumable_bundle_items',
        _id(),
        sa.Column('bundle_id', sa.String(36), sa.ForeignKey('consumable_bundles.id'), nullable=False),
        sa.Column('consumable_id', sa.String(36), sa.ForeignKey('consumables.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), default=1),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('consumable_location_stock',
        _id(), _org(),
        sa.Column('consumable_id', sa.String(36), sa.ForeignKey('consumables.id'), nullable=False),
        sa.Column('storage_location_id', sa.String(36), sa.ForeignKey('storage_locations.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), default=0),
        _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('consumable_id', 'storage_location_id', name='uq_consumable_location_stock')
    )

    op.create_table('stock_movements',
        _id(), _org(),
        sa.Column('consumable_id', sa.String(36), sa.ForeignKey('consumables.id'), nullable=False),
        sa.Column('storage_location_id', sa.String(36), sa.ForeignKey('storage_locations.id')),
        sa.Column('movement_type', sa.String(50), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('reference_id', sa.String(36)),
        sa.Column('notes', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stock_movements_consumable', 'stock_movements', ['consumable_id'])

    op.create_table('job_consumables',
        _id(), _org(),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id'), nullable=False),
        sa.Column('consumable_id', sa.String(36), sa.ForeignKey('consumables.id')),
        sa.Column('bundle_id', sa.String(36), sa.ForeignKey('consumable_bundles.id')),
        sa.Column('billing_method', sa.String(20), nullable=False),
        sa.Column('quantity', sa.Integer(), default=1),
        sa.Column('unit_price', sa.Float(), default=0),
        sa.Column('line_total', sa.Float(), default=0),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )

    # Billing (invoices first: quotes reference the converted invoice)
    op.create_table('invoices',
        _id(), _org(),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id')),
        sa.Column('quote_id', sa.String(36)),
        sa.Column('status', sa.String(50), default='draft'),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date()),
        sa.Column('subtotal', sa.Float(), default=0),
        sa.Column('discount_type', sa.String(20), default='percentage'),
        sa.Column('discount_value', sa.Float(), default=0),
        sa.Column('discount_amount', sa.Float(), default=0),
        sa.Column('additional_fees', sa.Float(), default=0),
        sa.Column('tax_rate', sa.Float(), default=0),
        sa.Column('tax_amount', sa.Float(), default=0),
        sa.Column('total_amount', sa.Float(), default=0),
        sa.Column('amount_paid', sa.Float(), default=0),
        sa.Column('notes', sa.Text()),
        sa.Column('terms', sa.Text()),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('paid_at', sa.DateTime()),
        sa.Column('last_reminder_at', sa.DateTime()),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_invoices_organization', 'invoices', ['organization_id'])
    op.create_index('ix_invoices_customer', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])

    op.create_table('quotes',
        _id(), _org(),
        sa.Column('quote_number', sa.String(50), nullable=False),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id')),
        sa.Column('status', sa.String(50), default='draft'),
        sa.Column('subtotal', sa.Float(), default=0),
        sa.Column('discount_type', sa.String(20), default='percentage'),
        sa.Column('discount_value', sa.Float(), default=0),
        sa.Column('discount_amount', sa.Float(), default=0),
        sa.Column('additional_fees', sa.Float(), default=0),
        sa.Column('tax_rate', sa.Float(), default=0),
        sa.Column('tax_amount', sa.Float(), default=0),
        sa.Column('total_amount', sa.Float(), default=0),
        sa.Column('expiration_date', sa.Date()),
        sa.Column('notes', sa.Text()),
        sa.Column('terms', sa.Text()),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id')),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_quotes_organization', 'quotes', ['organization_id'])
    op.create_index('ix_quotes_customer', 'quotes', ['customer_id'])
    op.create_index('ix_quotes_status', 'quotes', ['status'])

    for table, parent in (('quote_items', 'quote_id'), ('invoice_items', 'invoice_id')):
        op.create_table(table,
            _id(),
            sa.Column(parent, sa.String(36), sa.ForeignKey(f"{parent[:-3]}s.id"), nullable=False),
            sa.Column('product_name', sa.String(255), nullable=False),
            sa.Column('description', sa.Text()),
            sa.Column('quantity', sa.Float(), default=1),
            sa.Column('unit_price', sa.Float(), default=0),
            sa.Column('line_total', sa.Float(), default=0),
            sa.Column('sort_order', sa.Integer(), default=0),
            sa.PrimaryKeyConstraint('id')
        )

    op.create_table('payments',
        _id(), _org(),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(50)),
        sa.Column('reference_number', sa.String(100)),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payments_invoice', 'payments', ['invoice_id'])

    # Vehicle loads & maintenance
    op.create_table('vehicle_load_capacities',
        _id(), _org(),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('max_capacity', sa.Integer(), default=0),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vehicle_id', 'product_id', name='uq_vehicle_load_capacity')
    )

    op.create_table('daily_vehicle_loads',
        _id(), _org(),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('load_date', sa.Date(), nullable=False),
        sa.Column('assigned_quantity', sa.Integer(), default=0),
        sa.Column('is_manual_override', sa.Boolean(), default=False),
        sa.Column('notes', sa.Text()),
        _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vehicle_id', 'product_id', 'load_date', name='uq_daily_vehicle_load')
    )

    op.create_table('maintenance_records',
        _id(), _org(),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column('maintenance_type', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('scheduled_date', sa.Date()),
        sa.Column('completed_date', sa.Date()),
        sa.Column('cost', sa.Float(), default=0),
        sa.Column('vendor_name', sa.String(255)),
        sa.Column('mileage_at_service', sa.Integer()),
        sa.Column('status', sa.String(50), default='scheduled'),
        sa.Column('notes', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_maintenance_records_vehicle', 'maintenance_records', ['vehicle_id'])

    op.create_table('work_orders',
        _id(), _org(),
        sa.Column('work_order_number', sa.String(50)),
        sa.Column('asset_type', sa.String(50), nullable=False),
        sa.Column('asset_id', sa.String(36), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(20), default='normal'),
        sa.Column('status', sa.String(50), default='open'),
        sa.Column('due_date', sa.Date()),
        sa.Column('source', sa.String(50), default='manual'),
        sa.Column('source_id', sa.String(36)),
        sa.Column('assigned_to', sa.String(36), sa.ForeignKey('users.id')),
        sa.Column('vendor_id', sa.String(36)),
        sa.Column('technician_signature', sa.Text()),
        sa.Column('driver_verification_required', sa.Boolean(), default=False),
        sa.Column('driver_signature', sa.Text()),
        sa.Column('resolution_notes', sa.Text()),
        sa.Column('meter_open', sa.Integer()),
        sa.Column('meter_close', sa.Integer()),
        sa.Column('completed_at', sa.DateTime()),
        _created(), _updated(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_work_orders_organization', 'work_orders', ['organization_id'])
    op.create_index('ix_work_orders_asset', 'work_orders', ['asset_type', 'asset_id'])
    op.create_index('ix_work_orders_status', 'work_orders', ['status'])

    op.create_table('work_order_parts',
        _id(),
        sa.Column('work_order_id', sa.String(36), sa.ForeignKey('work_orders.id'), nullable=False),
        sa.Column('consumable_id', sa.String(36), sa.ForeignKey('consumables.id')),
        sa.Column('part_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), default=1),
        sa.Column('unit_cost', sa.Float(), default=0),
        sa.Column('source', sa.String(20), default='warehouse'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('work_order_history',
        _id(),
        sa.Column('work_order_id', sa.String(36), sa.ForeignKey('work_orders.id'), nullable=False),
        sa.Column('from_status', sa.String(50)),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('changed_by', sa.String(36)),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )

    # Inspections & fuel
    op.create_table('dvir_reports',
        _id(), _org(),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column('driver_id', sa.String(36), sa.ForeignKey('users.id')),
        sa.Column('report_type', sa.String(20), default='pre_trip'),
        sa.Column('odometer', sa.Integer()),
        sa.Column('items', sa.JSON()),
        sa.Column('major_defect_present', sa.Boolean(), default=False),
        sa.Column('defects_count', sa.Integer(), default=0),
        sa.Column('status', sa.String(20), default='submitted'),
        sa.Column('notes', sa.Text()),
        sa.Column('submitted_at', sa.DateTime(), default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_dvir_reports_vehicle', 'dvir_reports', ['vehicle_id'])

    op.create_table('dvir_defects',
        _id(), _org(),
        sa.Column('dvir_id', sa.String(36), sa.ForeignKey('dvir_reports.id'), nullable=False),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column('item_key', sa.String(100), nullable=False),
        sa.Column('severity', sa.String(20), default='major'),
        sa.Column('status', sa.String(20), default='open'),
        sa.Column('notes', sa.Text()),
        sa.Column('work_order_id', sa.String(36), sa.ForeignKey('work_orders.id')),
        _created(),
        sa.Column('closed_at', sa.DateTime()),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('fuel_logs',
        _id(), _org(),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column('driver_id', sa.String(36), sa.ForeignKey('users.id')),
        sa.Column('log_date', sa.Date(), nullable=False),
        sa.Column('gallons', sa.Float(), nullable=False),
        sa.Column('cost', sa.Float(), default=0),
        sa.Column('cost_per_gallon', sa.Float()),
        sa.Column('odometer', sa.Integer()),
        sa.Column('vendor_name', sa.String(255)),
        sa.Column('source_type', sa.String(50), default='retail_station'),
        sa.Column('notes', sa.Text()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_fuel_logs_vehicle', 'fuel_logs', ['vehicle_id'])
    op.create_index('ix_fuel_logs_date', 'fuel_logs', ['log_date'])

    # Driver compliance
    op.create_table('driver_credentials',
        _id(), _org(),
        sa.Column('driver_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('license_number', sa.String(50)),
        sa.Column('license_class', sa.String(10)),
        sa.Column('license_state', sa.String(2)),
        sa.Column('license_expiry_date', sa.Date()),
        sa.Column('medical_card_expiry_date', sa.Date()),
        _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('driver_id')
    )

    op.create_table('driver_training_records',
        _id(), _org(),
        sa.Column('driver_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('training_type', sa.String(255), nullable=False),
        sa.Column('completed_on', sa.Date()),
        sa.Column('next_due', sa.Date()),
        sa.Column('notes', sa.Text()),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('expiration_notification_logs',
        _id(), _org(),
        sa.Column('driver_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('item_type', sa.String(50), nullable=False),
        sa.Column('item_name', sa.String(255), nullable=False),
        sa.Column('days_until_expiry', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(20), default='email'),
        sa.Column('sent_at', sa.DateTime(), default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_expiration_logs_lookup', 'expiration_notification_logs',
                    ['driver_id', 'item_type', 'days_until_expiry'])

    # Notifications & audit trail
    op.create_table('notifications',
        _id(), _org(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id')),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('notification_type', sa.String(50), default='info'),
        sa.Column('priority', sa.String(20), default='normal'),
        sa.Column('entity_type', sa.String(50)),
        sa.Column('entity_id', sa.String(36)),
        sa.Column('is_read', sa.Boolean(), default=False),
        sa.Column('read_at', sa.DateTime()),
        sa.Column('sent_email', sa.Boolean(), default=False),
        sa.Column('extra_data', sa.JSON()),
        _created(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_organization', 'notifications', ['organization_id'])
    op.create_index('ix_notifications_user', 'notifications', ['user_id'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table('notification_preferences',
        _id(), _org(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), default=True),
        sa.Column('sms_enabled', sa.Boolean(), default=False),
        sa.Column('event_preferences', sa.JSON()),
        _updated(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table('event_log',
        _id(),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id')),
        sa.Column('timestamp', sa.DateTime(), nullable=False, default=sa.func.now()),
        sa.Column('actor_type', sa.String(50)),
        sa.Column('actor_id', sa.String(36)),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('extra_data', sa.JSON()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_event_log_organization', 'event_log', ['organization_id'])
    op.create_index('ix_event_log_entity', 'event_log', ['entity_type', 'entity_id'])
    op.create_index('ix_event_log_timestamp', 'event_log', ['timestamp'])
    op.create_index('ix_event_log_event_type', 'event_log', ['event_type'])


def downgrade() -> None:
    for table in (
        'event_log', 'notification_preferences', 'notifications',
        'expiration_notification_logs', 'driver_training_records', 'driver_credentials',
        'fuel_logs', 'dvir_defects', 'dvir_reports',
        'work_order_history', 'work_order_parts', 'work_orders', 'maintenance_records',
        'daily_vehicle_loads', 'vehicle_load_capacities',
        'payments', 'invoice_items', 'quote_items', 'quotes', 'invoices',
        'job_consumables', 'stock_movements', 'consumable_location_stock',
        'consumable_bundle_items', 'consumable_bundles', 'consumables',
        'stock_adjustments', 'product_location_stock', 'equipment_assignments', 'product_items',
        'maintenance_report_templates', 'jobs', 'products', 'storage_locations', 'vehicles',
        'tax_rates', 'customer_service_locations', 'customers', 'users',
        'company_settings', 'organizations',
    ):
        op.drop_table(table)
