"""
Database package for the PortaPro backend.
Provides SQLAlchemy models, connection management, and session handling.
"""

from database.connection import (
    Base,
    configure_engine,
    get_engine,
    get_db_session,
    init_db,
    check_db_connection
)

from database.models import (
    Organization,
    CompanySettings,
    User,
    Customer,
    CustomerServiceLocation,
    TaxRate,
    Job,
    MaintenanceReportTemplate,
    Product,
    ProductItem,
    EquipmentAssignment,
    ProductLocationStock,
    StockAdjustment,
    StorageLocation,
    Consumable,
    ConsumableBundle,
    ConsumableBundleItem,
    ConsumableLocationStock,
    StockMovement,
    JobConsumable,
    Quote,
    QuoteItem,
    Invoice,
    InvoiceItem,
    Payment,
    Vehicle,
    VehicleLoadCapacity,
    DailyVehicleLoad,
    MaintenanceRecord,
    WorkOrder,
    WorkOrderPart,
    WorkOrderHistory,
    DVIRReport,
    DVIRDefect,
    FuelLog,
    DriverCredential,
    DriverTrainingRecord,
    ExpirationNotificationLog,
    Notification,
    NotificationPreference,
    EventLog,
)

__all__ = [
    # Connection
    'Base',
    'configure_engine',
    'get_engine',
    'get_db_session',
    'init_db',
    'check_db_connection',
    # Models
    'Organization',
    'CompanySettings',
    'User',
    'Customer',
    'CustomerServiceLocation',
    'TaxRate',
    'Job',
    'MaintenanceReportTemplate',
    'Product',
    'ProductItem',
    'EquipmentAssignment',
    'ProductLocationStock',
    'StockAdjustment',
    'StorageLocation',
    'Consumable',
    'ConsumableBundle',
    'ConsumableBundleItem',
    'ConsumableLocationStock',
    'StockMovement',
    'JobConsumable',
    'Quote',
    'QuoteItem',
    'Invoice',
    'InvoiceItem',
    'Payment',
    'Vehicle',
    'VehicleLoadCapacity',
    'DailyVehicleLoad',
    'MaintenanceRecord',
    'WorkOrder',
    'WorkOrderPart',
    'WorkOrderHistory',
    'DVIRReport',
    'DVIRDefect',
    'FuelLog',
    'DriverCredential',
    'DriverTrainingRecord',
    'ExpirationNotificationLog',
    'Notification',
    'NotificationPreference',
    'EventLog',
]
