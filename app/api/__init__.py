"""
API Blueprints Package

All HTTP route handlers for the application, organized by domain.
Each module defines a Flask Blueprint registered in app/__init__.py.

BLUEPRINT REFERENCE:
====================

Customers & Scheduling:
- customers.py     : Customers, service locations, CSV import, tax rates
- jobs.py          : Jobs, driver schedules, equipment, consumables, service reports

Billing:
- billing.py       : Quotes, invoices, payments, PDF download and email

Inventory:
- inventory.py     : Products, unified stock, availability, consumables, storage locations

Fleet:
- fleet.py         : Vehicles, load capacities, daily loads, fuel, DVIR
- maintenance.py   : Maintenance records and work orders
- compliance.py    : Driver credentials, training, expiration dashboard

Other:
- notifications.py : In-app notifications and delivery preferences
- maps.py          : GeoJSON marker feeds with ETag caching
- scheduler.py     : Background job status and manual triggers (service role)
"""

# All blueprints are imported and registered in app/__init__.py
# This file serves as documentation only

__all__ = []
