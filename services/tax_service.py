"""
Tax Service - resolves the sales tax rate that applies to a customer.

Lookup order, first non-null wins:
    1. customer tax_rate_override
    2. ZIP rate (service_zip, default service location zip, billing_zip)
    3. state rate
    4. company settings default
    5. DEFAULT_TAX_RATE from configuration
"""

import logging
from typing import Dict, Optional, Any

from sqlalchemy.orm import Session

from app.utils.timezones import clean_zip
from database.models import CompanySettings, Customer, CustomerServiceLocation, TaxRate
from services.email_service import config_value

logger = logging.getLogger(__name__)


class TaxService:
    def __init__(self, session: Session, organization_id: str, config=None):
        self.session = session
        self.organization_id = organization_id
        self.config = config

    def _zip_rate(self, zip_code: str) -> Optional[float]:
        zip5 = clean_zip(zip_code)
        if len(zip5) != 5:
            return None
        row = self.session.query(TaxRate).filter(
            TaxRate.organization_id == self.organization_id,
            TaxRate.zip_code == zip5
        ).first()
        return row.rate_percent if row else None

    def _state_rate(self, state: str) -> Optional[float]:
        if not state:
            return None
        row = self.session.query(TaxRate).filter(
            TaxRate.organization_id == self.organization_id,
            TaxRate.zip_code.is_(None),
            TaxRate.state == state.strip().upper()
        ).first()
        return row.rate_percent if row else None

    def _default_location(self, customer: Customer) -> Optional[CustomerServiceLocation]:
        return self.session.query(CustomerServiceLocation).filter(
            CustomerServiceLocation.customer_id == customer.id,
            CustomerServiceLocation.is_default == True  # noqa: E712
        ).first()

    def resolve_for_customer(self, customer_id: Optional[str]) -> Dict[str, Any]:
        """
        Resolve the applicable rate.

        Returns:
            {'rate_percent': float, 'source': str}
        """
        customer = None
        if customer_id:
            customer = self.session.query(Customer).filter(
                Customer.id == customer_id,
                Customer.organization_id == self.organization_id
            ).first()

        if customer is not None:
            if customer.tax_rate_override is not None:
                return {'rate_percent': float(customer.tax_rate_override), 'source': 'customer_override'}

            location = self._default_location(customer)
            zip_candidates = [
                ('service_zip', customer.service_zip),
                ('service_location_zip', location.zip if location else None),
                ('billing_zip', customer.billing_zip),
            ]
            for source, zip_code in zip_candidates:
                if not zip_code:
                    continue
                rate = self._zip_rate(zip_code)
                if rate is not None:
                    return {'rate_percent': float(rate), 'source': f'zip:{source}'}

            state = customer.service_state or (location.state if location else None) or customer.billing_state
            rate = self._state_rate(state)
            if rate is not None:
                return {'rate_percent': float(rate), 'source': 'state'}

        settings = self.session.query(CompanySettings).filter(
            CompanySettings.organization_id == self.organization_id
        ).first()
        if settings and settings.default_tax_rate is not None:
            return {'rate_percent': float(settings.default_tax_rate), 'source': 'company_default'}

        default_rate = float(config_value(self.config, 'DEFAULT_TAX_RATE', 0) or 0)
        logger.debug(f"Tax rate for customer {customer_id} fell through to config default {default_rate}")
        return {'rate_percent': default_rate, 'source': 'config_default'}

    def upsert_rate(self, rate_percent: float, zip_code: str = None, state: str = None,
                    description: str = None) -> Dict:
        """Create or update a ZIP or state-wide rate."""
        zip5 = clean_zip(zip_code) if zip_code else None
        state_code = state.strip().upper() if state else None
        query = self.session.query(TaxRate).filter(TaxRate.organization_id == self.organization_id)
        if zip5:
            query = query.filter(TaxRate.zip_code == zip5)
        else:
            query = query.filter(TaxRate.zip_code.is_(None), TaxRate.state == state_code)

        row = query.first()
        if row is None:
            row = TaxRate(organization_id=self.organization_id, zip_code=zip5, state=state_code)
            self.session.add(row)
        row.rate_percent = float(rate_percent)
        row.state = state_code or row.state
        row.description = description
        self.session.flush()
        logger.info(f"Tax rate set: zip={zip5} state={state_code} rate={rate_percent}")
        return row.to_dict()
