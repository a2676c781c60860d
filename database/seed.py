"""
Database seeding for the PortaPro backend.
Creates the default organization, its company settings and an owner user
if the database is empty.
"""

import logging
from werkzeug.security import generate_password_hash
from database.connection import get_db_session
from database.models import Organization, CompanySettings, User, StorageLocation

logger = logging.getLogger(__name__)

DEFAULT_ORG_NAME = "PortaPro Demo Rentals"
DEFAULT_ORG_SLUG = "portapro-demo"
DEFAULT_OWNER_EMAIL = "owner@portaprosoftware.com"
DEFAULT_OWNER_PASSWORD = "changeme123"


def get_or_create_default_organization(session):
    """Return the default organization, creating it on first use."""
    org = session.query(Organization).filter_by(slug=DEFAULT_ORG_SLUG).first()
    if org:
        return org

    org = session.query(Organization).first()
    if org:
        return org

    org = Organization(
        name=DEFAULT_ORG_NAME,
        slug=DEFAULT_ORG_SLUG,
        settings={
            'timezone': 'America/New_York',
            'currency': 'USD',
        }
    )
    session.add(org)
    session.flush()
    logger.info(f"Created default organization: {org.name}")
    return org


def get_or_create_company_settings(session, organization_id):
    """Company settings row for an organization (job counters, billing defaults)."""
    settings = session.query(CompanySettings).filter_by(organization_id=organization_id).first()
    if settings:
        return settings

    settings = CompanySettings(organization_id=organization_id, payment_terms_days=30)
    session.add(settings)
    session.flush()
    logger.info(f"Created company settings for organization {organization_id}")
    return settings


def seed_default_owner(session, organization_id):
    """Create the owner user if no owner exists."""
    owner = session.query(User).filter_by(organization_id=organization_id, role='owner').first()
    if owner:
        logger.info(f"Owner user already exists: {owner.email}")
        return owner

    owner = User(
        organization_id=organization_id,
        email=DEFAULT_OWNER_EMAIL,
        first_name="Account",
        last_name="Owner",
        password_hash=generate_password_hash(DEFAULT_OWNER_PASSWORD, method='pbkdf2:sha256'),
        role='owner',
        is_active=True
    )
    session.add(owner)
    session.flush()
    logger.info(f"Created default owner user: {owner.email}")
    return owner


def seed_default_storage_location(session, organization_id):
    location = session.query(StorageLocation).filter_by(
        organization_id=organization_id, is_default=True
    ).first()
    if location:
        return location

    location = StorageLocation(organization_id=organization_id, name='Main Yard', is_default=True)
    session.add(location)
    session.flush()
    logger.info("Created default storage location: Main Yard")
    return location


def seed_database():
    """
    Seed the database with default data if empty.
    Call this at application startup.
    """
    try:
        with get_db_session() as session:
            org = get_or_create_default_organization(session)
            get_or_create_company_settings(session, org.id)
            seed_default_owner(session, org.id)
            seed_default_storage_location(session, org.id)
        logger.info("Database seeding completed successfully")
        return True
    except Exception as e:
        logger.error(f"Database seeding failed: {e}")
        raise


def get_default_organization_id():
    """Get the ID of the default organization, creating it if needed."""
    with get_db_session() as session:
        return get_or_create_default_organization(session).id


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    seed_database()
