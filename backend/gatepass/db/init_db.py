from loguru import logger

from gatepass.core.config import settings
from gatepass.core.security import get_password_hash
from gatepass.db.session import engine, SessionLocal
from gatepass.models import Account, Base

def create_tables():
    """Create the schema straight from the models (tests and throwaway dev databases)."""
    Base.metadata.create_all(bind=engine)

def seed_demo_data():
    """Idempotent dev seed: one admin account able to moderate transfers and scan."""
    db = SessionLocal()
    try:
        admin_email = (settings.seed_admin_email or "admin@gatepass.dev").lower()
        admin_pwd = settings.seed_admin_password or "Admin1234!"
        admin = db.query(Account).filter(Account.email == admin_email).first()
        if not admin:
            admin = Account(
                email=admin_email,
                full_name="Admin",
                hashed_password=get_password_hash(admin_pwd),
                role="admin",
                is_active=True,
                email_verified=True,
            )
            db.add(admin)
            db.commit()
            logger.info(f"[seed] Created admin account {admin_email}")
    finally:
        db.close()
