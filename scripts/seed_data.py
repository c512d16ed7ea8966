"""
Seed the default admin account and the subscription plan catalog.

    python -m scripts.seed_data

Existing records are left untouched, so the script can be re-run safely.
"""

import logging
import os
import sys

import database
from database import create_document, ensure_indexes
from schemas import Admin, Plan
from security import get_password_hash

logger = logging.getLogger("scripts.seed_data")

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@cfa.com"

PLANS = [
    {
        "plan_id": "basic",
        "plan_name": "Basic Plan",
        "description": "Basic cyber fraud awareness protection for individuals",
        "price": 999,
        "duration": 12,
        "max_members": 1,
        "features": [
            "24/7 Helpline Support",
            "Cyber Awareness Articles",
            "Fraud Alert Notifications",
            "Basic Consultation",
        ],
    },
    {
        "plan_id": "family",
        "plan_name": "Family Plan",
        "description": "Comprehensive protection for families up to 4 members",
        "price": 2499,
        "duration": 12,
        "max_members": 4,
        "features": [
            "24/7 Helpline Support",
            "Cyber Awareness Articles",
            "Fraud Alert Notifications",
            "Priority Consultation",
            "Family Member Management",
            "Group Training Sessions",
        ],
    },
    {
        "plan_id": "premium",
        "plan_name": "Premium Plan",
        "description": "Premium protection with advanced features",
        "price": 4999,
        "duration": 12,
        "max_members": 6,
        "features": [
            "24/7 Helpline Support",
            "Cyber Awareness Articles",
            "Fraud Alert Notifications",
            "Priority Consultation",
            "Family Member Management",
            "Group Training Sessions",
            "Personal Cyber Security Audit",
            "Emergency Response Team",
        ],
    },
]


def seed_admin(db, password: str) -> bool:
    """Create the default admin unless one with that username exists. Returns True if created."""
    if db["admin"].find_one({"username": DEFAULT_ADMIN_USERNAME}):
        logger.info("Admin user already exists")
        return False
    admin = Admin(
        username=DEFAULT_ADMIN_USERNAME,
        email=DEFAULT_ADMIN_EMAIL,
        password_hash=get_password_hash(password),
        role="super_admin",
    )
    create_document(db, "admin", admin)
    logger.info("Admin user created successfully")
    return True


def seed_plans(db) -> int:
    created = 0
    for plan in PLANS:
        if db["plan"].find_one({"plan_id": plan["plan_id"]}):
            logger.info("Plan %s already exists", plan["plan_name"])
            continue
        create_document(db, "plan", Plan(**plan))
        logger.info("Plan %s created successfully", plan["plan_name"])
        created += 1
    return created


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL not set")
        return 1
    password = os.getenv("SEED_ADMIN_PASSWORD")
    if not password:
        password = "admin123"
        logger.warning("SEED_ADMIN_PASSWORD not set, using the default admin password")
    ensure_indexes(database.db)
    seed_admin(database.db, password)
    seed_plans(database.db)
    logger.info("Seeding completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
