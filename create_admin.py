"""
Create the platform admin account.

    python create_admin.py

Reads ADMIN_NAME, ADMIN_EMAIL and ADMIN_PASSWORD from the environment (or
.env). Does nothing when an account with that email already exists.
"""
import os
import sys
import logging
from typing import Optional

from pymongo.database import Database

from auth import hash_password
from database import create_document, db, ensure_indexes
from schemas import User

logger = logging.getLogger("create_admin")

DEFAULT_ADMIN_NAME = "Admin"
DEFAULT_ADMIN_EMAIL = "admin@collabmate.com"
DEFAULT_ADMIN_PASSWORD = "Admin@123"


def create_admin(
    database: Database,
    name: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> Optional[str]:
    """Insert the admin user and return its id, or None if it already exists."""
    name = name or os.getenv("ADMIN_NAME", DEFAULT_ADMIN_NAME)
    email = (email or os.getenv("ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL)).strip().lower()
    password = password or os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)

    if database["user"].find_one({"email": email}):
        logger.warning("Admin already exists: %s", email)
        return None

    admin = User(name=name, email=email, password=hash_password(password), role="admin")
    admin_id = create_document("user", admin, database=database)
    logger.info("Admin created: %s", email)
    return admin_id


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    if db is None:
        logger.error("DATABASE_URL and DATABASE_NAME must be set")
        return 1
    ensure_indexes(db)
    create_admin(db)
    return 0


if __name__ == "__main__":
    sys.exit(main())
