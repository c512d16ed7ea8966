"""
Create or update a verified password user.

    python -m scripts.create_user <email> <password> [fullName]
"""

import argparse
import logging
import sys
from typing import Optional

import database
from accounts import find_user, new_user_document
from database import create_document, oid, update_document
from security import get_password_hash

logger = logging.getLogger("scripts.create_user")


def upsert_user(db, email: str, password: str, full_name: Optional[str] = None) -> dict:
    email = email.strip().lower()
    full_name = full_name or email.split("@")[0]
    user = find_user(db, email=email)
    if user:
        update_document(db, "user", {"_id": user["_id"]}, {
            "full_name": full_name,
            "password_hash": get_password_hash(password),
            "is_verified": True,
        })
        return db["user"].find_one({"_id": user["_id"]})
    user_id = create_document(db, "user", new_user_document(db, full_name=full_name, email=email, password=password, is_verified=True))
    return db["user"].find_one({"_id": oid(user_id)})


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="python -m scripts.create_user", description="Upsert a verified user")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("full_name", nargs="?", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL not set")
        return 1
    user = upsert_user(database.db, args.email, args.password, args.full_name)
    logger.info(
        "User upserted: id=%s email=%s customer_id=%s is_verified=%s",
        user["_id"], user["email"], user["customer_id"], user["is_verified"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
