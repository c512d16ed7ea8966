from scripts.create_user import upsert_user
from scripts.print_otp import pending_otp
from scripts.seed_data import PLANS, seed_admin, seed_plans
from security import verify_password


def test_seed_is_idempotent(db):
    assert seed_admin(db, "first-pass") is True
    assert seed_admin(db, "second-pass") is False
    admin = db["admin"].find_one({"username": "admin"})
    assert admin["role"] == "super_admin"
    assert verify_password("first-pass", admin["password_hash"])

    assert seed_plans(db) == len(PLANS)
    assert seed_plans(db) == 0
    assert sorted(p["plan_id"] for p in db["plan"].find()) == ["basic", "family", "premium"]


def test_upsert_user_creates_then_updates(db):
    user = upsert_user(db, "Ravi@Gmail.com", "pass1234")
    assert user["email"] == "ravi@gmail.com"
    assert user["full_name"] == "ravi"
    assert user["is_verified"] is True

    again = upsert_user(db, "ravi@gmail.com", "newpass99", "Ravi Kumar")
    assert again["_id"] == user["_id"]
    assert again["full_name"] == "Ravi Kumar"
    assert verify_password("newpass99", again["password_hash"])
    assert db["user"].count_documents({}) == 1


def test_pending_otp(db, make_user):
    assert pending_otp(db, "ghost@gmail.com") == "USER_NOT_FOUND"
    user = make_user()
    assert pending_otp(db, "asha@gmail.com") == "NO_OTP"
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"otp": {"code": "482913"}}})
    assert pending_otp(db, "ASHA@gmail.com") == "482913"
