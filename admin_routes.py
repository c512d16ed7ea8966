import logging
import re
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

import accounts
from database import create_document, get_db, is_object_id, now_utc, oid, paginate, to_public, update_document
from errors import Conflict, NotFound, Unauthorized
from schemas import ApiModel, PaymentStatus, Plan, SubscriptionStatus
from security import ROLE_ADMIN, create_access_token, get_current_admin, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


class AdminLoginPayload(ApiModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserSubscriptionUpdate(ApiModel):
    status: Optional[SubscriptionStatus] = None
    plan_id: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)


class PlanPayload(ApiModel):
    plan_id: str = Field(..., min_length=1)
    plan_name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    special_price: Optional[float] = Field(None, ge=0)
    duration: int = Field(..., ge=1)
    max_members: int = Field(1, ge=1)
    features: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_special_offer: bool = False
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class PlanUpdate(ApiModel):
    plan_name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    special_price: Optional[float] = Field(None, ge=0)
    duration: Optional[int] = Field(None, ge=1)
    max_members: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_special_offer: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


def _admin_summary(admin: dict) -> dict:
    return {
        "id": str(admin["_id"]),
        "username": admin.get("username"),
        "email": admin.get("email"),
        "role": admin.get("role"),
    }


def _with_refs(db, payments: List[dict]) -> List[dict]:
    """Embed a short user and plan summary into each payment."""
    user_ids = {p["user_id"] for p in payments if is_object_id(p.get("user_id", ""))}
    plan_ids = {p["subscription_id"] for p in payments if is_object_id(p.get("subscription_id", ""))}
    users = {
        str(u["_id"]): u
        for u in db["user"].find({"_id": {"$in": [oid(i) for i in user_ids]}}, {"full_name": 1, "email": 1, "mobile_number": 1})
    }
    plans = {
        str(p["_id"]): p
        for p in db["plan"].find({"_id": {"$in": [oid(i) for i in plan_ids]}}, {"plan_name": 1, "plan_id": 1})
    }
    items = []
    for p in payments:
        item = to_public(p)
        item["user"] = to_public(users.get(p.get("user_id")))
        item["plan"] = to_public(plans.get(p.get("subscription_id")))
        items.append(item)
    return items


@router.post("/login")
def admin_login(payload: AdminLoginPayload, db=Depends(get_db)):
    admin = db["admin"].find_one({"username": payload.username.strip()})
    if not admin or not admin.get("is_active", True):
        raise Unauthorized("Invalid credentials")
    if not verify_password(payload.password, admin.get("password_hash")):
        raise Unauthorized("Invalid credentials")
    update_document(db, "admin", {"_id": admin["_id"]}, {"last_login": now_utc()})
    logger.info("Admin %s logged in", admin["username"])
    return {
        "message": "Login successful",
        "token": create_access_token(str(admin["_id"]), ROLE_ADMIN),
        "admin": _admin_summary(admin),
    }


@router.get("/profile")
def admin_profile(admin: dict = Depends(get_current_admin)):
    return to_public(admin, exclude=("password_hash",))


@router.get("/dashboard")
def dashboard(admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    revenue = list(db["payment"].aggregate([
        {"$match": {"status": "completed"}},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]))
    recent_users = db["user"].find(
        {}, {"full_name": 1, "email": 1, "mobile_number": 1, "customer_id": 1, "created_at": 1}
    ).sort("created_at", DESCENDING).limit(5)
    recent_payments = list(db["payment"].find({"status": "completed"}).sort("created_at", DESCENDING).limit(5))
    media_stats = db["media"].aggregate([{"$group": {"_id": "$type", "count": {"$sum": 1}}}])

    return {
        "stats": {
            "totalUsers": db["user"].count_documents({}),
            "activeSubscriptions": db["user"].count_documents({"subscription.status": "active"}),
            "totalPayments": db["payment"].count_documents({"status": "completed"}),
            "totalRevenue": revenue[0]["total"] if revenue else 0,
        },
        "recentUsers": [to_public(u) for u in recent_users],
        "recentPayments": _with_refs(db, recent_payments),
        "mediaStats": sorted(({"type": m["_id"], "count": m["count"]} for m in media_stats), key=lambda m: m["type"] or ""),
    }


@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[SubscriptionStatus] = None,
    admin: dict = Depends(get_current_admin),
    db=Depends(get_db),
):
    query = {}
    if search and search.strip():
        # search text is matched literally
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [
            {"full_name": pattern},
            {"email": pattern},
            {"mobile_number": pattern},
            {"customer_id": pattern},
        ]
    if status:
        query["subscription.status"] = status
    users, meta = paginate(db, "user", query, page, limit, [("created_at", DESCENDING)])
    return {"users": [accounts.public_user(u) for u in users], **meta}


@router.get("/users/{user_id}")
def get_user(user_id: str, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise NotFound("User not found")
    payments = list(db["payment"].find({"user_id": str(user["_id"])}).sort("created_at", DESCENDING))
    return {"user": accounts.public_user(user), "payments": _with_refs(db, payments)}


@router.put("/users/{user_id}/subscription")
def update_user_subscription(user_id: str, payload: UserSubscriptionUpdate, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise NotFound("User not found")
    updates = {}
    if payload.status:
        updates["subscription.status"] = payload.status
    if payload.plan_id:
        plan = db["plan"].find_one({"_id": oid(payload.plan_id)})
        if not plan:
            raise NotFound("Plan not found")
        updates["subscription.plan_id"] = str(plan["_id"])
        updates["subscription.plan_name"] = plan.get("plan_name")
    if payload.amount is not None:
        updates["subscription.amount"] = payload.amount
    if updates:
        update_document(db, "user", {"_id": user["_id"]}, updates)
        logger.info("Admin %s updated subscription of user %s: %s", admin["_id"], user_id, sorted(updates))
    user = db["user"].find_one({"_id": user["_id"]})
    return {
        "message": "User subscription updated successfully",
        "subscription": to_public(user.get("subscription")),
    }


@router.get("/subscriptions")
def list_subscription_plans(admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    return [to_public(p) for p in db["plan"].find().sort("price", ASCENDING)]


@router.post("/subscriptions", status_code=status.HTTP_201_CREATED)
def create_subscription_plan(payload: PlanPayload, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    plan = Plan(**payload.model_dump())
    try:
        plan_id = create_document(db, "plan", plan)
    except DuplicateKeyError:
        raise Conflict("Plan id already exists")
    logger.info("Plan %s created by admin %s", plan.plan_id, admin["_id"])
    return {
        "message": "Subscription plan created successfully",
        "subscription": to_public(db["plan"].find_one({"_id": oid(plan_id)})),
    }


@router.put("/subscriptions/{plan_id}")
def update_subscription_plan(plan_id: str, payload: PlanUpdate, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True)
    updates["updated_at"] = now_utc()
    plan = db["plan"].find_one_and_update(
        {"_id": oid(plan_id)},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not plan:
        raise NotFound("Subscription not found")
    return {"message": "Subscription plan updated successfully", "subscription": to_public(plan)}


@router.get("/payments")
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[PaymentStatus] = None,
    admin: dict = Depends(get_current_admin),
    db=Depends(get_db),
):
    query = {"status": status} if status else {}
    payments, meta = paginate(db, "payment", query, page, limit, [("created_at", DESCENDING)])
    return {"payments": _with_refs(db, payments), **meta}
