"""
Subscription purchase: plan lookup, order creation against the payment
gateway, checkout signature verification and plan activation.

A payment moves pending -> completed once. The payment update and the user
subscription update are two separate single-document writes.
"""

import calendar
import logging
import time
from datetime import datetime
from typing import List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from config import PAYMENT_CURRENCY
from database import create_document, get_documents, is_object_id, now_utc, oid, to_public, update_document
from errors import Conflict, InvalidSignature, NotFound, UpstreamFailure
from schemas import Member, Payment
from services import PaymentGatewayError

logger = logging.getLogger(__name__)


def add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def list_plans(db) -> List[dict]:
    return get_documents(db, "plan", {"is_active": True}, sort=[("price", ASCENDING)])


def find_plan(db, plan_ref: str) -> Optional[dict]:
    if is_object_id(plan_ref):
        plan = db["plan"].find_one({"_id": oid(plan_ref)})
        if plan:
            return plan
    return db["plan"].find_one({"plan_id": plan_ref})


def quote_amount(plan: dict, total_users: int, free_user_limit: int) -> Tuple[float, bool]:
    """Promotional pricing: the first `free_user_limit` registered users pay nothing."""
    is_free_user = total_users <= free_user_limit
    if is_free_user:
        return 0, True
    return plan.get("special_price") or plan["price"], False


def plan_summary(plan: dict) -> dict:
    return {
        "id": str(plan["_id"]),
        "planId": plan.get("plan_id"),
        "name": plan.get("plan_name"),
        "description": plan.get("description"),
        "duration": plan.get("duration"),
        "maxMembers": plan.get("max_members", 1),
    }


def create_order(db, gateway, user: dict, plan_ref: str, members: Optional[List[Member]] = None, free_user_limit: int = 500) -> dict:
    subscription = user.get("subscription") or {}
    if subscription.get("status") == "active":
        raise Conflict("You already have an active subscription")

    plan = find_plan(db, plan_ref)
    if not plan or not plan.get("is_active", True):
        raise NotFound("Plan not found")

    total_users = db["user"].count_documents({})
    amount, is_free_user = quote_amount(plan, total_users, free_user_limit)

    try:
        order = gateway.create_order(
            amount_paise=int(round(amount * 100)),
            currency=PAYMENT_CURRENCY,
            receipt=f"order_{int(time.time() * 1000)}",
            notes={
                "userId": str(user["_id"]),
                "planId": str(plan["_id"]),
                "customerId": user.get("customer_id"),
            },
        )
    except PaymentGatewayError as e:
        logger.error("Order creation failed for user %s: %s", user["_id"], e)
        raise UpstreamFailure("Failed to create payment order")

    payment = Payment(
        user_id=str(user["_id"]),
        subscription_id=str(plan["_id"]),
        razorpay_order_id=order["id"],
        amount=amount,
        currency=PAYMENT_CURRENCY,
        additional_members=members or [],
    )
    create_document(db, "payment", payment)
    logger.info("Order %s created for user %s, amount %s", order["id"], user["_id"], amount)

    return {
        "orderId": order["id"],
        "amount": amount,
        "currency": PAYMENT_CURRENCY,
        "isFreeUser": is_free_user,
        "plan": plan_summary(plan),
    }


def record_activation(sheets, user: dict, plan: dict, payment: dict) -> None:
    if not sheets.configured:
        return
    try:
        sheets.append_rows([[
            user.get("full_name", ""),
            user.get("email", ""),
            user.get("mobile_number", ""),
            "Subscription Activated",
            user.get("customer_id", ""),
            plan.get("plan_name", ""),
            payment.get("amount", 0),
            now_utc().isoformat(),
        ]])
    except Exception:
        # activation stands even when the audit row cannot be written
        logger.exception("Spreadsheet write failed for payment %s", payment["_id"])


def verify_payment(db, gateway, sheets, user: dict, order_id: str, payment_id: str, signature: str, members: Optional[List[Member]] = None) -> dict:
    if not gateway.verify_signature(order_id, payment_id, signature):
        raise InvalidSignature()

    # claim the pending payment in one write so a repeated call finds nothing
    payment = db["payment"].find_one_and_update(
        {"razorpay_order_id": order_id, "user_id": str(user["_id"]), "status": "pending"},
        {"$set": {"status": "completed", "razorpay_payment_id": payment_id, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not payment:
        raise NotFound("Payment not found")

    plan = db["plan"].find_one({"_id": oid(payment["subscription_id"])})
    if not plan:
        raise NotFound("Plan not found")

    start_date = now_utc()
    subscription = {
        "plan_id": str(plan["_id"]),
        "plan_name": plan.get("plan_name"),
        "status": "active",
        "start_date": start_date,
        "end_date": add_months(start_date, int(plan.get("duration", 0))),
        "payment_id": str(payment["_id"]),
        "amount": payment.get("amount"),
    }
    updates = {"subscription": subscription}
    if members:
        updates["additional_members"] = [m.model_dump(exclude_none=True) for m in members]
    elif payment.get("additional_members"):
        updates["additional_members"] = payment["additional_members"]
    update_document(db, "user", {"_id": user["_id"]}, updates)
    user = db["user"].find_one({"_id": user["_id"]})
    logger.info("Subscription %s activated for user %s", plan.get("plan_id"), user["_id"])

    record_activation(sheets, user, plan, payment)

    return {
        "message": "Subscription activated successfully",
        "subscription": to_public(user.get("subscription")),
        "additionalMembers": [to_public(m) for m in user.get("additional_members", [])],
    }


def cancel_subscription(db, user: dict) -> dict:
    subscription = user.get("subscription") or {}
    if subscription.get("status") != "active":
        raise Conflict("No active subscription found")
    update_document(db, "user", {"_id": user["_id"]}, {"subscription.status": "inactive"})
    return {"message": "Subscription cancelled successfully"}


def current_subscription(db, user: dict) -> dict:
    subscription = user.get("subscription") or {"status": "inactive"}
    plan = None
    if subscription.get("plan_id") and is_object_id(subscription["plan_id"]):
        plan = db["plan"].find_one({"_id": oid(subscription["plan_id"])})
    return {
        "subscription": to_public(subscription),
        "plan": to_public(plan),
        "additionalMembers": [to_public(m) for m in user.get("additional_members", [])],
    }


def payment_history(db, user: dict) -> List[dict]:
    payments = list(db["payment"].find({"user_id": str(user["_id"])}).sort("created_at", DESCENDING))
    plan_ids = {p["subscription_id"] for p in payments if is_object_id(p.get("subscription_id", ""))}
    plans = {str(p["_id"]): p for p in db["plan"].find({"_id": {"$in": [oid(i) for i in plan_ids]}})}
    items = []
    for p in payments:
        item = to_public(p)
        item["plan"] = to_public(plans.get(p.get("subscription_id")))
        items.append(item)
    return items
