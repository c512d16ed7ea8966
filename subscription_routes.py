from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field

import billing
import config
from database import get_db, to_public
from schemas import ApiModel, Member
from security import get_current_user
from services import Services, get_services

router = APIRouter(prefix="/api/subscription", tags=["Subscription"])


class CreateOrderPayload(ApiModel):
    plan_id: str = Field(..., min_length=1)
    additional_members: List[Member] = Field(default_factory=list)


class VerifyPaymentPayload(ApiModel):
    order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    additional_members: List[Member] = Field(default_factory=list)


@router.get("/plans")
def get_plans(db=Depends(get_db)):
    return [to_public(p) for p in billing.list_plans(db)]


@router.get("/my-subscription")
def my_subscription(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return billing.current_subscription(db, current_user)


@router.post("/create-order")
def create_order(payload: CreateOrderPayload, current_user: dict = Depends(get_current_user), db=Depends(get_db), services: Services = Depends(get_services)):
    return billing.create_order(
        db,
        services.payments,
        current_user,
        payload.plan_id,
        members=payload.additional_members,
        free_user_limit=config.FREE_USER_LIMIT,
    )


@router.post("/verify-payment")
def verify_payment(payload: VerifyPaymentPayload, current_user: dict = Depends(get_current_user), db=Depends(get_db), services: Services = Depends(get_services)):
    return billing.verify_payment(
        db,
        services.payments,
        services.sheets,
        current_user,
        payload.order_id,
        payload.payment_id,
        payload.signature,
        members=payload.additional_members,
    )


@router.post("/cancel")
def cancel(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return billing.cancel_subscription(db, current_user)


@router.get("/payments")
def payments(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return billing.payment_history(db, current_user)
