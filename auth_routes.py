from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field, model_validator

import accounts
from database import get_db
from schemas import ApiModel, NormalizedEmail
from security import get_current_user
from services import Services, get_services

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

OTP_PATTERN = r"^\d{6}$"
MOBILE_PATTERN = r"^\+?\d{10,14}$"


class EmailOTPRequest(ApiModel):
    email: NormalizedEmail
    full_name: Optional[str] = Field(None, max_length=100)


class EmailOTPVerify(ApiModel):
    email: NormalizedEmail
    otp: str = Field(..., pattern=OTP_PATTERN)


class MobileOTPRequest(ApiModel):
    mobile_number: str = Field(..., pattern=MOBILE_PATTERN)
    full_name: Optional[str] = Field(None, max_length=100)


class MobileOTPVerify(ApiModel):
    mobile_number: str = Field(..., pattern=MOBILE_PATTERN)
    otp: str = Field(..., pattern=OTP_PATTERN)


class SignupRequest(ApiModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: NormalizedEmail
    password: str = Field(..., min_length=6)


class EmailOnlyRequest(ApiModel):
    email: NormalizedEmail


class LoginPayload(ApiModel):
    email: Optional[NormalizedEmail] = None
    mobile_number: Optional[str] = None
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _needs_identifier(self):
        if not self.email and not self.mobile_number:
            raise ValueError("Email or mobile number is required")
        return self


class ResetPasswordPayload(ApiModel):
    email: NormalizedEmail
    otp: str = Field(..., pattern=OTP_PATTERN)
    new_password: str = Field(..., min_length=6)


# Email OTP login
@router.post("/email/send-otp")
def email_send_otp(payload: EmailOTPRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.request_email_otp(db, services.mailer, payload.email, payload.full_name)


@router.post("/email/resend-otp")
def email_resend_otp(payload: EmailOTPRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.request_email_otp(db, services.mailer, payload.email, payload.full_name)


@router.post("/email/verify-otp")
def email_verify_otp(payload: EmailOTPVerify, db=Depends(get_db)):
    return accounts.verify_email_otp(db, payload.email, payload.otp)


# Mobile OTP login
@router.post("/mobile/send-otp")
def mobile_send_otp(payload: MobileOTPRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.request_mobile_otp(db, services.sms, payload.mobile_number, payload.full_name)


@router.post("/mobile/verify-otp")
def mobile_verify_otp(payload: MobileOTPVerify, db=Depends(get_db)):
    return accounts.verify_mobile_otp(db, payload.mobile_number, payload.otp)


# Signup with password
@router.post("/signup/send-otp")
def signup_send_otp(payload: SignupRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.request_signup_otp(db, services.mailer, payload.full_name.strip(), payload.email, payload.password)


@router.post("/signup/resend-otp")
def signup_resend_otp(payload: EmailOnlyRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.resend_signup_otp(db, services.mailer, payload.email)


@router.post("/signup/verify-otp")
def signup_verify_otp(payload: EmailOTPVerify, db=Depends(get_db)):
    return accounts.verify_signup_otp(db, payload.email, payload.otp)


@router.post("/login")
def login(payload: LoginPayload, db=Depends(get_db)):
    return accounts.login(db, payload.password, email=payload.email, mobile_number=payload.mobile_number)


# Forgot password
@router.post("/forgot-password/send-otp")
def forgot_password_send_otp(payload: EmailOnlyRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.request_password_reset(db, services.mailer, payload.email)


@router.post("/forgot-password/resend-otp")
def forgot_password_resend_otp(payload: EmailOnlyRequest, db=Depends(get_db), services: Services = Depends(get_services)):
    return accounts.request_password_reset(db, services.mailer, payload.email)


@router.post("/forgot-password/verify-otp")
def forgot_password_verify_otp(payload: ResetPasswordPayload, db=Depends(get_db)):
    return accounts.reset_password(db, payload.email, payload.otp, payload.new_password)


@router.get("/me")
def me(current_user: dict = Depends(get_current_user)):
    return accounts.public_user(current_user)
