"""
Account lifecycle: OTP issuance and verification over email or SMS,
password signup/login and password reset.

Every function takes the database handle and, where a code is dispatched,
the channel client. Failures are raised as errors from `errors`.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from pymongo.errors import DuplicateKeyError

from config import OTP_TTL_MINUTES
from database import as_utc, create_document, now_utc, oid, to_public, update_document
from errors import Conflict, Forbidden, InvalidCredentials, InvalidOrExpiredOtp, NotFound, UpstreamFailure
from schemas import User
from security import ROLE_USER, create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

PRIVATE_USER_FIELDS = ("password_hash", "otp", "reset_password_token", "reset_password_expires")

OTP_EMAIL = """
<div style="font-family:Arial,sans-serif;font-size:16px;color:#333">
  <p>Hi{name},</p>
  <p>{intro}</p>
  <p style="font-size:24px;font-weight:bold;letter-spacing:3px">{code}</p>
  <p>This code will expire in {minutes} minutes. If you did not request this, you can ignore this email.</p>
</div>
"""


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def generate_customer_id(db, seed: Optional[str]) -> str:
    prefix = (seed or "").split("@")[0].strip() or "user"
    while True:
        candidate = f"{prefix}_{1000 + secrets.randbelow(9000)}"
        if not db["user"].find_one({"customer_id": candidate}, {"_id": 1}):
            return candidate


def new_user_document(db, full_name: str = "", email: Optional[str] = None, mobile_number: Optional[str] = None, password: Optional[str] = None, is_verified: bool = False) -> User:
    """Build a user record, hashing the password and deriving the customer id."""
    return User(
        full_name=full_name or "",
        email=email,
        mobile_number=mobile_number,
        password_hash=get_password_hash(password) if password else None,
        customer_id=generate_customer_id(db, email or mobile_number),
        is_verified=is_verified,
    )


def public_user(user: dict) -> dict:
    return to_public(user, exclude=PRIVATE_USER_FIELDS)


def profile(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "fullName": user.get("full_name", ""),
        "email": user.get("email"),
        "mobileNumber": user.get("mobile_number"),
        "customerId": user.get("customer_id"),
        "isVerified": bool(user.get("is_verified")),
    }


def find_user(db, email: Optional[str] = None, mobile_number: Optional[str] = None) -> Optional[dict]:
    if email:
        return db["user"].find_one({"email": email.strip().lower()})
    if mobile_number:
        return db["user"].find_one({"mobile_number": mobile_number.strip()})
    return None


def _insert_user(db, user: User) -> dict:
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise Conflict("User already exists")
    return db["user"].find_one({"_id": oid(user_id)})


def issue_otp(db, user: dict) -> str:
    """Persist a fresh code on the user; any earlier code stops working."""
    code = generate_otp()
    expires_at = now_utc() + timedelta(minutes=OTP_TTL_MINUTES)
    update_document(db, "user", {"_id": user["_id"]}, {"otp": {"code": code, "expires_at": expires_at}})
    return code


def check_otp(user: dict, code: str) -> None:
    # no attempt counting: guesses are unlimited until the code expires
    otp = user.get("otp") or {}
    expires_at = as_utc(otp.get("expires_at"))
    if not otp.get("code") or not secrets.compare_digest(str(otp["code"]), str(code)):
        raise InvalidOrExpiredOtp()
    if expires_at is None or expires_at < now_utc():
        raise InvalidOrExpiredOtp()


def complete_login(db, user: dict, message: str = "Login successful") -> dict:
    now = now_utc()
    update_document(db, "user", {"_id": user["_id"]}, {"is_verified": True, "last_login": now}, unset_fields=["otp"])
    user = db["user"].find_one({"_id": user["_id"]})
    token = create_access_token(str(user["_id"]), ROLE_USER)
    return {"message": message, "token": token, "user": profile(user)}


def _send_email_code(mailer, user: dict, subject: str, intro: str, code: str, failure: str) -> None:
    name = f" {user['full_name']}" if user.get("full_name") else ""
    html = OTP_EMAIL.format(name=name, intro=intro, code=code, minutes=OTP_TTL_MINUTES)
    if not mailer.send(user["email"], subject, html):
        # the persisted code is left in place
        raise UpstreamFailure(failure)


# Email OTP login

def request_email_otp(db, mailer, email: str, full_name: Optional[str] = None) -> dict:
    user = find_user(db, email=email)
    if not user:
        user = _insert_user(db, new_user_document(db, full_name=full_name or "", email=email))
        logger.info("Created user %s from email OTP request", user["_id"])
    code = issue_otp(db, user)
    _send_email_code(mailer, user, "Your login code", "Your login code is:", code, "Failed to send OTP email")
    return {"message": "OTP sent successfully"}


def verify_email_otp(db, email: str, code: str, message: str = "Login successful") -> dict:
    user = find_user(db, email=email)
    if not user:
        raise NotFound("User not found")
    check_otp(user, code)
    return complete_login(db, user, message)


# Mobile OTP login

def request_mobile_otp(db, sms, mobile_number: str, full_name: Optional[str] = None) -> dict:
    user = find_user(db, mobile_number=mobile_number)
    if not user:
        user = _insert_user(db, new_user_document(db, full_name=full_name or "", mobile_number=mobile_number))
        logger.info("Created user %s from mobile OTP request", user["_id"])
    code = issue_otp(db, user)
    body = f"Your CFA verification code is: {code}. Valid for {OTP_TTL_MINUTES} minutes."
    if not sms.send(mobile_number, body):
        raise UpstreamFailure("Failed to send OTP")
    return {"message": "OTP sent successfully"}


def verify_mobile_otp(db, mobile_number: str, code: str) -> dict:
    user = find_user(db, mobile_number=mobile_number)
    if not user:
        raise NotFound("User not found")
    check_otp(user, code)
    return complete_login(db, user)


# Signup with password

def request_signup_otp(db, mailer, full_name: str, email: str, password: str) -> dict:
    user = find_user(db, email=email)
    if user and user.get("is_verified"):
        raise Conflict("Email is already registered")
    if not user:
        user = _insert_user(db, new_user_document(db, full_name=full_name, email=email, password=password))
    else:
        update_document(db, "user", {"_id": user["_id"]}, {"full_name": full_name, "password_hash": get_password_hash(password)})
        user = db["user"].find_one({"_id": user["_id"]})
    code = issue_otp(db, user)
    _send_email_code(mailer, user, "Verify your email", "Your verification code is:", code, "Failed to send verification email")
    return {"message": "OTP sent for verification"}


def resend_signup_otp(db, mailer, email: str) -> dict:
    user = find_user(db, email=email)
    if not user:
        raise NotFound("User not found")
    if user.get("is_verified"):
        raise Conflict("Email is already registered")
    code = issue_otp(db, user)
    _send_email_code(mailer, user, "Verify your email", "Your verification code is:", code, "Failed to send verification email")
    return {"message": "OTP sent for verification"}


def verify_signup_otp(db, email: str, code: str) -> dict:
    return verify_email_otp(db, email, code, message="Account verified successfully")


def login(db, password: str, email: Optional[str] = None, mobile_number: Optional[str] = None) -> dict:
    user = find_user(db, email=email, mobile_number=mobile_number)
    if not user or not verify_password(password, user.get("password_hash")):
        raise InvalidCredentials()
    if not user.get("is_active", True):
        raise Forbidden("Account is deactivated")
    if not user.get("is_verified"):
        raise Forbidden("Please verify your email to continue")
    update_document(db, "user", {"_id": user["_id"]}, {"last_login": now_utc()})
    token = create_access_token(str(user["_id"]), ROLE_USER)
    return {"message": "Login successful", "token": token, "user": profile(user)}


# Password reset

def request_password_reset(db, mailer, email: str) -> dict:
    user = find_user(db, email=email)
    if not user:
        raise NotFound("User not found")
    code = issue_otp(db, user)
    _send_email_code(mailer, user, "Password reset code", "Your password reset code is:", code, "Failed to send reset email")
    return {"message": "Password reset OTP sent"}


def reset_password(db, email: str, code: str, new_password: str) -> dict:
    user = find_user(db, email=email)
    if not user:
        raise NotFound("User not found")
    check_otp(user, code)
    update_document(db, "user", {"_id": user["_id"]}, {"password_hash": get_password_hash(new_password)}, unset_fields=["otp"])
    return {"message": "Password has been reset successfully"}
