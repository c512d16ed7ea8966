from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from database import get_db, is_object_id
from errors import Unauthorized

ROLE_USER = "user"
ROLE_ADMIN = "admin"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def verify_password(plain_password: Optional[str], hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(subject_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(subject_id), "role": role, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthorized("Token is not valid")
    subject = payload.get("sub")
    if not subject or not is_object_id(subject):
        raise Unauthorized("Token is not valid")
    return payload


def _resolve_subject(request: Request, credentials: Optional[HTTPAuthorizationCredentials], role: str, collection, not_found: str) -> dict:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token, authorization denied")
    payload = decode_access_token(credentials.credentials)
    if payload.get("role") != role:
        raise Unauthorized(not_found)
    doc = collection.find_one({"_id": ObjectId(payload["sub"])})
    if not doc:
        raise Unauthorized(not_found)
    # picked up by the request logger
    request.state.subject_id = payload["sub"]
    return doc


def get_current_user(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme), db=Depends(get_db)) -> dict:
    return _resolve_subject(request, credentials, ROLE_USER, db["user"], "Token is not valid")


def get_current_admin(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme), db=Depends(get_db)) -> dict:
    return _resolve_subject(request, credentials, ROLE_ADMIN, db["admin"], "Admin access required")
