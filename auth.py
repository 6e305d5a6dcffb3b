"""Password hashing, JWT issuing and the request authentication dependencies."""
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from bson import ObjectId
from fastapi import Depends, Header, HTTPException, status
from pymongo.database import Database

from database import get_db

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = float(os.getenv("JWT_EXPIRES_HOURS", "24"))

if JWT_SECRET == "change-me":
    logger.warning("JWT_SECRET is not set; using an insecure development secret")


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user: dict, expires_hours: Optional[float] = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "_id": str(user["_id"]),
        "role": user.get("role", "user"),
        "iat": now,
        "exp": now + timedelta(hours=expires_hours if expires_hours is not None else JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
) -> dict:
    """Extract and verify the bearer token, return the user document."""
    if not authorization:
        raise _unauthorized("No authentication token, access denied")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid authorization header format. Expected: Bearer <token>")

    payload = decode_access_token(parts[1])
    user_id = payload.get("_id") if payload else None
    if not user_id or not ObjectId.is_valid(user_id):
        raise _unauthorized("Token is invalid")

    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise _unauthorized("User not found")
    if user.get("active") is False:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    user["id"] = str(user["_id"])
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Admin privileges required.")
    return user
