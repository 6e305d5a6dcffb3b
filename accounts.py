import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import create_access_token, get_current_user, hash_password, verify_password
from database import create_document, get_db, utcnow
from schemas import User
from utils import serialize
from validation import registration_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


def public_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "avatar": user.get("avatar"),
    }


@router.post("/register", status_code=201)
def register(body: RegisterIn, db: Database = Depends(get_db)):
    if not body.name or not body.email or not body.password:
        raise HTTPException(400, "Please enter all fields")

    errors = registration_errors(body.name, body.email, body.password)
    if errors:
        raise HTTPException(400, " ".join(errors.values()))

    email = body.email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(400, "User already exists")

    try:
        user = User(name=body.name.strip(), email=email, password=hash_password(body.password))
    except ValidationError:
        raise HTTPException(400, "Please enter a valid email address.")
    try:
        user_id = create_document("user", user, database=db)
    except DuplicateKeyError:
        raise HTTPException(400, "User with this email already exists.")

    created = db["user"].find_one({"email": email})
    logger.info("Registered user %s", user_id)
    return {
        "message": "User registered successfully",
        "token": create_access_token(created),
        "user": public_user(created),
    }


@router.post("/login")
def login(body: LoginIn, db: Database = Depends(get_db)):
    if not body.email or not body.password:
        raise HTTPException(400, "Please enter all fields")

    user = db["user"].find_one({"email": body.email.strip().lower()})
    if not user or not verify_password(body.password, user.get("password", "")):
        raise HTTPException(401, "Invalid credentials")
    if user.get("active") is False:
        raise HTTPException(403, "Account is deactivated")

    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"activity.lastActive": utcnow()}, "$inc": {"activity.loginCount": 1}},
    )
    logger.info("User %s logged in", user["_id"])
    return {"token": create_access_token(user), "user": public_user(user)}


@router.get("/email/{email}")
def get_user_by_email(email: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    found = db["user"].find_one({"email": email.strip().lower()}, {"password": 0})
    if not found:
        raise HTTPException(404, "User not found")
    return serialize(found)
