import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from pymongo.database import Database

from auth import get_current_user
from database import get_db, utcnow
from schemas import SkillLevel
from uploads import AVATAR_MAX_BYTES, delete_upload, save_upload
from utils import contains, find_or_404, serialize, serialize_list
from validation import validate_email, validate_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])
search_router = APIRouter(prefix="/api/users-search", tags=["users"])

SKILL_LEVELS = SkillLevel.__args__
PROFILE_HIDDEN = {"password": 0, "aiUsage": 0, "activity": 0}


@router.get("")
def search_users(search: Optional[str] = None, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    query: Dict[str, Any] = {"_id": {"$ne": user["_id"]}}
    if search:
        query["$or"] = [
            {"name": contains(search)},
            {"email": contains(search)},
        ]
    found = db["user"].find(query, {"name": 1, "email": 1, "avatar": 1}).sort("name", 1)
    return serialize_list(found)


@router.get("/profile")
def get_profile(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    profile = db["user"].find_one({"_id": user["_id"]}, PROFILE_HIDDEN)
    if not profile:
        raise HTTPException(404, "User not found")
    return serialize(profile)


def _clean_skills(skills: Any) -> list:
    if not isinstance(skills, list) or not all(
        isinstance(s, dict) and isinstance(s.get("name"), str) and s["name"].strip() for s in skills
    ):
        raise HTTPException(400, 'Skills must be an array of objects with a "name" property.')
    cleaned = []
    for s in skills:
        level = s.get("level") or "beginner"
        if level not in SKILL_LEVELS:
            raise HTTPException(400, f"{level} is not a valid skill level")
        cleaned.append({"name": s["name"].strip(), "level": level, "verified": bool(s.get("verified", False))})
    return cleaned


@router.put("/profile")
def update_profile(
    body: Dict[str, Any] = Body(...),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    updates: Dict[str, Any] = {}

    if "name" in body:
        error = validate_name(body["name"] if isinstance(body["name"], str) else "")
        if error:
            raise HTTPException(400, error)
        updates["name"] = body["name"].strip()

    if "email" in body:
        email = body["email"] if isinstance(body["email"], str) else ""
        error = validate_email(email)
        if error:
            raise HTTPException(400, error)
        email = email.strip().lower()
        if db["user"].find_one({"email": email, "_id": {"$ne": user["_id"]}}):
            raise HTTPException(409, "Email already in use")
        updates["email"] = email

    if "avatar" in body:
        if not isinstance(body["avatar"], str):
            raise HTTPException(400, "Avatar must be a URL string.")
        updates["avatar"] = body["avatar"]

    if "skills" in body:
        updates["skills"] = _clean_skills(body["skills"])

    if "interests" in body:
        interests = body["interests"]
        if not isinstance(interests, list) or not all(isinstance(i, str) for i in interests):
            raise HTTPException(400, "Interests must be an array of strings.")
        updates["interests"] = [i.strip() for i in interests if i.strip()]

    preferences = body.get("preferences")
    if isinstance(preferences, dict):
        notifications = preferences.get("notifications")
        if isinstance(notifications, dict):
            for key in ("email", "push"):
                if key in notifications:
                    updates[f"preferences.notifications.{key}"] = bool(notifications[key])
        if preferences.get("theme") is not None:
            if preferences["theme"] not in ("light", "dark", "system"):
                raise HTTPException(400, "Theme must be light, dark or system.")
            updates["preferences.theme"] = preferences["theme"]
        if preferences.get("language") is not None:
            updates["preferences.language"] = str(preferences["language"])

    ai_preferences = body.get("aiPreferences")
    if isinstance(ai_preferences, dict):
        if ai_preferences.get("suggestionFrequency") is not None:
            if ai_preferences["suggestionFrequency"] not in ("low", "medium", "high"):
                raise HTTPException(400, "Suggestion frequency must be low, medium or high.")
            updates["aiPreferences.suggestionFrequency"] = ai_preferences["suggestionFrequency"]
        for key in ("projectRecommendations", "skillMatching"):
            if key in ai_preferences:
                updates[f"aiPreferences.{key}"] = bool(ai_preferences[key])

    if updates:
        updates["updatedAt"] = utcnow()
        db["user"].update_one({"_id": user["_id"]}, {"$set": updates})

    updated = db["user"].find_one({"_id": user["_id"]}, PROFILE_HIDDEN)
    return {"message": "Profile updated successfully", "user": serialize(updated)}


@router.post("/profile/avatar")
def upload_avatar(
    avatar: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    saved = save_upload(
        avatar,
        subdir="avatars",
        allowed_types=("image/",),
        max_bytes=AVATAR_MAX_BYTES,
        prefix=f"avatar-{user['id']}-",
    )
    previous = user.get("avatar")
    if previous and previous.startswith("/uploads/avatars"):
        delete_upload(previous)

    db["user"].update_one({"_id": user["_id"]}, {"$set": {"avatar": saved["filePath"], "updatedAt": utcnow()}})
    logger.info("Avatar updated for user %s", user["id"])
    return {"message": "Avatar updated successfully", "avatar": saved["filePath"]}


def _collaborator_card(u: dict) -> dict:
    card = serialize(u)
    skills = card.get("skills")
    card["skills"] = skills if isinstance(skills, list) else []
    return card


@search_router.get("")
def list_collaborator_candidates(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    found = db["user"].find({"_id": {"$ne": user["_id"]}}, {"name": 1, "email": 1, "skills": 1})
    return [_collaborator_card(u) for u in found]


@search_router.get("/{user_id}")
def get_collaborator_candidate(user_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    found = find_or_404(db, "user", user_id, "User")
    return _collaborator_card({k: found.get(k) for k in ("_id", "name", "email", "skills")})
