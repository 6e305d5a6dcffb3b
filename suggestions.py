import re
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from ai import AIError, GeminiClient, build_ai_client, record_ai_usage
from auth import get_current_user
from database import create_document, get_db, utcnow
from schemas import Suggestion
from utils import serialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/suggestions", tags=["suggestions"])

FALLBACK_SUGGESTIONS = [
    "Build a real-time collaborative code editor with syntax highlighting and live preview",
    "Create a task management app with drag-and-drop interface and team collaboration features",
    "Develop a personal finance tracker with expense categorization and budget visualization",
]

IDEAS_PROMPT = """Generate 3 unique and practical project ideas that would be good for a developer portfolio.
Each idea should be:
1. Feasible to build
2. Showcase technical skills
3. Solve a real problem
4. Be within 30 words
Format each idea as a numbered list."""


def parse_ideas(text: str) -> list:
    return [re.sub(r"^\d+\.\s*", "", line.strip()) for line in text.splitlines() if line.strip()]


@router.get("/ai")
def generated_suggestions(
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    ai: Optional[GeminiClient] = Depends(build_ai_client),
):
    if ai is None:
        return {"suggestions": FALLBACK_SUGGESTIONS}
    try:
        ideas = parse_ideas(ai.generate(IDEAS_PROMPT))
    except AIError:
        logger.exception("AI suggestion generation failed, serving fallback ideas")
        return {"suggestions": FALLBACK_SUGGESTIONS}
    record_ai_usage(db, user["_id"], "ProjectIdeas")
    return {"suggestions": ideas or FALLBACK_SUGGESTIONS}


@router.get("/saved")
def saved_suggestions(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    found = db["suggestion"].find({"user": user["id"], "status": "active"}).sort("createdAt", -1)
    return {"suggestions": [s["content"] for s in found]}


def _suggestion_text(value: Any) -> str:
    if value is None or value == "":
        raise HTTPException(400, "Suggestion content is required")
    if not isinstance(value, str):
        raise HTTPException(400, "Suggestion must be a string")
    if not value.strip():
        raise HTTPException(400, "Suggestion content cannot be empty")
    return value.strip()


@router.post("/save", status_code=201)
def save_suggestion(
    suggestion: Any = Body(None, embed=True),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    content = _suggestion_text(suggestion)
    existing = db["suggestion"].find_one({"user": user["id"], "content": content})
    if existing and existing.get("status") == "active":
        raise HTTPException(400, "Suggestion already saved")

    if existing:
        # unique (user, content): bring an archived copy back instead of inserting
        db["suggestion"].update_one(
            {"_id": existing["_id"]}, {"$set": {"status": "active", "type": "saved", "updatedAt": utcnow()}}
        )
        saved = db["suggestion"].find_one({"_id": existing["_id"]})
    else:
        try:
            new_id = create_document("suggestion", Suggestion(user=user["id"], content=content), database=db)
        except DuplicateKeyError:
            raise HTTPException(400, "Suggestion already saved")
        saved = db["suggestion"].find_one({"content": content, "user": user["id"]})
        logger.info("User %s saved suggestion %s", user["id"], new_id)
    return {"message": "Suggestion saved successfully", "suggestion": serialize(saved)}


@router.delete("/saved")
def remove_suggestion(
    suggestion: Any = Body(None, embed=True),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not suggestion:
        raise HTTPException(400, "Suggestion content is required")
    found = db["suggestion"].find_one({"user": user["id"], "content": suggestion, "status": "active"})
    if not found:
        raise HTTPException(404, "Suggestion not found")
    db["suggestion"].update_one({"_id": found["_id"]}, {"$set": {"status": "archived", "updatedAt": utcnow()}})
    return {"message": "Suggestion removed successfully", "suggestion": serialize(db["suggestion"].find_one({"_id": found["_id"]}))}
