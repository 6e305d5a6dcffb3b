"""
AI features backed by the Gemini `generateContent` REST endpoint.

The provider is injected through the `build_ai_client` dependency so the
routes can be exercised without network access.
"""
import os
import logging
from typing import Any, List, Optional

import requests
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pymongo.database import Database

from auth import get_current_user
from database import get_db, utcnow
from utils import find_or_404

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))

router = APIRouter(prefix="/api/ai", tags=["ai"])


class AIError(Exception):
    """The AI provider could not produce an answer."""


class GeminiClient:
    def __init__(self, api_key: str, model: str = GEMINI_MODEL, timeout: float = AI_TIMEOUT_SECONDS, session=None):
        self.api_key = api_key.strip()
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            response = self.session.post(
                GEMINI_URL.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AIError(f"Gemini request failed: {e}") from e

        try:
            body: Any = response.json()
        except ValueError:
            body = {"raw": response.text}

        if response.status_code >= 400:
            message = body.get("error", {}).get("message") if isinstance(body, dict) and isinstance(body.get("error"), dict) else None
            raise AIError(f"Gemini returned {response.status_code}: {message or 'unknown error'}")

        try:
            parts = body["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise AIError("Gemini response did not contain any text")
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
        if not text:
            raise AIError("Gemini response did not contain any text")
        return text


def build_ai_client() -> Optional[GeminiClient]:
    return GeminiClient(GEMINI_API_KEY) if GEMINI_API_KEY else None


def get_ai_client(client: Optional[GeminiClient] = Depends(build_ai_client)) -> GeminiClient:
    if client is None:
        raise HTTPException(status_code=503, detail="AI provider is not configured")
    return client


def record_ai_usage(db: Database, user_id, tool: str) -> None:
    now = utcnow()
    db["user"].update_one(
        {"_id": user_id},
        {
            "$inc": {"aiUsage.totalRequests": 1, f"aiUsage.tools.{tool}.count": 1},
            "$set": {"aiUsage.lastUsed": now, f"aiUsage.tools.{tool}.lastUsed": now},
        },
    )


def format_skills(skills: List[Any]) -> str:
    formatted = []
    for s in skills:
        if isinstance(s, dict) and s.get("name") and s.get("level"):
            formatted.append(f"{s['name']} ({s['level']})")
        elif isinstance(s, str) and s.strip():
            formatted.append(s.strip())
        else:
            formatted.append("Unknown Skill")
    return ", ".join(formatted)


def suggestions_prompt(skills: List[Any], interests: List[Any]) -> str:
    interests_text = ", ".join(i for i in interests if isinstance(i, str))
    return f"""Given the following user profile:
Skills: {format_skills(skills) or 'None provided'}
Interests: {interests_text or 'None provided'}

Provide concise and actionable suggestions in the following categories. Each suggestion should be a short phrase or a single sentence. Use a bullet point list for each category.

1.  **Project Ideas:** (2-3 innovative project ideas)
2.  **Collaboration Opportunities:** (2-3 types of collaborators or areas to look for)
3.  **Learning Resources:** (2-3 areas/technologies to learn, or types of resources like courses/tutorials)
4.  **Tools & Technologies:** (2-3 relevant tools or technologies to explore)"""


def summary_prompt(lines: List[str]) -> str:
    history = "\n".join(lines)
    return (
        "Please provide a concise summary of the following conversation history. "
        "Focus on the main topics, decisions, and action items. Keep it to 3-5 sentences.\n\n"
        f"Conversation History:\n{history}"
    )


class SuggestionsIn(BaseModel):
    skills: Optional[Any] = None
    interests: Optional[Any] = None


class SummarizeIn(BaseModel):
    conversationId: Optional[str] = None


@router.post("/get-suggestions")
def get_suggestions(
    body: SuggestionsIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    ai: GeminiClient = Depends(get_ai_client),
):
    if not isinstance(body.skills, list) or not isinstance(body.interests, list):
        raise HTTPException(400, "Skills and interests are required and must be arrays.")
    try:
        text = ai.generate(suggestions_prompt(body.skills, body.interests))
    except AIError:
        logger.exception("Generating suggestions failed for user %s", user["id"])
        raise HTTPException(500, "Failed to generate suggestions. Please try again.")
    record_ai_usage(db, user["_id"], "Suggestions")
    return {"suggestions": text}


@router.post("/chat/summarize")
def summarize_conversation(
    body: SummarizeIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    ai: GeminiClient = Depends(get_ai_client),
):
    if not body.conversationId:
        raise HTTPException(400, "Conversation ID is required.")
    conversation = find_or_404(db, "conversation", body.conversationId, "Conversation")
    if user["id"] not in conversation.get("participants", []):
        raise HTTPException(403, "Not authorized to summarize this conversation.")

    messages = list(db["message"].find({"conversation": body.conversationId}).sort("createdAt", 1))
    if not messages:
        raise HTTPException(400, "No messages to summarize.")

    lines = [
        f"{'user' if m.get('sender') == user['id'] else 'participant'}: {m.get('content') or '[attachment]'}"
        for m in messages
    ]
    try:
        summary = ai.generate(summary_prompt(lines))
    except AIError:
        logger.exception("Summarizing conversation %s failed", body.conversationId)
        raise HTTPException(500, "Failed to generate conversation summary.")

    now = utcnow()
    db["conversation"].update_one(
        {"_id": conversation["_id"]},
        {"$set": {"aiSummary": summary, "aiSummaryGeneratedAt": now, "aiSummaryNeedsUpdate": False}},
    )
    record_ai_usage(db, user["_id"], "ConversationSummary")
    return {"summary": summary, "generatedAt": now.isoformat()}
