import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pymongo.database import Database

from auth import get_current_user
from database import create_document, get_db, utcnow
from messages import expand_messages
from schemas import Conversation
from utils import expand_users, find_or_404, oid, oids, serialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


class ConversationIn(BaseModel):
    participantIds: List[str] = []
    subject: Optional[str] = None


class ParticipantsIn(BaseModel):
    newParticipantIds: List[str] = []


def expand_conversation(db: Database, conversation: dict) -> dict:
    return expand_users(db, [serialize(conversation)], ["participants"])[0]


def _all_users_exist(db: Database, user_ids: List[str]) -> bool:
    valid = oids(user_ids)
    return len(valid) == len(user_ids) and db["user"].count_documents({"_id": {"$in": valid}}) == len(user_ids)


@router.get("")
def list_conversations(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    found = db["conversation"].find({"participants": user["id"]}).sort("updatedAt", -1)
    return [expand_conversation(db, c) for c in found]


@router.get("/{conversation_id}")
def get_conversation(conversation_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    conversation = db["conversation"].find_one({"_id": oid(conversation_id), "participants": user["id"]})
    if not conversation:
        raise HTTPException(404, "Conversation not found or you are not a participant")
    messages = db["message"].find({"conversation": conversation_id}).sort("createdAt", 1)
    return {
        "conversation": expand_conversation(db, conversation),
        "messages": expand_messages(db, list(messages)),
    }


@router.post("", status_code=201)
def create_conversation(body: ConversationIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    participants = list(dict.fromkeys([str(p) for p in body.participantIds] + [user["id"]]))
    if len(participants) < 2:
        raise HTTPException(400, "A conversation must have at least two participants.")
    if not _all_users_exist(db, participants):
        raise HTTPException(400, "One or more participant IDs are invalid.")

    subject = (body.subject or "").strip() or "New Conversation"
    new_id = create_document("conversation", Conversation(participants=participants, subject=subject), database=db)
    logger.info("User %s started conversation %s with %d participants", user["id"], new_id, len(participants))
    return expand_conversation(db, db["conversation"].find_one({"_id": oid(new_id)}))


@router.put("/{conversation_id}/participants")
def add_participants(
    conversation_id: str,
    body: ParticipantsIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    conversation = find_or_404(db, "conversation", conversation_id, "Conversation")
    current = conversation.get("participants", [])
    if user["id"] not in current:
        raise HTTPException(403, "Not authorized to modify this conversation")

    new_ids = [p for p in dict.fromkeys(body.newParticipantIds) if p not in current]
    if not new_ids:
        return {"message": "No new participants to add.", "conversation": expand_conversation(db, conversation)}
    if not _all_users_exist(db, new_ids):
        raise HTTPException(400, "One or more new participant IDs are invalid.")

    db["conversation"].update_one(
        {"_id": conversation["_id"]},
        {"$push": {"participants": {"$each": new_ids}}, "$set": {"updatedAt": utcnow()}},
    )
    return expand_conversation(db, db["conversation"].find_one({"_id": conversation["_id"]}))
