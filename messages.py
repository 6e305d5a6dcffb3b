import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from pymongo.database import Database
from starlette.concurrency import run_in_threadpool

from auth import get_current_user
from database import create_document, get_db, utcnow
from schemas import Message
from uploads import MESSAGE_ATTACHMENT_MAX_BYTES, MESSAGE_ATTACHMENT_TYPES, delete_upload, save_upload
from utils import contains, expand_users, find_or_404, oid, oids, paginate, serialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])

MESSAGE_FIELDS = ("subject", "content", "recipientId", "projectId", "threadId", "type", "conversationId")


class ReactionIn(BaseModel):
    emoji: str


def expand_messages(db: Database, docs: List[dict]) -> List[dict]:
    items = [serialize(d) for d in docs]
    expand_users(db, items, ["sender", "recipient", "mentions"])
    project_ids = {i["project"] for i in items if isinstance(i.get("project"), str)}
    projects = {
        str(p["_id"]): {"id": str(p["_id"]), "name": p.get("name"), "title": p.get("name")}
        for p in db["project"].find({"_id": {"$in": oids(project_ids)}}, {"name": 1})
    }
    for i in items:
        if isinstance(i.get("project"), str):
            i["project"] = projects.get(i["project"])
    return items


def mark_summary_stale(db: Database, conversation: dict, message_id: str) -> None:
    """Append a message to a conversation; any cached AI summary is now out of date."""
    db["conversation"].update_one(
        {"_id": conversation["_id"]},
        {
            "$push": {"messages": message_id},
            "$set": {
                "aiSummaryNeedsUpdate": True,
                "aiSummary": None,
                "aiSummaryGeneratedAt": None,
                "updatedAt": utcnow(),
            },
        },
    )


@router.get("")
def list_messages(
    page: int = 1,
    limit: int = 20,
    type: Optional[str] = None,
    projectId: Optional[str] = None,
    threadId: Optional[str] = None,
    search: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    uid = user["id"]
    clauses: List[Dict[str, Any]] = [{"status": "active"}]
    if type == "sent":
        clauses.append({"sender": uid})
    elif type == "received":
        clauses.append({"recipient": uid})
    else:
        clauses.append({"$or": [{"sender": uid}, {"recipient": uid}]})
    if projectId:
        clauses.append({"project": projectId})
    if threadId:
        clauses.append({"thread": threadId})
    if search:
        clauses.append({"$or": [
            {"subject": contains(search)},
            {"content": contains(search)},
        ]})

    result = paginate(db["message"], {"$and": clauses}, page, limit, sort=[("createdAt", -1)])
    return {
        "messages": expand_messages(db, result["items"]),
        "pagination": {
            "page": result["page"],
            "limit": result["limit"],
            "total": result["total"],
            "pages": result["totalPages"],
        },
    }


def _save_attachments(files: list) -> List[dict]:
    """Store every attachment or none of them."""
    saved: List[dict] = []
    try:
        for f in files:
            saved.append(save_upload(
                f, subdir="messages", allowed_types=MESSAGE_ATTACHMENT_TYPES, max_bytes=MESSAGE_ATTACHMENT_MAX_BYTES,
            ))
    except HTTPException:
        for a in saved:
            delete_upload(a["filePath"])
        raise
    return saved


def _create_message(db: Database, user: dict, fields: Dict[str, Any], uploads: list) -> dict:
    content = fields.get("content")
    content = (content.strip() or None) if isinstance(content, str) else None
    message_type = fields.get("type") or "message"
    if message_type not in ("message", "notification", "system"):
        raise HTTPException(400, f"{message_type} is not a valid message type")

    # nothing is written to disk until the message is known to be valid
    conversation = None
    conversation_id = fields.get("conversationId")
    if conversation_id:
        if not content and not uploads:
            raise HTTPException(400, "Message content and conversation ID are required for conversation messages.")
        conversation = find_or_404(db, "conversation", conversation_id, "Conversation")
        if user["id"] not in conversation.get("participants", []):
            raise HTTPException(403, "You are not a participant of this conversation.")
        target = {"conversation": conversation_id}
    else:
        recipient_id = fields.get("recipientId")
        subject = fields.get("subject")
        subject = subject.strip() if isinstance(subject, str) else ""
        if not recipient_id or not subject or (not content and not uploads):
            raise HTTPException(
                400, "Missing required fields: recipientId, subject, and content are required for direct messages."
            )
        find_or_404(db, "user", recipient_id, "Recipient")
        target = {"recipient": recipient_id, "subject": subject}

    attachments = _save_attachments(uploads)
    message = Message(
        sender=user["id"],
        content=content,
        project=fields.get("projectId") or None,
        thread=fields.get("threadId") or None,
        type=message_type,
        attachments=attachments,
        **target,
    )
    try:
        message_id = create_document("message", message, database=db)
    except Exception:
        for a in attachments:
            delete_upload(a["filePath"])
        raise
    if conversation is not None:
        mark_summary_stale(db, conversation, message_id)

    db["user"].update_one({"_id": user["_id"]}, {"$inc": {"activity.messageCount": 1}})
    return expand_messages(db, [db["message"].find_one({"_id": oid(message_id)})])[0]


@router.post("", status_code=201)
async def send_message(request: Request, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    """Send a direct message or a conversation message (JSON or multipart with attachments)."""
    uploads = []
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        fields = {k: form.get(k) for k in MESSAGE_FIELDS if isinstance(form.get(k), str)}
        uploads = [f for f in form.getlist("attachments") if not isinstance(f, str)]
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(400, "Request body must be JSON")
        if not isinstance(payload, dict):
            raise HTTPException(400, "Request body must be a JSON object")
        fields = {k: payload.get(k) for k in MESSAGE_FIELDS}
    return await run_in_threadpool(_create_message, db, user, fields, uploads)


@router.get("/thread/{thread_id}")
def get_thread(thread_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    query = {"$or": [{"_id": oid(thread_id)}, {"thread": thread_id}], "status": "active"}
    return expand_messages(db, list(db["message"].find(query).sort("createdAt", 1)))


@router.get("/unread/count")
def unread_count(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    count = db["message"].count_documents({"recipient": user["id"], "read": False, "status": "active"})
    return {"count": count}


@router.delete("/conversations/{conversation_id}")
def delete_conversation(conversation_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    conversation = find_or_404(
        db, "conversation", conversation_id, "Conversation", {"participants": user["id"]}
    )
    removed = db["message"].delete_many({"conversation": conversation_id}).deleted_count
    db["conversation"].delete_one({"_id": conversation["_id"]})
    logger.info("User %s deleted conversation %s (%d messages)", user["id"], conversation_id, removed)
    return {"message": "Conversation deleted successfully"}


@router.post("/{message_id}/reactions")
def add_reaction(message_id: str, body: ReactionIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not body.emoji.strip():
        raise HTTPException(400, "Emoji is required")
    message = find_or_404(db, "message", message_id, "Message")
    db["message"].update_one({"_id": message["_id"]}, {"$pull": {"reactions": {"user": user["id"]}}})
    db["message"].update_one(
        {"_id": message["_id"]},
        {"$push": {"reactions": {"user": user["id"], "emoji": body.emoji, "createdAt": utcnow()}}},
    )
    return expand_messages(db, [db["message"].find_one({"_id": message["_id"]})])[0]


@router.delete("/{message_id}/reactions")
def remove_reaction(message_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    message = find_or_404(db, "message", message_id, "Message")
    db["message"].update_one({"_id": message["_id"]}, {"$pull": {"reactions": {"user": user["id"]}}})
    return expand_messages(db, [db["message"].find_one({"_id": message["_id"]})])[0]


@router.patch("/{message_id}/read")
def mark_read(message_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    message = find_or_404(db, "message", message_id, "Message")
    if message.get("recipient") == user["id"] and not message.get("read"):
        db["message"].update_one({"_id": message["_id"]}, {"$set": {"read": True, "readAt": utcnow()}})
    return expand_messages(db, [db["message"].find_one({"_id": message["_id"]})])[0]


def _own_message(db: Database, message_id: str, user: dict) -> dict:
    return find_or_404(
        db, "message", message_id, "Message",
        {"$or": [{"sender": user["id"]}, {"recipient": user["id"]}]},
    )


@router.patch("/{message_id}/archive")
def archive_message(message_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    message = _own_message(db, message_id, user)
    db["message"].update_one({"_id": message["_id"]}, {"$set": {"status": "archived", "updatedAt": utcnow()}})
    return expand_messages(db, [db["message"].find_one({"_id": message["_id"]})])[0]


@router.delete("/{message_id}")
def delete_message(message_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    message = _own_message(db, message_id, user)
    db["message"].update_one({"_id": message["_id"]}, {"$set": {"status": "deleted", "updatedAt": utcnow()}})
    return {"message": "Message deleted successfully"}
