from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pymongo.database import Database

from auth import get_current_user
from database import create_document, get_db, utcnow
from schemas import Event, EventType
from utils import expand_users, naive_utc, oid, oid_or_404, serialize

router = APIRouter(prefix="/api/events", tags=["events"])


class EventIn(BaseModel):
    title: str
    description: Optional[str] = None
    start: datetime
    end: datetime
    project: str
    assignedTo: List[str] = []
    type: EventType = "other"


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    assignedTo: Optional[List[str]] = None
    type: Optional[EventType] = None


@router.post("", status_code=201)
def create_event(body: EventIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    start, end = naive_utc(body.start), naive_utc(body.end)
    if end < start:
        raise HTTPException(400, "Event end must not be before its start")
    event = Event(**{**body.model_dump(), "start": start, "end": end, "createdBy": user["id"]})
    new_id = create_document("event", event, database=db)
    return serialize(db["event"].find_one({"_id": oid(new_id)}))


@router.get("")
def list_events(project: Optional[str] = None, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    query = {"project": project} if project else {}
    items = [serialize(e) for e in db["event"].find(query).sort("start", 1)]
    return expand_users(db, items, ["assignedTo", "createdBy"], fields=("name", "email"))


@router.put("/{event_id}")
def update_event(event_id: str, body: EventUpdate, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    event = db["event"].find_one({"_id": oid_or_404(event_id, "Event")})
    if not event:
        raise HTTPException(404, "Event not found")
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    for key in ("start", "end"):
        if key in changes:
            changes[key] = naive_utc(changes[key])
    if changes.get("end", event["end"]) < changes.get("start", event["start"]):
        raise HTTPException(400, "Event end must not be before its start")
    changes["updatedAt"] = utcnow()
    db["event"].update_one({"_id": event["_id"]}, {"$set": changes})
    return serialize(db["event"].find_one({"_id": event["_id"]}))


@router.delete("/{event_id}")
def delete_event(event_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    res = db["event"].delete_one({"_id": oid_or_404(event_id, "Event")})
    if res.deleted_count == 0:
        raise HTTPException(404, "Event not found")
    return {"message": "Event deleted"}
