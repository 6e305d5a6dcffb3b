import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import get_current_user
from database import create_document, get_db, utcnow
from schemas import COLLABORATION_ROLES, Collaboration
from utils import expand_users, find_or_404, oid, oids, serialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/collaborations", tags=["collaborations"])


class CollaborationRequestIn(BaseModel):
    projectId: Optional[str] = None
    receiverId: Optional[str] = None
    role: Optional[str] = None
    message: Optional[str] = Field(None, max_length=500)


def set_collaboration_status(db: Database, collaboration: dict, status: str) -> dict:
    """Move a request to `status` and keep the project's collaborator list in step.

    Only accepted requests are reflected in project.collaborators; every other
    status removes the receiver from it.
    """
    db["collaboration"].update_one(
        {"_id": collaboration["_id"]}, {"$set": {"status": status, "updatedAt": utcnow()}}
    )
    project_id = collaboration.get("project")
    receiver = collaboration.get("receiver")
    if isinstance(project_id, str) and oids([project_id]):
        db["project"].update_one({"_id": oid(project_id)}, {"$pull": {"collaborators": {"user": receiver}}})
        if status == "accepted":
            db["project"].update_one(
                {"_id": oid(project_id)},
                {
                    "$push": {"collaborators": {"user": receiver, "role": collaboration.get("role", "editor")}},
                    "$set": {"updatedAt": utcnow()},
                },
            )
    return db["collaboration"].find_one({"_id": collaboration["_id"]})


def expand_collaborations(db: Database, docs: list, user_fields=("name", "email")) -> list:
    items = expand_users(db, [serialize(d) for d in docs], ["sender", "receiver"], fields=user_fields)
    project_ids = {i["project"] for i in items if isinstance(i.get("project"), str)}
    projects = {
        str(p["_id"]): {"id": str(p["_id"]), "name": p.get("name"), "title": p.get("name"), "description": p.get("description")}
        for p in db["project"].find({"_id": {"$in": oids(project_ids)}})
    }
    for i in items:
        i["project"] = projects.get(i.get("project")) if isinstance(i.get("project"), str) else None
    return items


@router.post("/request", status_code=201)
def send_request(body: CollaborationRequestIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not body.projectId or not body.receiverId:
        raise HTTPException(400, "Project ID and receiver ID are required")
    role = body.role or "editor"
    if role not in COLLABORATION_ROLES:
        raise HTTPException(400, f"{role} is not a valid role")

    project = find_or_404(db, "project", body.projectId, "Project")
    if project.get("owner") != user["id"]:
        raise HTTPException(403, "Only project owner can send collaboration requests")
    if body.receiverId == user["id"]:
        raise HTTPException(400, "You cannot invite yourself to your own project")
    find_or_404(db, "user", body.receiverId, "Receiver")

    existing = db["collaboration"].find_one({"project": body.projectId, "receiver": body.receiverId})
    if existing and existing.get("status") in ("pending", "accepted"):
        raise HTTPException(400, "Collaboration request already exists")

    if existing:
        # a rejected or removed invitation is reopened rather than duplicated
        db["collaboration"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"status": "pending", "role": role, "message": body.message or "", "sender": user["id"], "updatedAt": utcnow()}},
        )
        collaboration_id = str(existing["_id"])
    else:
        request = Collaboration(
            project=body.projectId, sender=user["id"], receiver=body.receiverId, role=role, message=body.message or ""
        )
        try:
            collaboration_id = create_document("collaboration", request, database=db)
        except DuplicateKeyError:
            raise HTTPException(400, "Collaboration request already exists")

    logger.info("User %s invited %s to project %s", user["id"], body.receiverId, body.projectId)
    collaboration = db["collaboration"].find_one({"_id": oid(collaboration_id)})
    return {"message": "Collaboration request sent successfully", "collaboration": serialize(collaboration)}


@router.get("/requests")
def list_requests(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    uid = user["id"]
    found = db["collaboration"].find(
        {"$or": [{"receiver": uid}, {"sender": uid}], "status": {"$ne": "removed"}}
    ).sort("createdAt", -1)
    requests = []
    for item in expand_collaborations(db, list(found)):
        if not item.get("sender") or not item.get("project"):
            continue
        receiver = item.get("receiver")
        item["direction"] = "incoming" if isinstance(receiver, dict) and receiver.get("id") == uid else "outgoing"
        requests.append(item)
    return {"requests": requests}


def _pending_for_receiver(db: Database, request_id: str, user: dict) -> dict:
    return find_or_404(
        db, "collaboration", request_id, "Collaboration request", {"receiver": user["id"], "status": "pending"}
    )


@router.put("/accept/{request_id}")
def accept_request(request_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    collaboration = set_collaboration_status(db, _pending_for_receiver(db, request_id, user), "accepted")
    logger.info("User %s accepted collaboration %s", user["id"], request_id)
    return {"message": "Collaboration request accepted", "collaboration": serialize(collaboration)}


@router.put("/reject/{request_id}")
def reject_request(request_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    collaboration = set_collaboration_status(db, _pending_for_receiver(db, request_id, user), "rejected")
    logger.info("User %s rejected collaboration %s", user["id"], request_id)
    return {"message": "Collaboration request rejected", "collaboration": serialize(collaboration)}


@router.get("/project/{project_id}")
def project_collaborators(project_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    found = db["collaboration"].find({"project": project_id, "status": "accepted"}).sort("createdAt", -1)
    return {"collaborators": expand_collaborations(db, list(found))}


@router.delete("/remove/{collaboration_id}")
def remove_collaborator(collaboration_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    collaboration = find_or_404(db, "collaboration", collaboration_id, "Collaboration")
    project = db["project"].find_one({"_id": oid(collaboration["project"])}) if oids([collaboration["project"]]) else None
    if not project or project.get("owner") != user["id"]:
        raise HTTPException(403, "Only project owner can remove collaborators")
    collaboration = set_collaboration_status(db, collaboration, "removed")
    logger.info("User %s removed collaborator %s", user["id"], collaboration["receiver"])
    return {"message": "Collaborator removed successfully", "collaboration": serialize(collaboration)}
