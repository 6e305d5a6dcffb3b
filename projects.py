import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from auth import get_current_user
from database import create_document, get_db, get_documents, utcnow
from schemas import PROJECT_STATUSES, Project
from utils import expand_users, find_or_404, oid, oids, serialize, user_map

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectIn(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


class ProjectPatch(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


def project_role(project: dict, user_id: str) -> Optional[str]:
    """The caller's effective role on a project: owner, a collaborator role, or None."""
    if project.get("owner") == user_id:
        return "owner"
    for c in project.get("collaborators") or []:
        if isinstance(c, dict) and c.get("user") == user_id:
            return c.get("role", "editor")
    return None


def with_role(project: dict, role: str, **extra) -> dict:
    out = serialize(project)
    out["title"] = out.get("name")
    out["userRole"] = role
    out.update(extra)
    return out


@router.get("")
def list_projects(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    uid = user["id"]
    owned = [with_role(p, "owner") for p in db["project"].find({"owner": uid}).sort("updatedAt", -1)]

    accepted = get_documents("collaboration", {"receiver": uid, "status": "accepted"}, database=db)
    projects = {str(p["_id"]): p for p in db["project"].find({"_id": {"$in": oids(c["project"] for c in accepted)}})}
    shared = [
        with_role(projects[c["project"]], c.get("role", "editor"), collaborationId=str(c["_id"]))
        for c in accepted
        if c["project"] in projects
    ]
    logger.debug("User %s has %d owned and %d shared projects", uid, len(owned), len(shared))
    return owned + shared


@router.get("/{project_id}")
def get_project(project_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    project = find_or_404(db, "project", project_id, "Project")
    role = project_role(project, user["id"])
    if role is None:
        raise HTTPException(403, "Not authorized to access this project")

    out = with_role(project, role)
    members = [c for c in project.get("collaborators") or [] if isinstance(c, dict) and c.get("user")]
    expand_users(db, members, ["user"], fields=("name", "email"))
    out["collaborators"] = [{"user": m["user"], "role": m.get("role", "editor")} for m in members if m["user"]]
    out["owner"] = user_map(db, [project["owner"]], fields=("name", "email")).get(project["owner"])
    return out


@router.post("", status_code=201)
def create_project(body: ProjectIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    name = (body.name or body.title or "").strip()
    description = (body.description or "").strip()
    category = (body.category or "General").strip() or "General"
    if not name or not description:
        raise HTTPException(400, "Project name and description are required")

    project = Project(name=name, description=description, category=category, owner=user["id"])
    new_id = create_document("project", project, database=db)
    db["user"].update_one({"_id": user["_id"]}, {"$inc": {"activity.projectCount": 1}})
    logger.info("User %s created project %s", user["id"], new_id)
    return with_role(db["project"].find_one({"_id": oid(new_id)}), "owner")


@router.patch("/{project_id}")
def update_project(project_id: str, body: ProjectPatch, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    project = find_or_404(db, "project", project_id, "Project")
    if project.get("owner") != user["id"]:
        raise HTTPException(403, "Only the project owner can update this project")

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    title = changes.pop("title", None)
    if title is not None and "name" not in changes:
        changes["name"] = title
    for key in ("name", "description"):
        if key in changes:
            changes[key] = changes[key].strip()
            if not changes[key]:
                raise HTTPException(400, f"Project {key} cannot be empty")
    if "status" in changes and changes["status"] not in PROJECT_STATUSES:
        raise HTTPException(400, f"{changes['status']} is not a valid status")

    changes["updatedAt"] = utcnow()
    db["project"].update_one({"_id": project["_id"]}, {"$set": changes})
    return with_role(db["project"].find_one({"_id": project["_id"]}), "owner")


def delete_project_cascade(db: Database, project: dict) -> None:
    pid = str(project["_id"])
    db["project"].delete_one({"_id": project["_id"]})
    db["collaboration"].delete_many({"project": pid})
    db["task"].delete_many({"project": pid})
    db["event"].delete_many({"project": pid})


@router.delete("/{project_id}")
def delete_project(project_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    project = find_or_404(db, "project", project_id, "Project")
    if project.get("owner") != user["id"]:
        raise HTTPException(403, "Not authorized to delete this project")
    delete_project_cascade(db, project)
    logger.info("User %s deleted project %s", user["id"], project_id)
    return {"message": "Project deleted successfully"}
