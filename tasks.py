from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pymongo.database import Database

from auth import get_current_user
from database import create_document, get_db, utcnow
from schemas import Task
from utils import expand_users, naive_utc, oid, oid_or_404, serialize

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class TaskIn(BaseModel):
    title: str
    description: Optional[str] = None
    dueDate: Optional[datetime] = None
    project: Optional[str] = None
    assignedTo: Optional[str] = None
    completed: bool = False


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    dueDate: Optional[datetime] = None
    project: Optional[str] = None
    assignedTo: Optional[str] = None
    completed: Optional[bool] = None


@router.post("", status_code=201)
def create_task(body: TaskIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not body.title.strip():
        raise HTTPException(400, "Task title is required")
    task = Task(
        title=body.title.strip(),
        description=body.description,
        dueDate=naive_utc(body.dueDate),
        project=body.project or None,
        assignedTo=body.assignedTo or user["id"],
        completed=body.completed,
    )
    new_id = create_document("task", task, database=db)
    return serialize(db["task"].find_one({"_id": oid(new_id)}))


@router.get("")
def list_tasks(
    project: Optional[str] = None,
    assignedTo: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if project:
        query["project"] = project
    if assignedTo:
        query["assignedTo"] = assignedTo
    items = [serialize(t) for t in db["task"].find(query).sort("createdAt", 1)]
    return expand_users(db, items, ["assignedTo"], fields=("name", "email"))


@router.put("/{task_id}")
def update_task(task_id: str, body: TaskUpdate, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    task_oid = oid_or_404(task_id, "Task")
    changes = body.model_dump(exclude_unset=True)
    if "title" in changes and not (changes["title"] or "").strip():
        raise HTTPException(400, "Task title cannot be empty")
    if changes.get("assignedTo") is None:
        changes.pop("assignedTo", None)
    if "dueDate" in changes:
        changes["dueDate"] = naive_utc(changes["dueDate"])
    changes["updatedAt"] = utcnow()

    res = db["task"].update_one({"_id": task_oid}, {"$set": changes})
    if res.matched_count == 0:
        raise HTTPException(404, "Task not found")
    return serialize(db["task"].find_one({"_id": task_oid}))


@router.delete("/{task_id}")
def delete_task(task_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    res = db["task"].delete_one({"_id": oid_or_404(task_id, "Task")})
    if res.deleted_count == 0:
        raise HTTPException(404, "Task not found")
    return {"message": "Task deleted"}
