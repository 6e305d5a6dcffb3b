"""
Admin dashboard API: platform statistics, paginated management tables,
moderation actions and chart data. Every route requires an admin.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from auth import require_admin
from collaborations import expand_collaborations, set_collaboration_status
from database import get_db, utcnow
from messages import expand_messages
from projects import delete_project_cascade, with_role
from utils import contains, expand_users, find_or_404, oid, oids, paginate, serialize, to_int

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

SORTS = {
    "newest": [("createdAt", DESCENDING)],
    "oldest": [("createdAt", ASCENDING)],
    "name": [("name", ASCENDING)],
    "email": [("email", ASCENDING)],
    "title": [("name", ASCENDING)],
    "status": [("status", ASCENDING)],
    "sender": [("sender", ASCENDING)],
}
USER_SORTS = ("newest", "oldest", "name", "email")
PROJECT_SORTS = ("newest", "oldest", "title", "status")
MESSAGE_SORTS = ("newest", "oldest", "sender")

MESSAGE_ACTIONS = {"flag": "flagged", "unflag": "active", "archive": "archived"}
PROJECT_ACTIONS = {"archive": "archived", "activate": "active"}
TREND_DAYS = 30


def _given(value: Optional[str]) -> bool:
    return bool(value) and value != "all"


def _sort(sort: Optional[str], allowed) -> list:
    return SORTS[sort] if sort in allowed else SORTS["newest"]


def _page(key: str, result: Dict[str, Any], items: List[dict]) -> Dict[str, Any]:
    """One response shape for every admin table."""
    return {
        key: items,
        "total": result["total"],
        f"total{key.capitalize()}": result["total"],
        "page": result["page"],
        "currentPage": result["page"],
        "limit": result["limit"],
        "totalPages": result["totalPages"],
    }


def user_query(search: Optional[str], status: Optional[str], role: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if search:
        query["$or"] = [{"name": contains(search)}, {"email": contains(search)}]
    if _given(role):
        query["role"] = role
    if _given(status):
        query["active"] = status == "active"
    return query


def project_query(search: Optional[str], status: Optional[str], category: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if search:
        query["$or"] = [{"name": contains(search)}, {"description": contains(search)}]
    if _given(status):
        query["status"] = status
    if _given(category):
        query["category"] = category
    return query


def _admin_projects(db: Database, docs: List[dict]) -> List[dict]:
    items = []
    for p in docs:
        item = with_role(p, "admin")
        del item["userRole"]
        item["collaborators"] = [c.get("user") for c in p.get("collaborators") or [] if isinstance(c, dict)]
        items.append(item)
    return expand_users(db, items, ["owner", "collaborators"], fields=("name", "email"))


# --- statistics ---------------------------------------------------------------

@router.get("/stats")
def admin_stats(range_: str = Query("7", alias="range"), db: Database = Depends(get_db)):
    days = to_int(range_, 7)
    since = utcnow() - timedelta(days=days)

    total_users = db["user"].count_documents({})
    active_users = db["user"].count_documents({"active": {"$ne": False}})
    total_projects = db["project"].count_documents({})
    new_users = db["user"].count_documents({"createdAt": {"$gte": since}})
    active_projects = db["project"].count_documents({"status": "active"})

    recent = expand_messages(db, list(db["message"].find().sort("createdAt", -1).limit(10)))
    activity = [
        {
            "type": "message",
            "description": "{} sent a message in {}".format(
                (m.get("sender") or {}).get("name") or "Unknown",
                (m.get("project") or {}).get("title") or "a project",
            ),
            "timestamp": m.get("createdAt"),
        }
        for m in recent
    ]

    def percent(part: int, whole: int) -> float:
        return part / whole * 100 if whole else 0

    return {
        "totalUsers": total_users,
        "activeUsers": active_users,
        "totalProjects": total_projects,
        "totalCollaborations": db["collaboration"].count_documents({}),
        "newUsersThisPeriod": new_users,
        "activeProjects": active_projects,
        "userStats": {
            "activePercentage": percent(active_users, total_users),
            "newUsersPercentage": percent(new_users, total_users),
        },
        "projectStats": {"activePercentage": percent(active_projects, total_projects)},
        "recentActivity": activity,
    }


# --- tables -------------------------------------------------------------------

@router.get("/users")
def all_users(
    page: str = "1", limit: str = "10", search: Optional[str] = None, status: Optional[str] = None,
    role: Optional[str] = None, db: Database = Depends(get_db),
):
    result = paginate(db["user"], user_query(search, status, role), page, limit,
                      sort=SORTS["newest"], projection={"password": 0})
    return _page("users", result, [serialize(u) for u in result["items"]])


@router.get("/user-analytics")
def user_analytics(
    page: str = "1", limit: str = "10", search: Optional[str] = None, status: Optional[str] = None,
    role: Optional[str] = None, sort: Optional[str] = None, db: Database = Depends(get_db),
):
    result = paginate(db["user"], user_query(search, status, role), page, limit,
                      sort=_sort(sort, USER_SORTS), projection={"password": 0})
    return _page("users", result, [serialize(u) for u in result["items"]])


@router.get("/projects")
def all_projects(
    page: str = "1", limit: str = "10", search: Optional[str] = None, status: Optional[str] = None,
    category: Optional[str] = None, db: Database = Depends(get_db),
):
    result = paginate(db["project"], project_query(search, status, category), page, limit, sort=SORTS["newest"])
    return _page("projects", result, _admin_projects(db, result["items"]))


@router.get("/project-analytics")
def project_analytics(
    page: str = "1", limit: str = "10", search: Optional[str] = None, status: Optional[str] = None,
    category: Optional[str] = None, sort: Optional[str] = None, db: Database = Depends(get_db),
):
    result = paginate(db["project"], project_query(search, status, category), page, limit,
                      sort=_sort(sort, PROJECT_SORTS))
    return _page("projects", result, _admin_projects(db, result["items"]))


@router.get("/message-analytics")
def message_analytics(
    page: str = "1", limit: str = "10", search: Optional[str] = None, status: Optional[str] = None,
    sort: Optional[str] = None, db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        query["content"] = contains(search)
    if _given(status):
        query["status"] = status
    result = paginate(db["message"], query, page, limit, sort=_sort(sort, MESSAGE_SORTS))
    return _page("messages", result, expand_messages(db, result["items"]))


@router.get("/collaborations")
def all_collaborations(
    page: str = "1", limit: str = "10", search: Optional[str] = None, status: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if _given(status):
        query["status"] = status
    if search:
        query["message"] = contains(search)
    result = paginate(db["collaboration"], query, page, limit, sort=SORTS["newest"])
    return _page("collaborations", result, expand_collaborations(db, result["items"]))


# --- user actions -------------------------------------------------------------

def _guard_last_admin(db: Database, user: dict, message: str) -> None:
    # counted over the whole collection, not the page the admin is looking at
    if user.get("role") != "admin" or user.get("active") is False:
        return
    if db["user"].count_documents({"role": "admin", "active": {"$ne": False}}) <= 1:
        raise HTTPException(400, message)


@router.post("/users/{user_id}/{action}")
def user_action(user_id: str, action: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    if action not in ("activate", "deactivate"):
        raise HTTPException(400, 'Invalid user action provided. Must be "activate" or "deactivate".')
    target = find_or_404(db, "user", user_id, "User")
    if action == "deactivate":
        _guard_last_admin(db, target, "Cannot deactivate the last active admin user. This would lock the system.")

    db["user"].update_one({"_id": target["_id"]}, {"$set": {"active": action == "activate", "updatedAt": utcnow()}})
    logger.info("Admin %s %sd user %s", admin["id"], action, user_id)
    return {"message": f"User account has been {action}d successfully."}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    target = find_or_404(db, "user", user_id, "User")
    _guard_last_admin(db, target, "Cannot delete the last admin user. This would lock the system.")
    db["user"].delete_one({"_id": target["_id"]})
    logger.info("Admin %s deleted user %s", admin["id"], user_id)
    return {"message": "User account deleted successfully."}


# --- project actions ----------------------------------------------------------

@router.delete("/projects/{project_id}")
def delete_project(project_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    project = find_or_404(db, "project", project_id, "Project")
    delete_project_cascade(db, project)
    logger.info("Admin %s deleted project %s", admin["id"], project_id)
    return {"message": "Project deleted successfully"}


@router.put("/projects/{project_id}/{action}")
def project_action(project_id: str, action: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    if action not in PROJECT_ACTIONS:
        raise HTTPException(400, 'Invalid project action. Use "archive" or "activate".')
    project = find_or_404(db, "project", project_id, "Project")
    db["project"].update_one(
        {"_id": project["_id"]}, {"$set": {"status": PROJECT_ACTIONS[action], "updatedAt": utcnow()}}
    )
    logger.info("Admin %s set project %s to %s", admin["id"], project_id, PROJECT_ACTIONS[action])
    return {"message": f"Project status updated to '{PROJECT_ACTIONS[action]}' successfully."}


# --- message moderation -------------------------------------------------------

@router.put("/messages/{message_id}/{action}")
def message_action(message_id: str, action: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    if action not in MESSAGE_ACTIONS:
        raise HTTPException(400, 'Invalid action for message status update. Use "flag", "unflag", or "archive".')
    message = find_or_404(db, "message", message_id, "Message")
    status = MESSAGE_ACTIONS[action]
    db["message"].update_one({"_id": message["_id"]}, {"$set": {"status": status, "updatedAt": utcnow()}})
    logger.info("Admin %s set message %s to %s", admin["id"], message_id, status)
    return {"message": f"Message status updated to '{status}' successfully."}


@router.delete("/messages/{message_id}")
def delete_message(message_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    message = find_or_404(db, "message", message_id, "Message")
    db["message"].update_one({"_id": message["_id"]}, {"$set": {"status": "deleted", "updatedAt": utcnow()}})
    logger.info("Admin %s deleted message %s", admin["id"], message_id)
    return {"message": "Message marked as deleted successfully."}


# --- collaboration moderation -------------------------------------------------

@router.put("/collaborations/{collaboration_id}/{action}")
def collaboration_action(
    collaboration_id: str, action: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)
):
    statuses = {"accept": "accepted", "reject": "rejected"}
    if action not in statuses:
        raise HTTPException(400, 'Invalid action for collaboration status update. Use "accept" or "reject".')
    collaboration = find_or_404(db, "collaboration", collaboration_id, "Collaboration request")
    set_collaboration_status(db, collaboration, statuses[action])
    logger.info("Admin %s %s collaboration %s", admin["id"], statuses[action], collaboration_id)
    return {"message": f"Collaboration request {statuses[action]} successfully"}


@router.delete("/collaborations/{collaboration_id}")
def delete_collaboration(collaboration_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    collaboration = find_or_404(db, "collaboration", collaboration_id, "Collaboration request")
    if oids([collaboration.get("project")]):
        db["project"].update_one(
            {"_id": oid(collaboration["project"])},
            {"$pull": {"collaborators": {"user": collaboration.get("receiver")}}},
        )
    db["collaboration"].delete_one({"_id": collaboration["_id"]})
    logger.info("Admin %s deleted collaboration %s", admin["id"], collaboration_id)
    return {"message": "Collaboration request deleted successfully."}


# --- charts -------------------------------------------------------------------

def daily_trend(collection, days: int = TREND_DAYS) -> List[Dict[str, Any]]:
    """Documents created per UTC day over the last `days` days plus today, zero-filled."""
    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=days)
    counts: Dict[str, int] = {}
    for doc in collection.find({"createdAt": {"$gte": start}}, {"createdAt": 1}):
        created = doc.get("createdAt")
        if isinstance(created, datetime):
            key = created.strftime("%Y-%m-%d")
            counts[key] = counts.get(key, 0) + 1
    return [
        {"date": day.strftime("%Y-%m-%d"), "count": counts.get(day.strftime("%Y-%m-%d"), 0)}
        for day in (start + timedelta(days=i) for i in range(days + 1))
    ]


@router.get("/charts/user-registration-trend")
def user_registration_trend(db: Database = Depends(get_db)):
    return daily_trend(db["user"])


@router.get("/charts/project-creation-trend")
def project_creation_trend(db: Database = Depends(get_db)):
    return daily_trend(db["project"])


@router.get("/charts/user-role-distribution")
def user_role_distribution(db: Database = Depends(get_db)):
    distribution: Dict[str, int] = {}
    for u in db["user"].find({}, {"role": 1}):
        role = u.get("role", "user")
        distribution[role] = distribution.get(role, 0) + 1
    return distribution
