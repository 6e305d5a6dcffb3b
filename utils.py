import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo.database import Database

PUBLIC_USER_FIELDS = ("name", "email", "avatar")


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id format")


def oids(id_strs: Iterable[str]) -> List[ObjectId]:
    """ObjectIds for the valid entries only; junk ids are skipped."""
    return [ObjectId(i) for i in id_strs if isinstance(i, str) and ObjectId.is_valid(i)]


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password", None)
    return _plain(doc)


def serialize_list(items: Iterable[dict]) -> List[dict]:
    return [serialize(i) for i in items]


def find_or_404(db: Database, collection: str, id_str: str, label: str, query: Optional[Dict[str, Any]] = None) -> dict:
    doc = db[collection].find_one({"_id": oid(id_str), **(query or {})})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def user_map(db: Database, user_ids: Iterable[str], fields: Iterable[str] = PUBLIC_USER_FIELDS) -> Dict[str, dict]:
    """Look up users by id string and return {id: {id, <fields>}}."""
    ids = oids(set(user_ids))
    if not ids:
        return {}
    projection = {f: 1 for f in fields}
    found = {}
    for u in db["user"].find({"_id": {"$in": ids}}, projection):
        found[str(u["_id"])] = serialize(u)
    return found


def expand_users(db: Database, docs: List[dict], keys: Iterable[str], fields: Iterable[str] = PUBLIC_USER_FIELDS) -> List[dict]:
    """Replace user id references (single or list) under `keys` with user summaries.

    References to users that no longer exist become None (or are dropped
    from lists), so callers can filter out dangling documents.
    """
    keys = list(keys)
    wanted = set()
    for d in docs:
        for k in keys:
            ref = d.get(k)
            if isinstance(ref, list):
                wanted.update(r for r in ref if isinstance(r, str))
            elif isinstance(ref, str):
                wanted.add(ref)
    users = user_map(db, wanted, fields)
    for d in docs:
        for k in keys:
            ref = d.get(k)
            if isinstance(ref, list):
                d[k] = [users[r] for r in ref if r in users]
            elif isinstance(ref, str):
                d[k] = users.get(ref)
    return docs


def to_int(value: Any, default: int, minimum: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= minimum else default


def paginate(collection, query: Dict[str, Any], page: Any = 1, limit: Any = 10, sort=None, projection=None) -> Dict[str, Any]:
    """Run a paged find and return the items with the paging numbers."""
    page = to_int(page, 1)
    limit = to_int(limit, 10)
    cursor = collection.find(query, projection)
    if sort:
        cursor = cursor.sort(sort)
    items = list(cursor.skip((page - 1) * limit).limit(limit))
    total = collection.count_documents(query)
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise an incoming datetime to the naive UTC form stored in Mongo."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def oid_or_404(id_str: str, label: str) -> ObjectId:
    """Like oid(), but a malformed id simply matches nothing."""
    if not ObjectId.is_valid(id_str):
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return ObjectId(id_str)


def contains(text: str) -> Dict[str, Any]:
    """Case-insensitive substring match; the text is matched literally."""
    return {"$regex": re.escape(text), "$options": "i"}
