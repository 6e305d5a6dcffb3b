"""
MongoDB access for the CollabMate API.

The connection is configured from DATABASE_URL and DATABASE_NAME (a .env file
is honoured). When either is missing `db` stays None and the API reports the
database as unavailable instead of failing at import time.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def utcnow() -> datetime:
    # Mongo hands datetimes back as naive UTC; store them the same way.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    target = database if database is not None else get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = data.copy()
    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now
    result = target[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    database: Optional[Database] = None,
) -> List[Dict[str, Any]]:
    target = database if database is not None else get_db()
    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["user"].create_index("role")
    database["project"].create_index("owner")
    database["project"].create_index("status")
    database["project"].create_index([("updatedAt", DESCENDING)])
    database["collaboration"].create_index([("project", ASCENDING), ("receiver", ASCENDING)], unique=True)
    database["collaboration"].create_index([("receiver", ASCENDING), ("status", ASCENDING)])
    database["collaboration"].create_index([("sender", ASCENDING), ("status", ASCENDING)])
    database["message"].create_index([("sender", ASCENDING), ("createdAt", DESCENDING)])
    database["message"].create_index([("recipient", ASCENDING), ("createdAt", DESCENDING)])
    database["message"].create_index([("conversation", ASCENDING), ("createdAt", ASCENDING)])
    database["suggestion"].create_index([("user", ASCENDING), ("content", ASCENDING)], unique=True)
    database["task"].create_index([("project", ASCENDING), ("assignedTo", ASCENDING)])
    database["event"].create_index("project")
    logger.info("MongoDB indexes ensured on %s", database.name)
