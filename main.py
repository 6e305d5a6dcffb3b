import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import accounts
import admin
import ai
import collaborations
import conversations
import events
import messages
import projects
import suggestions
import tasks
import uploads
import users
from database import db, ensure_indexes

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        ensure_indexes(db)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; database endpoints will answer 500")
    yield


app = FastAPI(title="CollabMate API", lifespan=lifespan)

cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (accounts, users, projects, tasks, events, messages, conversations,
               collaborations, suggestions, ai, admin, uploads):
    app.include_router(module.router)
app.include_router(users.search_router)

os.makedirs(uploads.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=uploads.UPLOAD_DIR), name="uploads")


# --------- Error handling ---------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        body = {"error": "Route not found", "path": request.url.path, "method": request.method}
    else:
        body = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected server error occurred!", "details": str(exc)},
    )


# --------- Root & Test ---------
@app.get("/")
def read_root():
    return {"message": "CollabMate API Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is not None:
        response["database"] = "✅ Available"
        response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
        response["database_name"] = db.name
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


@app.get("/schema")
def get_schema_overview():
    return {
        "collections": [
            "user",
            "project",
            "task",
            "event",
            "message",
            "conversation",
            "collaboration",
            "suggestion",
        ]
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
