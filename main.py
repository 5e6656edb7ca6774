import os
from contextlib import asynccontextmanager
from typing import Any, Optional
from uuid import uuid4

from bson import ObjectId
from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from badges import check_all_badges, list_user_badges
from collaboration import (
    cancel_request,
    create_request,
    list_project_requests,
    pending_for_owner,
    request_status,
    review_request,
)
from database import ensure_indexes, get_db, oid, serialize
from errors import ShowcaseError, UnauthorizedError, showcase_error_handler
from logging_config import bind_request_context, clear_request_context, configure_logging, get_logger
from projects import publish_project, record_view

configure_logging()
logger = get_logger(__name__)

USER_HEADER = "X-User-Id"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    else:
        logger.warning("database_not_configured")
    yield


app = FastAPI(title="Campus Showcase Collaboration API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ShowcaseError, showcase_error_handler)


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("store_failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error", "type": "internal"})


@app.middleware("http")
async def request_context(request: Request, call_next):
    bind_request_context(
        request.headers.get("X-Request-Id") or str(uuid4()),
        request.headers.get(USER_HEADER),
        path=request.url.path,
    )
    try:
        return await call_next(request)
    finally:
        clear_request_context()


# --------- Auth ---------

def current_user_id(x_user_id: Optional[str] = Header(None)) -> ObjectId:
    """Caller identity supplied by the session gateway."""
    if not x_user_id or not ObjectId.is_valid(x_user_id):
        raise UnauthorizedError()
    return ObjectId(x_user_id)


# --------- Schemas (light, for request bodies) ---------
class CollaborateIn(BaseModel):
    message: Optional[str] = None
    skills: Optional[Any] = None


class ReviewIn(BaseModel):
    action: Optional[str] = None  # accept/reject
    note: Optional[str] = None


# --------- Root & Test ---------
@app.get("/")
def read_root():
    return {"message": "Campus Showcase Collaboration Backend Running"}


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
    db = database.db
    if db is None:
        return response
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = db.name
    try:
        response["collections"] = db.list_collection_names()
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# --------- Collaboration Requests ---------
@app.post("/projects/{project_id}/collaborate", status_code=201)
def request_to_collaborate(
    project_id: str,
    body: CollaborateIn,
    user_id: ObjectId = Depends(current_user_id),
    db: Database = Depends(get_db),
):
    new_id = create_request(db, oid(project_id, "Invalid project ID"), user_id, body.message, body.skills)
    return {"message": "Collaboration request sent successfully", "requestId": str(new_id)}


@app.get("/projects/{project_id}/collaborate")
def list_requests(project_id: str, user_id: ObjectId = Depends(current_user_id), db: Database = Depends(get_db)):
    return {"requests": list_project_requests(db, oid(project_id, "Invalid project ID"), user_id)}


@app.get("/projects/{project_id}/collaborate/status")
def my_request_status(project_id: str, user_id: ObjectId = Depends(current_user_id), db: Database = Depends(get_db)):
    return request_status(db, oid(project_id, "Invalid project ID"), user_id)


@app.patch("/projects/{project_id}/collaborate/{request_id}")
def review(
    project_id: str,
    request_id: str,
    body: ReviewIn,
    user_id: ObjectId = Depends(current_user_id),
    db: Database = Depends(get_db),
):
    new_status = review_request(
        db,
        oid(project_id, "Invalid ID"),
        oid(request_id, "Invalid ID"),
        user_id,
        body.action,
        body.note,
    )
    return {"message": f"Request {new_status} successfully", "status": new_status}


@app.delete("/projects/{project_id}/collaborate/{request_id}")
def cancel(project_id: str, request_id: str, user_id: ObjectId = Depends(current_user_id), db: Database = Depends(get_db)):
    cancel_request(db, oid(project_id, "Invalid ID"), oid(request_id, "Invalid ID"), user_id)
    return {"message": "Request cancelled successfully"}


@app.get("/collaborate/pending")
def pending_inbox(user_id: ObjectId = Depends(current_user_id), db: Database = Depends(get_db)):
    return pending_for_owner(db, user_id)


# --------- Projects ---------
@app.get("/projects/{project_id}")
def view_project(project_id: str, db: Database = Depends(get_db)):
    project, owner_badge = record_view(db, oid(project_id, "Invalid project ID"))
    owner_id = project.get("userId")
    return {"project": serialize(project), "ownerBadge": owner_badge, "ownerId": str(owner_id) if owner_id else None}


@app.post("/projects/{project_id}/publish")
def publish(project_id: str, user_id: ObjectId = Depends(current_user_id), db: Database = Depends(get_db)):
    new_badges = publish_project(db, oid(project_id, "Invalid project ID"), user_id)
    return {"message": "Project published successfully", "newBadges": new_badges or None}


# --------- Badges ---------
@app.get("/badges")
def get_badges(userId: Optional[str] = None, db: Database = Depends(get_db)):
    return {"badges": list_user_badges(db, oid(userId, "Invalid user ID"))}


@app.post("/badges")
def check_my_badges(user_id: ObjectId = Depends(current_user_id), db: Database = Depends(get_db)):
    new_badges = check_all_badges(db, user_id)
    message = f"Awarded {len(new_badges)} new badge(s)" if new_badges else "No new badges earned"
    return {"newBadges": new_badges, "message": message}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
