"""
Collaboration request lifecycle.

A request moves ``pending -> accepted``, ``pending -> rejected`` or is deleted
while pending. Review is a compare-and-swap on ``status == "pending"``; the
accept path adds the requester to the project's team roster and reverts the
request to pending when that cannot be done.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import (
    COLLABORATION_REQUESTS,
    PROJECTS,
    USERS,
    compare_and_set,
    insert_unique,
    now,
    serialize,
)
from errors import ConflictError, ForbiddenError, NotFoundError, StoreError, ValidationFailedError
from logging_config import get_logger
from schemas import CollaborationRequest, TeamMember

logger = get_logger(__name__)

MIN_MESSAGE_LENGTH = 20
MAX_MESSAGE_LENGTH = 1000
MAX_SKILLS = 20
MAX_SKILL_LENGTH = 100

REVIEW_ACTIONS = {"accept": "accepted", "reject": "rejected"}

PENDING_EXISTS = "You already have a pending request for this project"
ALREADY_REVIEWED = "This request has already been reviewed"

REQUESTER_PROFILE_FIELDS = ("name", "email", "profilePicture", "bio", "github", "linkedin")


# --------- Helpers ---------

def _load_project(database: Database, project_id: ObjectId) -> dict:
    project = database[PROJECTS].find_one({"_id": project_id})
    if not project:
        raise NotFoundError("Project not found")
    return project


def _load_request(database: Database, project_id: ObjectId, request_id: ObjectId, missing: str) -> dict:
    req = database[COLLABORATION_REQUESTS].find_one({"_id": request_id, "projectId": project_id})
    if not req:
        raise NotFoundError(missing)
    return req


def _find_pending(database: Database, project_id: ObjectId, requester_id: ObjectId) -> Optional[dict]:
    return database[COLLABORATION_REQUESTS].find_one(
        {"projectId": project_id, "requesterId": requester_id, "status": "pending"}
    )


def is_owner(project: dict, user_id: ObjectId) -> bool:
    return str(project.get("userId")) == str(user_id)


def on_roster(project: dict, user_id: ObjectId) -> bool:
    uid = str(user_id)
    return any(member.get("userId") == uid for member in project.get("teamMembers") or [])


def normalize_proposal(message: Any, skills: Any) -> tuple:
    """Trim and bound-check the request message and skill list."""
    if not isinstance(message, str) or not message.strip() or not isinstance(skills, list) or not skills:
        raise ValidationFailedError("Message and at least one skill are required")

    text = message.strip()
    if len(text) < MIN_MESSAGE_LENGTH:
        raise ValidationFailedError(f"Message must be at least {MIN_MESSAGE_LENGTH} characters", "message")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationFailedError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters", "message")

    normalized = [s.strip() for s in skills if isinstance(s, str) and s.strip()]
    if not normalized:
        raise ValidationFailedError("Message and at least one skill are required", "skills")
    if len(normalized) > MAX_SKILLS:
        raise ValidationFailedError(f"You can specify at most {MAX_SKILLS} skills", "skills")
    if any(len(s) > MAX_SKILL_LENGTH for s in normalized):
        raise ValidationFailedError(f"Each skill must be at most {MAX_SKILL_LENGTH} characters long", "skills")
    return text, normalized


def _join_users(database: Database, docs: List[dict], fields=REQUESTER_PROFILE_FIELDS) -> List[dict]:
    """Attach ``requester`` profiles; requests whose requester is gone are dropped."""
    ids = list({d["requesterId"] for d in docs})
    projection = {f: 1 for f in fields}
    users = {u["_id"]: u for u in database[USERS].find({"_id": {"$in": ids}}, projection)}
    joined = []
    for d in docs:
        user = users.get(d["requesterId"])
        if user is None:
            continue
        joined.append({**d, "requester": user})
    return joined


# --------- Create ---------

def create_request(
    database: Database,
    project_id: ObjectId,
    requester_id: ObjectId,
    message: Any,
    skills: Any,
) -> ObjectId:
    project = _load_project(database, project_id)

    if project.get("status") != "in-progress":
        raise ValidationFailedError("Can only request to join in-progress projects")
    if is_owner(project, requester_id):
        raise ValidationFailedError("Cannot request to join your own project")
    if on_roster(project, requester_id):
        raise ValidationFailedError("You are already a team member of this project")

    if _find_pending(database, project_id, requester_id):
        raise ConflictError(PENDING_EXISTS)

    text, normalized = normalize_proposal(message, skills)

    ts = now()
    doc = CollaborationRequest(
        projectId=project_id,
        requesterId=requester_id,
        message=text,
        skills=normalized,
        createdAt=ts,
        updatedAt=ts,
    ).model_dump()

    result = insert_unique(database, COLLABORATION_REQUESTS, doc)
    if not result.inserted:
        # Lost a race with a concurrent create for the same pair.
        raise ConflictError(PENDING_EXISTS)

    logger.info(
        "collaboration_request_created",
        request_id=str(result.inserted_id),
        project_id=str(project_id),
        requester_id=str(requester_id),
    )
    return result.inserted_id


# --------- Review ---------

def review_request(
    database: Database,
    project_id: ObjectId,
    request_id: ObjectId,
    reviewer_id: ObjectId,
    action: Any,
    note: Optional[str] = None,
) -> str:
    """Accept or reject a pending request. Returns the new status."""
    if action not in REVIEW_ACTIONS:
        raise ValidationFailedError('Invalid action. Must be "accept" or "reject"', "action")

    project = _load_project(database, project_id)
    if not is_owner(project, reviewer_id):
        raise ForbiddenError("Only project owner can review requests")

    req = _load_request(database, project_id, request_id, "Collaboration request not found")
    if req.get("status") != "pending":
        raise ConflictError(ALREADY_REVIEWED)

    new_status = REVIEW_ACTIONS[action]
    reviewed_at = now()
    note_text = note.strip() if isinstance(note, str) and note.strip() else None

    won = compare_and_set(
        database,
        COLLABORATION_REQUESTS,
        req["_id"],
        {"status": "pending"},
        {
            "status": new_status,
            "reviewedBy": reviewer_id,
            "reviewerNote": note_text,
            "reviewedAt": reviewed_at,
            "updatedAt": reviewed_at,
        },
    )
    if not won:
        raise ConflictError(ALREADY_REVIEWED)

    logger.info(
        "collaboration_request_reviewed",
        request_id=str(req["_id"]),
        project_id=str(project_id),
        status=new_status,
    )

    if new_status == "accepted":
        _add_requester_to_team(database, project_id, req, reviewed_at)
    return new_status


def _load_requester(database: Database, requester_id: ObjectId) -> Optional[dict]:
    return database[USERS].find_one({"_id": requester_id})


def _add_requester_to_team(
    database: Database,
    project_id: ObjectId,
    req: dict,
    reviewed_at: datetime,
) -> None:
    try:
        requester = _load_requester(database, req["requesterId"])
        if requester is None:
            _revert_acceptance(database, req, reviewed_at)
            raise NotFoundError("Requester account no longer exists")

        requester_id = str(requester["_id"])
        current = database[PROJECTS].find_one({"_id": project_id}, {"teamMembers": 1})
        if current is None:
            _revert_acceptance(database, req, reviewed_at)
            raise NotFoundError("Project not found")
        if on_roster(current, requester_id):
            logger.info("requester_already_on_roster", project_id=str(project_id), user_id=requester_id)
            return

        member = TeamMember(
            name=requester.get("name", ""),
            email=requester.get("email", ""),
            indexNumber=requester.get("indexNumber"),
            userId=requester_id,
        ).model_dump()
        res = database[PROJECTS].update_one(
            {"_id": project_id, "teamMembers.userId": {"$ne": requester_id}},
            {"$push": {"teamMembers": member}, "$set": {"updatedAt": reviewed_at}},
        )
        if res.matched_count == 0:
            # Project removed, or the requester joined, since the re-read.
            current = database[PROJECTS].find_one({"_id": project_id}, {"teamMembers": 1})
            if current is None:
                _revert_acceptance(database, req, reviewed_at)
                raise NotFoundError("Project not found")
            logger.info("requester_already_on_roster", project_id=str(project_id), user_id=requester_id)
            return
    except ValidationError as exc:
        _revert_acceptance(database, req, reviewed_at)
        raise ValidationFailedError("Requester profile is incomplete") from exc
    except PyMongoError as exc:
        logger.error("roster_update_failed", project_id=str(project_id), error=str(exc))
        _revert_acceptance(database, req, reviewed_at)
        raise StoreError("Failed to add requester to the project team") from exc

    logger.info("team_member_added", project_id=str(project_id), user_id=requester_id)


def _revert_acceptance(database: Database, req: dict, reviewed_at: datetime) -> None:
    """Put the acceptance stamped ``reviewed_at`` back to pending."""
    guard = {"status": "accepted", "reviewedAt": reviewed_at}
    try:
        reverted = compare_and_set(
            database,
            COLLABORATION_REQUESTS,
            req["_id"],
            guard,
            {
                "status": "pending",
                "reviewedBy": None,
                "reviewerNote": None,
                "reviewedAt": None,
                "updatedAt": now(),
            },
        )
    except DuplicateKeyError:
        # A newer pending request for the same pair exists and supersedes this one.
        database[COLLABORATION_REQUESTS].delete_one({"_id": req["_id"], **guard})
        logger.warning("acceptance_discarded", request_id=str(req["_id"]))
        return

    if reverted:
        logger.warning("acceptance_rolled_back", request_id=str(req["_id"]))
    else:
        logger.warning("acceptance_rollback_skipped", request_id=str(req["_id"]))


# --------- Cancel ---------

def cancel_request(database: Database, project_id: ObjectId, request_id: ObjectId, caller_id: ObjectId) -> None:
    req = _load_request(database, project_id, request_id, "Request not found")
    if req["requesterId"] != caller_id:
        raise ForbiddenError("Only the requester can cancel this request")
    if req.get("status") != "pending":
        raise ConflictError("Can only cancel pending requests")

    res = database[COLLABORATION_REQUESTS].delete_one({"_id": req["_id"], "status": "pending"})
    if res.deleted_count == 0:
        raise ConflictError("Can only cancel pending requests")
    logger.info("collaboration_request_cancelled", request_id=str(request_id), project_id=str(project_id))


# --------- Queries ---------

def request_status(database: Database, project_id: ObjectId, caller_id: ObjectId) -> Dict[str, Any]:
    req = database[COLLABORATION_REQUESTS].find_one(
        {"projectId": project_id, "requesterId": caller_id},
        sort=[("createdAt", DESCENDING)],
    )
    if not req:
        return {"hasRequest": False, "request": None}
    fields = ("_id", "status", "message", "skills", "reviewerNote", "reviewedAt", "createdAt")
    return {"hasRequest": True, "request": serialize({k: req.get(k) for k in fields})}


def list_project_requests(database: Database, project_id: ObjectId, caller_id: ObjectId) -> List[dict]:
    project = _load_project(database, project_id)
    if not is_owner(project, caller_id):
        raise ForbiddenError("Only project owner can view collaboration requests")

    docs = list(
        database[COLLABORATION_REQUESTS].find({"projectId": project_id}).sort("createdAt", DESCENDING)
    )
    return serialize(_join_users(database, docs))


def pending_for_owner(database: Database, owner_id: ObjectId) -> Dict[str, Any]:
    projects = {p["_id"]: p for p in database[PROJECTS].find({"userId": owner_id}, {"title": 1})}
    if not projects:
        return {"count": 0, "requests": []}

    docs = database[COLLABORATION_REQUESTS].find(
        {"projectId": {"$in": list(projects)}, "status": "pending"},
        {"projectId": 1, "requesterId": 1, "message": 1, "skills": 1, "createdAt": 1},
    ).sort("createdAt", DESCENDING)

    items = []
    for d in _join_users(database, list(docs), ("name", "profilePicture")):
        d["project"] = {"title": projects[d["projectId"]].get("title")}
        items.append(d)
    return {"count": len(items), "requests": serialize(items)}
