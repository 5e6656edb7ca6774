"""Project lifecycle events that trigger badge checks."""
from typing import List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from badges import POPULAR_VIEWS, check_first_project, check_popular_project, check_team_player
from collaboration import is_owner
from database import PROJECTS, USERS, compare_and_set, now
from errors import ConflictError, ForbiddenError, NotFoundError
from logging_config import get_logger

logger = get_logger(__name__)


def record_view(database: Database, project_id: ObjectId) -> Tuple[dict, Optional[str]]:
    """Count one view and check the owner's popular-project badge.

    The threshold check uses the value returned by the atomic increment, so two
    concurrent views can never both read 99.
    """
    project = database[PROJECTS].find_one_and_update(
        {"_id": project_id},
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if project is None:
        raise NotFoundError("Project not found")

    views = project.get("views", 0)
    owner_id = project.get("userId")
    owner_badge = None
    if owner_id and views >= POPULAR_VIEWS:
        owner_badge = check_popular_project(database, owner_id, str(project_id), views)
    return project, owner_badge


def publish_project(database: Database, project_id: ObjectId, caller_id: ObjectId) -> List[str]:
    """Flip a draft to published; returns badges newly awarded to the owner."""
    project = database[PROJECTS].find_one({"_id": project_id})
    if not project:
        raise NotFoundError("Project not found")
    if not is_owner(project, caller_id):
        raise ForbiddenError("Only project owner can publish this project")

    if not compare_and_set(database, PROJECTS, project_id, {"isDraft": True}, {"isDraft": False, "updatedAt": now()}):
        raise ConflictError("Project is already published")
    logger.info("project_published", project_id=str(project_id))

    new_badges = []
    first = check_first_project(database, project["userId"], str(project_id))
    if first:
        new_badges.append(first)

    for member in project.get("teamMembers") or []:
        uid = member.get("userId")
        if not uid or not ObjectId.is_valid(uid):
            continue
        member_id = ObjectId(uid)
        if database[USERS].find_one({"_id": member_id}, {"_id": 1}) is None:
            continue
        check_team_player(database, member_id)
    return new_badges
