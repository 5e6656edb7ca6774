"""
Badge evaluation engine.

Each check gathers the facts its rule needs and, when the rule holds, calls
``award_badge``. Awards are permanent: the (userId, badgeType) unique index
turns a second concurrent award into an ``ALREADY_EXISTS`` insert outcome.
"""
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from database import PROJECTS, USER_BADGES, USERS, InsertResult, insert_unique, now, serialize
from errors import ValidationFailedError
from logging_config import get_logger
from schemas import BadgeDefinition, BadgeMetadata, BadgeType, UserBadge

logger = get_logger(__name__)

POPULAR_VIEWS = 100
LOVED_LIKES = 10
TEAM_PLAYER_PROJECTS = 5
EARLY_ADOPTER_LIMIT = 100

BADGE_DEFINITIONS: Dict[str, BadgeDefinition] = {
    d.type: d
    for d in (
        BadgeDefinition(
            type='first-project',
            name='Pioneer',
            description='Uploaded your first project',
            icon='Rocket',
            colorScheme='blue',
            criteria='Upload your first project to the platform',
        ),
        BadgeDefinition(
            type='popular-project',
            name='Trending',
            description='One of your projects reached 100+ views',
            icon='TrendingUp',
            colorScheme='gold',
            criteria='Get 100+ views on any project',
        ),
        BadgeDefinition(
            type='loved-creator',
            name='Beloved',
            description='Received 10+ likes across all projects',
            icon='Heart',
            colorScheme='rose',
            criteria='Receive 10+ total likes on your projects',
        ),
        BadgeDefinition(
            type='team-player',
            name='Team Player',
            description='Contributed to 5 different projects',
            icon='Users',
            colorScheme='green',
            criteria='Be listed as a team member on 5 different projects',
        ),
        BadgeDefinition(
            type='early-adopter',
            name='Early Adopter',
            description='One of the first 100 users on the platform',
            icon='Star',
            colorScheme='purple',
            criteria='Be among the first 100 registered users',
        ),
    )
}

PUBLISHED = {"isDraft": {"$ne": True}}


def get_badge_definition(badge_type: str) -> Optional[BadgeDefinition]:
    return BADGE_DEFINITIONS.get(badge_type)


def user_has_badge(database: Database, user_id: ObjectId, badge_type: BadgeType) -> bool:
    return database[USER_BADGES].find_one({"userId": user_id, "badgeType": badge_type}) is not None


def award_badge(
    database: Database,
    user_id: ObjectId,
    badge_type: BadgeType,
    metadata: Optional[dict] = None,
) -> bool:
    """Award ``badge_type`` once. Returns True only for the call that inserted it."""
    if badge_type not in BADGE_DEFINITIONS:
        raise ValidationFailedError(f"Unknown badge type: {badge_type}", "badgeType")
    if user_has_badge(database, user_id, badge_type):
        return False

    badge = UserBadge(
        userId=user_id,
        badgeType=badge_type,
        awardedAt=now(),
        metadata=BadgeMetadata(**metadata) if metadata else None,
    ).model_dump(exclude_none=True)

    result: InsertResult = insert_unique(database, USER_BADGES, badge)
    if result.inserted:
        logger.info("badge_awarded", user_id=str(user_id), badge_type=badge_type, metadata=metadata)
    return result.inserted


# --------- Per-badge checks ---------

def check_first_project(database: Database, user_id: ObjectId, project_id: str) -> Optional[str]:
    published = database[PROJECTS].count_documents({"userId": user_id, **PUBLISHED})
    if published == 1 and award_badge(database, user_id, 'first-project', {"projectId": str(project_id)}):
        return 'first-project'
    return None


def check_popular_project(
    database: Database,
    user_id: ObjectId,
    project_id: str,
    current_views: int,
) -> Optional[str]:
    """``current_views`` must be the post-increment value of the triggering view."""
    if current_views >= POPULAR_VIEWS and award_badge(
        database, user_id, 'popular-project', {"projectId": str(project_id)}
    ):
        return 'popular-project'
    return None


def check_loved_creator(database: Database, user_id: ObjectId) -> Optional[str]:
    rows = list(database[PROJECTS].aggregate([
        {"$match": {"userId": user_id}},
        {"$group": {"_id": None, "totalLikes": {"$sum": {"$ifNull": ["$likes", 0]}}}},
    ]))
    total_likes = rows[0]["totalLikes"] if rows else 0
    if total_likes >= LOVED_LIKES and award_badge(
        database, user_id, 'loved-creator', {"totalLikes": total_likes}
    ):
        return 'loved-creator'
    return None


def check_team_player(database: Database, user_id: ObjectId) -> Optional[str]:
    contributions = database[PROJECTS].count_documents({"teamMembers.userId": str(user_id), **PUBLISHED})
    if contributions >= TEAM_PLAYER_PROJECTS and award_badge(
        database, user_id, 'team-player', {"contributionCount": contributions}
    ):
        return 'team-player'
    return None


def check_early_adopter(database: Database, user_id: ObjectId) -> Optional[str]:
    user = database[USERS].find_one({"_id": user_id}, {"createdAt": 1})
    if not user or user.get("createdAt") is None:
        return None
    # Inclusive count: users sharing this createdAt all rank at the same number.
    user_number = database[USERS].count_documents({"createdAt": {"$lte": user["createdAt"]}})
    if user_number <= EARLY_ADOPTER_LIMIT and award_badge(
        database, user_id, 'early-adopter', {"userNumber": user_number}
    ):
        return 'early-adopter'
    return None


# --------- Batch ---------

def check_all_badges(database: Database, user_id: ObjectId) -> List[str]:
    """Evaluate every rule for ``user_id``; returns the types newly awarded by this call."""
    awarded = []

    def collect(result):
        if result:
            awarded.append(result)

    collect(check_early_adopter(database, user_id))

    first = database[PROJECTS].find_one({"userId": user_id, **PUBLISHED}, {"_id": 1})
    if first:
        collect(check_first_project(database, user_id, str(first["_id"])))

    collect(check_loved_creator(database, user_id))
    collect(check_team_player(database, user_id))

    popular = database[PROJECTS].find_one(
        {"userId": user_id, "views": {"$gte": POPULAR_VIEWS}}, {"_id": 1, "views": 1}
    )
    if popular:
        collect(check_popular_project(database, user_id, str(popular["_id"]), popular.get("views", 0)))

    if awarded:
        logger.info("badge_batch_awarded", user_id=str(user_id), badges=awarded)
    return awarded


def list_user_badges(database: Database, user_id: ObjectId) -> List[dict]:
    """Stored badges, newest first, merged with their static definitions."""
    badges = database[USER_BADGES].find({"userId": user_id}).sort("awardedAt", DESCENDING)
    out = []
    for badge in badges:
        definition = get_badge_definition(badge["badgeType"])
        out.append({
            "id": str(badge["_id"]),
            "badgeType": badge["badgeType"],
            "awardedAt": badge["awardedAt"],
            "metadata": serialize(badge.get("metadata")),
            "definition": definition.model_dump() if definition else None,
        })
    return out
