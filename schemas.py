"""
Database Schemas for the Campus Showcase collaboration core

Each Pydantic model describes a MongoDB document shape. Collection names are
defined in ``database.py`` (users, projects, projectCollaborationRequests,
userBadges). Id references are stored as ObjectId, except team-member
``userId`` which the project editor stores as a string.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

RequestStatus = Literal['pending', 'accepted', 'rejected']
ProjectStatus = Literal['completed', 'in-progress', 'archived']
BadgeType = Literal['first-project', 'popular-project', 'loved-creator', 'team-player', 'early-adopter']
BadgeColorScheme = Literal['gold', 'blue', 'rose', 'green', 'purple']

COLLABORATOR_ROLE = 'Collaborator'

# ------------------ Collaboration ------------------

class CollaborationRequest(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    projectId: ObjectId
    requesterId: ObjectId
    message: str = Field(..., min_length=20, max_length=1000)
    skills: List[str] = Field(..., min_length=1, max_length=20)
    status: RequestStatus = 'pending'
    reviewedBy: Optional[ObjectId] = None
    reviewerNote: Optional[str] = None
    reviewedAt: Optional[datetime] = None
    createdAt: datetime
    updatedAt: datetime


class TeamMember(BaseModel):
    name: str
    email: EmailStr
    role: str = COLLABORATOR_ROLE
    indexNumber: Optional[str] = None
    userId: Optional[str] = None  # registered account, as string

# ------------------ Badges ------------------

class BadgeMetadata(BaseModel):
    projectId: Optional[str] = None  # first-project, popular-project
    totalLikes: Optional[int] = None  # loved-creator
    contributionCount: Optional[int] = None  # team-player
    userNumber: Optional[int] = None  # early-adopter


class UserBadge(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    userId: ObjectId
    badgeType: BadgeType
    awardedAt: datetime
    metadata: Optional[BadgeMetadata] = None


class BadgeDefinition(BaseModel):
    type: BadgeType
    name: str
    description: str
    icon: str  # Lucide icon name
    colorScheme: BadgeColorScheme
    criteria: str
