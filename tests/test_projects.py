"""Tests for badge triggers on project views and publishing."""

import pytest
from bson import ObjectId

from database import PROJECTS, USER_BADGES
from errors import ConflictError, ForbiddenError, NotFoundError
from projects import publish_project, record_view


def _member(user_id):
    return {"name": "Member", "email": "member@uni.ac.lk", "role": "Dev", "userId": str(user_id)}


class TestRecordView:
    def test_increments_views(self, mongo, make_user, make_project):
        pid = make_project(make_user(), views=3)

        project, badge = record_view(mongo, pid)

        assert project["views"] == 4
        assert badge is None

    def test_popular_project_awarded_once_at_threshold(self, mongo, make_user, make_project):
        owner = make_user()
        pid = make_project(owner, views=98)

        assert record_view(mongo, pid)[1] is None
        project, badge = record_view(mongo, pid)
        assert project["views"] == 100
        assert badge == "popular-project"

        mongo[PROJECTS].update_one({"_id": pid}, {"$set": {"views": 149}})
        project, badge = record_view(mongo, pid)
        assert project["views"] == 150
        assert badge is None

        awarded = list(mongo[USER_BADGES].find({"userId": owner}))
        assert len(awarded) == 1
        assert awarded[0]["metadata"] == {"projectId": str(pid)}

    def test_ownerless_project_skips_badge(self, mongo, make_user, make_project):
        pid = make_project(make_user(), views=99)
        mongo[PROJECTS].update_one({"_id": pid}, {"$unset": {"userId": ""}})

        project, badge = record_view(mongo, pid)

        assert project["views"] == 100
        assert badge is None
        assert mongo[USER_BADGES].count_documents({}) == 0

    def test_missing_project(self, mongo):
        with pytest.raises(NotFoundError):
            record_view(mongo, ObjectId())


class TestPublishProject:
    def test_publish_awards_first_project_and_checks_team(self, mongo, make_user, make_project):
        owner, member, outsider = make_user(), make_user(), make_user()
        for _ in range(4):
            make_project(outsider, teamMembers=[_member(member)])
        team = [_member(member), {"name": "Guest", "email": "guest@uni.ac.lk", "role": "Dev"},
                {"name": "Ghost", "email": "ghost@uni.ac.lk", "role": "Dev", "userId": str(ObjectId())}]
        pid = make_project(owner, isDraft=True, teamMembers=team)

        new_badges = publish_project(mongo, pid, owner)

        assert new_badges == ["first-project"]
        assert mongo[PROJECTS].find_one({"_id": pid})["isDraft"] is False
        member_badge = mongo[USER_BADGES].find_one({"userId": member})
        assert member_badge["badgeType"] == "team-player"
        assert member_badge["metadata"] == {"contributionCount": 5}

    def test_publishing_twice_conflicts(self, mongo, make_user, make_project):
        owner = make_user()
        pid = make_project(owner, isDraft=True)
        publish_project(mongo, pid, owner)

        with pytest.raises(ConflictError):
            publish_project(mongo, pid, owner)

    def test_only_owner_publishes(self, mongo, make_user, make_project):
        pid = make_project(make_user(), isDraft=True)
        with pytest.raises(ForbiddenError):
            publish_project(mongo, pid, make_user())

    def test_second_published_project_earns_no_first_project(self, mongo, make_user, make_project):
        owner = make_user()
        make_project(owner)
        pid = make_project(owner, isDraft=True)

        assert publish_project(mongo, pid, owner) == []
