"""Tests for the data-access primitives."""

from datetime import datetime

import pytest
from bson import ObjectId

from database import (
    COLLABORATION_REQUESTS,
    USER_BADGES,
    InsertOutcome,
    compare_and_set,
    insert_unique,
    oid,
    serialize,
)
from errors import ValidationFailedError


class TestInsertUnique:
    def test_pending_pair_is_unique(self, mongo):
        pair = {"projectId": ObjectId(), "requesterId": ObjectId()}

        first = insert_unique(mongo, COLLABORATION_REQUESTS, {**pair, "status": "pending"})
        second = insert_unique(mongo, COLLABORATION_REQUESTS, {**pair, "status": "pending"})

        assert first.inserted and first.inserted_id is not None
        assert second.outcome is InsertOutcome.ALREADY_EXISTS
        assert second.inserted_id is None

    def test_reviewed_requests_do_not_block_new_pending(self, mongo):
        pair = {"projectId": ObjectId(), "requesterId": ObjectId()}
        insert_unique(mongo, COLLABORATION_REQUESTS, {**pair, "status": "rejected"})
        insert_unique(mongo, COLLABORATION_REQUESTS, {**pair, "status": "accepted"})

        assert insert_unique(mongo, COLLABORATION_REQUESTS, {**pair, "status": "pending"}).inserted

    def test_badge_per_type_is_unique(self, mongo):
        user = ObjectId()
        insert_unique(mongo, USER_BADGES, {"userId": user, "badgeType": "team-player"})

        result = insert_unique(mongo, USER_BADGES, {"userId": user, "badgeType": "team-player"})

        assert not result.inserted
        assert insert_unique(mongo, USER_BADGES, {"userId": user, "badgeType": "loved-creator"}).inserted


class TestCompareAndSet:
    def test_only_first_transition_matches(self, mongo):
        doc_id = mongo[COLLABORATION_REQUESTS].insert_one({"status": "pending"}).inserted_id

        assert compare_and_set(mongo, COLLABORATION_REQUESTS, doc_id, {"status": "pending"}, {"status": "accepted"})
        assert not compare_and_set(mongo, COLLABORATION_REQUESTS, doc_id, {"status": "pending"}, {"status": "rejected"})
        assert mongo[COLLABORATION_REQUESTS].find_one({"_id": doc_id})["status"] == "accepted"

    def test_missing_document(self, mongo):
        assert not compare_and_set(mongo, COLLABORATION_REQUESTS, ObjectId(), {"status": "pending"}, {"status": "accepted"})


class TestHelpers:
    def test_oid_rejects_malformed_ids(self):
        with pytest.raises(ValidationFailedError, match="Invalid project ID"):
            oid("not-an-id", "Invalid project ID")
        with pytest.raises(ValidationFailedError):
            oid(None)

    def test_oid_passes_object_ids_through(self):
        value = ObjectId()
        assert oid(value) is value
        assert oid(str(value)) == value

    def test_serialize_nested_ids(self):
        doc_id, user_id = ObjectId(), ObjectId()
        when = datetime(2024, 5, 1)

        out = serialize({"_id": doc_id, "requester": {"_id": user_id, "tags": [user_id]}, "at": when})

        assert out == {"id": str(doc_id), "requester": {"id": str(user_id), "tags": [str(user_id)]}, "at": when}
