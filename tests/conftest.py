"""Shared pytest fixtures.

Provides an in-memory MongoDB (mongomock) carrying the same unique indexes
as production, plus small document builders for users and projects.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import PROJECTS, USERS, ensure_indexes, get_db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def mongo():
    database = mongomock.MongoClient()["showcase_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def make_user(mongo):
    counter = {"n": 0}

    def _make(**overrides: Any) -> ObjectId:
        counter["n"] += 1
        n = counter["n"]
        doc = {
            "name": f"Student {n}",
            "email": f"student{n}@uni.ac.lk",
            "indexNumber": f"2022IS{n:03d}",
            "createdAt": datetime(2024, 1, 1) + timedelta(minutes=n),
            "updatedAt": datetime(2024, 1, 1) + timedelta(minutes=n),
        }
        doc.update(overrides)
        return mongo[USERS].insert_one(doc).inserted_id

    return _make


@pytest.fixture
def make_project(mongo):
    def _make(owner_id: ObjectId, **overrides: Any) -> ObjectId:
        doc = {
            "title": "Campus Navigation App",
            "userId": owner_id,
            "status": "in-progress",
            "teamMembers": [],
            "views": 0,
            "likes": 0,
            "isDraft": False,
            "createdAt": utcnow(),
            "updatedAt": utcnow(),
        }
        doc.update(overrides)
        return mongo[PROJECTS].insert_one(doc).inserted_id

    return _make


@pytest.fixture
def client(mongo):
    from main import app

    app.dependency_overrides[get_db] = lambda: mongo
    yield TestClient(app)
    app.dependency_overrides.clear()
