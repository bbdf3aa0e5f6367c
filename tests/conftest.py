"""Pytest configuration and shared fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from examdesk.exams.dependencies import get_current_user_id, get_db
from examdesk.main import app
from factories import STUDENT_ID


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    return AsyncMongoMockClient()["examdesk_test"]


@pytest.fixture
async def client(db):
    """API client authenticated as ``STUDENT_ID``."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user_id] = lambda: STUDENT_ID
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def seed_ledger(db):
    """Insert a ledger document for ``STUDENT_ID`` with the given records."""

    async def _seed(records, counters=None, student_id=STUDENT_ID):
        doc = {"student_id": student_id, "results": list(records)}
        if counters is not None:
            doc["attempt_counters"] = counters
        await db.student_exam_results.insert_one(doc)
        return doc

    return _seed
