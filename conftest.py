import copy
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from skinjournal import ai_gateway, server
from skinjournal.ai_gateway import get_fallback_progress_analysis, get_fallback_skin_analysis


# ==================== IN-MEMORY MONGO DOUBLE ====================
# Implements just the motor calls the API makes, with equality filters.

def _matches(doc, query):
    return all(doc.get(key) == value for key, value in query.items())


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        self.docs = sorted(
            self.docs,
            key=lambda d: (d.get(key) is not None, d.get(key)),
            reverse=direction < 0
        )
        return self

    async def to_list(self, length=None):
        docs = [copy.deepcopy(d) for d in self.docs]
        return docs[:length] if length else docs


class FakeCollection:
    def __init__(self):
        self.docs = []

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        return FakeCursor([d for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query):
        return len([d for d in self.docs if _matches(d, query)])

    async def insert_one(self, doc):
        doc.setdefault('_id', uuid.uuid4().hex)
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc['_id'])

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get('$set', {})))
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = dict(query)
            doc.update(copy.deepcopy(update.get('$setOnInsert', {})))
            doc.update(copy.deepcopy(update.get('$set', {})))
            doc['_id'] = uuid.uuid4().hex
            self.docs.append(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc['_id'])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query):
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, query)]
        return SimpleNamespace(deleted_count=before - len(self.docs))


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        return self._collections.setdefault(name, FakeCollection())

    def __getitem__(self, name):
        return getattr(self, name)


# ==================== FIXTURES ====================

@pytest.fixture
def fake_db(monkeypatch):
    database = FakeDatabase()
    monkeypatch.setattr(server, 'db', database)
    return database


@pytest.fixture
def ai_analysis(monkeypatch):
    """Replaces the AI gateway; set .return_value / .side_effect per test."""
    mock = AsyncMock(side_effect=lambda image, has_history: get_fallback_progress_analysis(has_history))
    monkeypatch.setattr(server, 'analyze_progress_photo', mock)
    return mock


@pytest.fixture
def offline_gateway(monkeypatch):
    """No OpenAI client, so every gateway call takes its fallback path."""
    monkeypatch.setattr(ai_gateway, 'openai_client', None)


@pytest.fixture
def skin_analysis(monkeypatch):
    """Replaces the skin scan call; set .return_value per test."""
    mock = AsyncMock(side_effect=lambda image: get_fallback_skin_analysis())
    monkeypatch.setattr(server, 'analyze_skin_image', mock)
    return mock


@pytest.fixture
def client(fake_db, ai_analysis, skin_analysis, offline_gateway):
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    response = client.post("/api/auth/register", json={
        "email": "journal_user@test.com",
        "password": "testpass123",
        "name": "Journal User"
    })
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
