"""
Top-level pytest configuration.

Provides:
  - An InMemoryRecordStore per test, seeded through ``seed_user``.
  - A FakeRedis client so the daily swipe limiter runs without Upstash.
  - Service fixtures wired to the same store.
  - An async_client fixture wired to the FastAPI app with the identity
    provider replaced by a fixed current user.
"""

from __future__ import annotations

import os
from typing import AsyncGenerator, Dict, Optional

# ---------------------------------------------------------------------------
# Environment must be set BEFORE any classcrush module is imported so that
# pydantic-settings picks up the test values.
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("FIREBASE_PROJECT_ID", "")
os.environ.setdefault("FIREBASE_CLIENT_EMAIL", "")
os.environ.setdefault("UPSTASH_REDIS_URL", "")
os.environ.setdefault("UPSTASH_REDIS_TOKEN", "")
os.environ.setdefault("CLOUDINARY_CLOUD_NAME", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from classcrush.db.redis import SwipeLimiter
from classcrush.db.store import InMemoryRecordStore
from classcrush.models.base import now_millis
from classcrush.models.user import BlobImage, UserProfile
from classcrush.services.chat_service import ChatService
from classcrush.services.match_engine import MatchEngine
from classcrush.services.media import BlobStore


class FakeRedis:
    """The slice of the upstash_redis client the limiter uses."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def setex(self, key: str, seconds: int, value: str) -> bool:
        self.values[key] = str(value)
        self.ttls[key] = seconds
        return True

    def incr(self, key: str) -> int:
        count = int(self.values.get(key, "0")) + 1
        self.values[key] = str(count)
        return count

    def ping(self) -> str:
        return "PONG"


class FakeBlobStore(BlobStore):
    """Records uploads and deletions instead of calling Cloudinary."""

    def __init__(self):
        self.uploads = []
        self.deleted = []

    async def upload(self, owner_id, image_bytes, variant):
        self.uploads.append((owner_id, variant))
        n = len(self.uploads)
        return BlobImage(public_id=f"{owner_id}/{n}", secure_url=f"https://img/{owner_id}/{n}.jpg")

    async def delete(self, public_id):
        self.deleted.append(public_id)
        return True


def make_profile(user_id: str, **overrides) -> UserProfile:
    """A complete, recently active profile at MIT."""
    fields = dict(
        id=user_id,
        name=user_id.capitalize(),
        email=f"{user_id}@example.edu",
        age=21,
        gender="FEMALE",
        interested_in="ALL",
        college="MIT",
        department="CS",
        year="3",
        profile_image_url=f"https://img.example/{user_id}.jpg",
        profile_image_public_id=f"classcrush/profile_images/{user_id}",
        last_seen=now_millis(),
    )
    fields.update(overrides)
    return UserProfile(**fields)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def seed_user(store):
    """Write a profile into the store and return it."""

    async def _seed(user_id: str, **overrides) -> UserProfile:
        profile = make_profile(user_id, **overrides)
        await store.set(f"users/{user_id}", profile.to_record())
        return profile

    return _seed


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def limiter(fake_redis) -> SwipeLimiter:
    return SwipeLimiter(fake_redis, daily_limit=50, today=lambda: "2026-10-19")


@pytest.fixture
def engine(store) -> MatchEngine:
    return MatchEngine(store)


@pytest.fixture
def chat(store) -> ChatService:
    return ChatService(store)


# ---------------------------------------------------------------------------
# API client. The lifespan is not run; app.state is filled in directly.
# ---------------------------------------------------------------------------
CURRENT_USER = "alice"


@pytest_asyncio.fixture
async def async_client(store, limiter) -> AsyncGenerator[AsyncClient, None]:
    from classcrush.core.dependencies import get_current_user_id, get_swipe_limiter
    from classcrush.main import app

    app.state.store = store
    app.state.identity = None
    app.state.blob_store = None
    app.dependency_overrides[get_current_user_id] = lambda: CURRENT_USER
    app.dependency_overrides[get_swipe_limiter] = lambda: limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
