from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from classcrush.core.errors import Unauthenticated
from classcrush.core.firebase import FirebaseIdentityProvider
from classcrush.db import redis as redis_db
from classcrush.db.redis import SwipeLimiter
from classcrush.db.store import RecordStore
from classcrush.services.chat_service import ChatService
from classcrush.services.discovery import DiscoveryService
from classcrush.services.match_engine import MatchEngine
from classcrush.services.media import BlobStore
from classcrush.services.profile_service import ProfileService


# Security scheme
security = HTTPBearer(auto_error=False)


def get_store(request: Request) -> RecordStore:
    """Record store chosen at startup."""
    return request.app.state.store


def get_identity_provider(request: Request) -> FirebaseIdentityProvider:
    return request.app.state.identity


def get_blob_store(request: Request) -> Optional[BlobStore]:
    return request.app.state.blob_store


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: FirebaseIdentityProvider = Depends(get_identity_provider),
) -> str:
    """
    Dependency to get the current authenticated user.
    Verifies the Firebase ID token and returns its uid.
    """
    if credentials is None:
        raise Unauthenticated("Missing bearer token")

    user_id = await identity.current_user_id(credentials.credentials)
    if user_id is None:
        raise Unauthenticated("Invalid or expired token")
    return user_id


def get_swipe_limiter() -> Optional[SwipeLimiter]:
    """Daily swipe limiter, or None when Redis is not configured."""
    if redis_db.redis_client is None:
        return None
    return SwipeLimiter(redis_db.redis_client)


def get_match_engine(store: RecordStore = Depends(get_store)) -> MatchEngine:
    return MatchEngine(store)


def get_discovery_service(
    store: RecordStore = Depends(get_store),
    engine: MatchEngine = Depends(get_match_engine),
    limiter: Optional[SwipeLimiter] = Depends(get_swipe_limiter),
) -> DiscoveryService:
    return DiscoveryService(store, engine, limiter)


def get_chat_service(
    store: RecordStore = Depends(get_store),
    blob_store: Optional[BlobStore] = Depends(get_blob_store),
) -> ChatService:
    return ChatService(store, blob_store)


def get_profile_service(
    store: RecordStore = Depends(get_store),
    blob_store: Optional[BlobStore] = Depends(get_blob_store),
) -> ProfileService:
    return ProfileService(store, blob_store)
