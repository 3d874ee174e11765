"""
Discovery: loading the candidate stack for a viewer.

Session state (who was swiped since the stack was loaded) lives in an
explicit ``DiscoverySession`` owned by the caller, never in module globals.
"""

from typing import Iterable, List, Optional, Set
import random

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from classcrush.config import settings
from classcrush.core.errors import InvalidInput, RateLimited, SchemaMismatch, Unavailable
from classcrush.db.redis import SwipeLimiter
from classcrush.db.store import RecordStore
from classcrush.models.user import UserProfile
from classcrush.services.candidate_filter import filter_candidates
from classcrush.services.match_engine import USERS, MatchEngine


logger = structlog.get_logger(__name__)


class DiscoverySession:
    """Ids swiped during one discovery session."""

    def __init__(self, session_swiped: Optional[Iterable[str]] = None):
        self.session_swiped: Set[str] = {uid for uid in (session_swiped or ()) if uid}

    def mark_swiped(self, user_id: str) -> None:
        self.session_swiped.add(user_id)

    def remaining(self, candidates: Iterable[UserProfile]) -> List[UserProfile]:
        return [c for c in candidates if c.id not in self.session_swiped]


class DiscoveryService:
    """Builds a viewer's candidate stack from the user pool."""

    def __init__(
        self,
        store: RecordStore,
        engine: MatchEngine,
        limiter: Optional[SwipeLimiter] = None,
        max_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.engine = engine
        self.limiter = limiter
        self.max_attempts = max_attempts or settings.DISCOVER_MAX_ATTEMPTS
        self.retry_base_seconds = (
            settings.DISCOVER_RETRY_BASE_SECONDS if retry_base_seconds is None else retry_base_seconds
        )
        self.rng = rng

    async def load_candidates(
        self, viewer_id: str, session: Optional[DiscoverySession] = None
    ) -> List[UserProfile]:
        """
        Eligible candidates for ``viewer_id``, minus anyone swiped this session.

        Raises NotFound for an unknown viewer, InvalidInput for an incomplete
        profile and RateLimited once today's swipes are used up. Unavailable
        is retried with a linearly growing delay before it surfaces.
        """
        if not viewer_id:
            raise InvalidInput("viewer_id is required")
        session = session or DiscoverySession()

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(Unavailable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.retry_base_seconds, increment=self.retry_base_seconds),
            reraise=True,
        ):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.warning("discover_retry", viewer_id=viewer_id, attempt_number=number)
                candidates = await self._load_once(viewer_id)

        remaining = session.remaining(candidates)
        logger.info("candidates_loaded", viewer_id=viewer_id, count=len(remaining))
        return remaining

    async def _load_once(self, viewer_id: str) -> List[UserProfile]:
        viewer = await self.engine.load_profile(viewer_id)
        if not viewer.is_complete():
            raise InvalidInput("Complete your profile before discovering others")

        if self.limiter is not None and await self.limiter.has_reached_limit(viewer_id):
            raise RateLimited("Daily swipe limit reached", detail={"limit": self.limiter.daily_limit})

        swiped = await self.engine.swiped_user_ids(viewer_id)
        pool = await self._scan_pool()
        return filter_candidates(viewer, pool, auxiliary_swiped_ids=swiped, rng=self.rng)

    async def _scan_pool(self) -> List[UserProfile]:
        raw_users = await self.store.get_or_none(USERS) or {}
        pool: List[UserProfile] = []
        for user_id, raw in raw_users.items():
            try:
                pool.append(UserProfile.from_record(user_id, raw))
            except SchemaMismatch as e:
                logger.warning("malformed_profile_skipped", user_id=user_id, error=e.message)
        return pool
