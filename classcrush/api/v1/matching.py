from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from classcrush.config import settings
from classcrush.core.dependencies import (
    get_current_user_id,
    get_discovery_service,
    get_match_engine,
    get_swipe_limiter,
)
from classcrush.core.errors import NotFound, RateLimited
from classcrush.db.redis import SwipeLimiter
from classcrush.models.match import SwipeDirection
from classcrush.models.user import UserProfile
from classcrush.services.candidate_filter import compatibility_percentage
from classcrush.services.chat_identity import chat_key_of
from classcrush.services.discovery import DiscoverySession, DiscoveryService
from classcrush.services.match_engine import MatchEngine
from classcrush.schemas.match import (
    DiscoverProfile,
    DiscoverResponse,
    MatchListResponse,
    MatchWithProfile,
    ReportCreate,
    ReportResponse,
    SwipeResponse,
    UnmatchResponse,
)


router = APIRouter(prefix="/matching", tags=["Matching"])


def to_discover_profile(profile: UserProfile) -> DiscoverProfile:
    return DiscoverProfile(
        user_id=profile.id,
        name=profile.name,
        age=profile.age,
        gender=profile.gender.value,
        college=profile.college,
        department=profile.department,
        year=profile.year,
        bio=profile.bio,
        profile_image_url=profile.profile_image_url,
        additional_images=[img.secure_url for img in profile.additional_images],
        is_online=profile.is_online,
    )


async def check_swipe_limit(limiter: Optional[SwipeLimiter], user_id: str) -> None:
    if limiter is not None and await limiter.has_reached_limit(user_id):
        raise RateLimited("Daily swipe limit reached. Come back tomorrow.")


async def consume_swipe(limiter: Optional[SwipeLimiter], user_id: str) -> int:
    """Count one accepted swipe against today's limit and return what is left."""
    if limiter is None:
        return settings.SWIPE_LIMIT_PER_DAY
    _, remaining = await limiter.consume(user_id)
    return remaining


@router.get("/discover", response_model=DiscoverResponse)
async def discover_profiles(
    exclude: List[str] = Query([]),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: str = Depends(get_current_user_id),
    discovery: DiscoveryService = Depends(get_discovery_service),
    limiter: Optional[SwipeLimiter] = Depends(get_swipe_limiter),
):
    """
    Get profiles to swipe on (discover deck).
    ``exclude`` carries the ids already swiped in the client's current session.
    """
    candidates = await discovery.load_candidates(current_user_id, DiscoverySession(exclude))
    remaining = (
        await limiter.remaining(current_user_id) if limiter is not None else settings.SWIPE_LIMIT_PER_DAY
    )
    return DiscoverResponse(
        profiles=[to_discover_profile(c) for c in candidates[:limit]],
        remaining_swipes=remaining,
    )


@router.post("/like/{target_user_id}", response_model=SwipeResponse)
async def like(
    target_user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
    limiter: Optional[SwipeLimiter] = Depends(get_swipe_limiter),
):
    """Like a user. A mutual like creates the match."""
    await check_swipe_limit(limiter, current_user_id)
    is_match = await engine.like_user(current_user_id, target_user_id)
    remaining = await consume_swipe(limiter, current_user_id)

    compatibility = None
    if is_match:
        me = await engine.load_profile(current_user_id)
        them = await engine.load_profile(target_user_id)
        compatibility = compatibility_percentage(me, them)

    return SwipeResponse(
        target_user_id=target_user_id,
        direction=SwipeDirection.LIKE.value,
        is_match=is_match,
        compatibility=compatibility,
        remaining_swipes=remaining,
    )


@router.post("/dislike/{target_user_id}", response_model=SwipeResponse)
async def dislike(
    target_user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
    limiter: Optional[SwipeLimiter] = Depends(get_swipe_limiter),
):
    """Pass on a user."""
    await check_swipe_limit(limiter, current_user_id)
    await engine.dislike_user(current_user_id, target_user_id)
    remaining = await consume_swipe(limiter, current_user_id)
    return SwipeResponse(
        target_user_id=target_user_id,
        direction=SwipeDirection.DISLIKE.value,
        remaining_swipes=remaining,
    )


@router.get("/matches", response_model=MatchListResponse)
async def get_matches(
    current_user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
):
    """Get all active matches for current user, newest first."""
    match_list = []
    for match in await engine.list_matches(current_user_id):
        other_user_id = match.other(current_user_id)
        try:
            profile = await engine.load_profile(other_user_id)
        except NotFound:
            continue

        match_list.append(
            MatchWithProfile(
                match_id=match.id,
                chat_key=chat_key_of(current_user_id, other_user_id),
                matched_user_id=other_user_id,
                matched_user_name=profile.name,
                matched_user_photo=profile.profile_image_url or None,
                created_at=match.created_at,
                last_message=match.last_message_preview or "",
                last_message_time=match.last_message_at or 0,
            )
        )

    return MatchListResponse(matches=match_list, total=len(match_list))


@router.delete("/matches/{other_user_id}", response_model=UnmatchResponse)
async def unmatch(
    other_user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
):
    """Unmatch from a user."""
    changed = await engine.unmatch(current_user_id, other_user_id)
    return UnmatchResponse(message="Successfully unmatched.", records_updated=changed)


@router.post("/block/{other_user_id}")
async def block_user(
    other_user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
):
    """Block a user."""
    await engine.block_user(current_user_id, other_user_id)
    return {"message": "User blocked successfully."}


@router.post("/report/{other_user_id}", response_model=ReportResponse)
async def report_user(
    other_user_id: str,
    report: ReportCreate,
    current_user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
):
    """Report a user for review."""
    record = await engine.report_user(current_user_id, other_user_id, report.reason)
    return ReportResponse(report_id=record.id or "", status=record.status.value)
