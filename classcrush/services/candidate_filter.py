"""
Candidate Filter: who a viewer may be shown during discovery.

A candidate is excluded for the first rule it breaks, in this order:

  SELF                 the viewer themself
  ALREADY_SWIPED       liked, disliked, or present in the swipe log
  BLOCKED              blocked in either direction
  ALREADY_MATCHED      matched in either direction
  INCOMPLETE_PROFILE   no primary image
  INACTIVE             last seen more than N days ago (lastSeen == 0 is a new user)
  AFFILIATION_MISMATCH colleges differ and neither contains the other
  PREFERENCE_MISMATCH  viewer prefers a gender the candidate is not

Preference is one-sided: the candidate's own preference is never consulted.
Survivors are shuffled so repeated sessions do not replay a fixed order.
"""

from collections import Counter
from typing import Iterable, List, Optional, Set
import enum
import random

import structlog

from classcrush.config import settings
from classcrush.models.base import now_millis
from classcrush.models.user import Preference, UserProfile


logger = structlog.get_logger(__name__)

DAY_MILLIS = 24 * 60 * 60 * 1000


class ExclusionReason(str, enum.Enum):
    SELF = "self"
    ALREADY_SWIPED = "already_swiped"
    BLOCKED = "blocked"
    ALREADY_MATCHED = "already_matched"
    INCOMPLETE_PROFILE = "incomplete_profile"
    INACTIVE = "inactive"
    AFFILIATION_MISMATCH = "affiliation_mismatch"
    PREFERENCE_MISMATCH = "preference_mismatch"


def is_affiliation_match(first: str, second: str) -> bool:
    """Free-text college comparison, deliberately permissive."""
    a = (first or "").strip().casefold()
    b = (second or "").strip().casefold()
    # An empty string is a substring of anything, so a blank college matches.
    return a in b or b in a


def is_preferred_gender(viewer: UserProfile, candidate: UserProfile) -> bool:
    if viewer.interested_in == Preference.ALL:
        return True
    return candidate.gender.value == viewer.interested_in.value


def exclusion_reason(
    viewer: UserProfile,
    candidate: UserProfile,
    auxiliary_swiped_ids: Optional[Set[str]] = None,
    now: Optional[int] = None,
    inactive_after_days: Optional[int] = None,
) -> Optional[ExclusionReason]:
    """First rule ``candidate`` breaks for ``viewer``, or None if eligible."""
    now = now_millis() if now is None else now
    days = settings.INACTIVE_AFTER_DAYS if inactive_after_days is None else inactive_after_days

    if candidate.id == viewer.id:
        return ExclusionReason.SELF
    if candidate.id in viewer.swiped_users or candidate.id in (auxiliary_swiped_ids or ()):
        return ExclusionReason.ALREADY_SWIPED
    if candidate.id in viewer.blocked_users or viewer.id in candidate.blocked_users:
        return ExclusionReason.BLOCKED
    if candidate.id in viewer.matched_users or viewer.id in candidate.matched_users:
        return ExclusionReason.ALREADY_MATCHED
    if not candidate.profile_image_public_id:
        return ExclusionReason.INCOMPLETE_PROFILE
    if candidate.last_seen != 0 and now - candidate.last_seen > days * DAY_MILLIS:
        return ExclusionReason.INACTIVE
    if not is_affiliation_match(viewer.college, candidate.college):
        return ExclusionReason.AFFILIATION_MISMATCH
    if not is_preferred_gender(viewer, candidate):
        return ExclusionReason.PREFERENCE_MISMATCH
    return None


def filter_candidates(
    viewer: UserProfile,
    pool: Iterable[UserProfile],
    auxiliary_swiped_ids: Optional[Set[str]] = None,
    now: Optional[int] = None,
    rng: Optional[random.Random] = None,
    inactive_after_days: Optional[int] = None,
) -> List[UserProfile]:
    """Eligible candidates for ``viewer``, in random order."""
    now = now_millis() if now is None else now
    swiped = set(auxiliary_swiped_ids or ())
    eligible: List[UserProfile] = []
    tally: Counter = Counter()
    total = 0

    for candidate in pool:
        total += 1
        reason = exclusion_reason(viewer, candidate, swiped, now, inactive_after_days)
        if reason is None:
            eligible.append(candidate)
        else:
            tally[reason.value] += 1

    (rng or random).shuffle(eligible)

    logger.debug(
        "candidates_filtered",
        viewer_id=viewer.id,
        pool_size=total,
        eligible=len(eligible),
        excluded=dict(tally),
    )
    if not eligible:
        logger.info("candidate_pool_exhausted", viewer_id=viewer.id, pool_size=total)
    return eligible


def compatibility_percentage(first: UserProfile, second: UserProfile) -> int:
    """Rough 0-100 affinity shown when a mutual like lands."""
    points = 0
    if first.department == second.department:
        points += 30
    if first.year == second.year:
        points += 20
    if first.college == second.college:
        points += 15

    age_gap = abs(first.age - second.age)
    if age_gap <= 2:
        points += 10
    elif age_gap <= 5:
        points += 5

    shared_words = set(first.bio.lower().split()) & set(second.bio.lower().split())
    points += min(25, len(shared_words) * 5)
    return min(100, points)
