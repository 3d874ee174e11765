"""
Match Engine: swipes, mutual-like detection and match records.

Write policy: an action only ever writes the acting user's own profile.
A mutual like appends the target to the actor's ``matches`` list but not the
other way round; the MatchRecord is the authoritative statement that two
users are matched, and per-user lists are a cached projection of it.

Match creation is guarded twice:
  1. a scan for an existing ACTIVE record for the pair, then
  2. a conditional put on ``match_claims/{pairKey}``, which the store
     resolves atomically when it supports transactions.
Records that still end up duplicated (legacy data, claim-less stores) are
collapsed by pair key whenever matches are listed.
"""

from typing import Callable, Dict, Iterable, List, Optional
import uuid

import structlog

from classcrush.core.errors import InvalidInput
from classcrush.db.store import RecordStore, join_path
from classcrush.models.base import now_millis
from classcrush.models.match import (
    BlockRecord,
    MatchRecord,
    MatchStatus,
    ReportRecord,
    SwipeDirection,
    SwipeRecord,
)
from classcrush.models.user import UserProfile
from classcrush.services.chat_identity import pair_key


logger = structlog.get_logger(__name__)

USERS = "users"
SWIPES = "swipes"
MATCHES = "matches"
MATCH_CLAIMS = "match_claims"
BLOCKS = "blocks"
REPORTS = "reports"


def _require_pair(actor_id: str, target_id: str) -> None:
    if not actor_id or not target_id:
        raise InvalidInput("Both user ids are required")
    if actor_id == target_id:
        raise InvalidInput("Cannot act on yourself")


def dedupe_by_pair(matches: Iterable[MatchRecord]) -> List[MatchRecord]:
    """One record per unordered pair (the most recent), newest first."""
    latest: Dict[str, MatchRecord] = {}
    for match in matches:
        key = pair_key(match.user_a, match.user_b)
        kept = latest.get(key)
        if kept is None or match.created_at > kept.created_at:
            latest[key] = match
    return sorted(latest.values(), key=lambda m: m.created_at, reverse=True)


class MatchEngine:
    """Records swipes and maintains match records against a Record Store."""

    def __init__(self, store: RecordStore, clock: Callable[[], int] = now_millis):
        self.store = store
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Profile helpers
    # ------------------------------------------------------------------ #

    async def load_profile(self, user_id: str) -> UserProfile:
        """Decode ``users/{id}``; raises NotFound when absent."""
        raw = await self.store.get(join_path(USERS, user_id))
        return UserProfile.from_record(user_id, raw)

    async def _append_if_absent(
        self, user_id: str, field: str, current: List[str], value: str
    ) -> bool:
        if value in current:
            return False
        await self.store.set(join_path(USERS, user_id, field), current + [value])
        return True

    async def _remove_if_present(
        self, user_id: str, field: str, current: List[str], value: str
    ) -> bool:
        if value not in current:
            return False
        await self.store.set(
            join_path(USERS, user_id, field), [item for item in current if item != value]
        )
        return True

    async def _decode_matches(self, field: str, user_id: str) -> List[MatchRecord]:
        rows = await self.store.query_by_field(MATCHES, field, user_id)
        return [MatchRecord.from_record(key, raw) for key, raw in rows.items()]

    # ------------------------------------------------------------------ #
    # Swipes
    # ------------------------------------------------------------------ #

    async def record_swipe(
        self, actor_id: str, target_id: str, direction: SwipeDirection
    ) -> SwipeRecord:
        """Append to the swipe log. Calling twice logs twice."""
        _require_pair(actor_id, target_id)
        swipe = SwipeRecord(
            actor_id=actor_id,
            target_id=target_id,
            direction=direction,
            timestamp=self.clock(),
        )
        record = swipe.to_record()
        record.pop("id", None)
        swipe.id = await self.store.push(SWIPES, record)
        logger.debug("swipe_recorded", actor_id=actor_id, target_id=target_id, direction=direction.name)
        return swipe

    async def like_user(self, actor_id: str, target_id: str) -> bool:
        """
        Like ``target_id``. Returns True when the like is mutual.

        A mutual like ensures one ACTIVE MatchRecord exists for the pair and
        adds the target to the actor's matches. The target's profile is only
        read, never written.
        """
        await self.record_swipe(actor_id, target_id, SwipeDirection.LIKE)

        actor = await self.load_profile(actor_id)
        await self._append_if_absent(actor_id, "likedUsers", actor.liked_users, target_id)

        target = await self.load_profile(target_id)
        matched = actor_id in target.liked_users

        log = logger.bind(actor_id=actor_id, target_id=target_id)
        if matched:
            match = await self.ensure_active_match(actor_id, target_id)
            await self._append_if_absent(actor_id, "matches", actor.matched_users, target_id)
            log.info("mutual_like", match_id=match.id)
        else:
            log.info("like_recorded")
        return matched

    async def dislike_user(self, actor_id: str, target_id: str) -> None:
        """Pass on ``target_id``. No match logic runs."""
        await self.record_swipe(actor_id, target_id, SwipeDirection.DISLIKE)
        actor = await self.load_profile(actor_id)
        await self._append_if_absent(actor_id, "dislikedUsers", actor.disliked_users, target_id)
        logger.info("dislike_recorded", actor_id=actor_id, target_id=target_id)

    async def swipe_history(self, user_id: str) -> List[SwipeRecord]:
        """Every swipe ``user_id`` made, newest first."""
        rows = await self.store.query_by_field(SWIPES, "userId", user_id)
        swipes = [SwipeRecord.from_record(key, raw) for key, raw in rows.items()]
        return sorted(swipes, key=lambda s: s.timestamp, reverse=True)

    async def swiped_user_ids(self, user_id: str) -> set:
        """Targets of the user's swipe log, used as a second "already swiped" source."""
        return {swipe.target_id for swipe in await self.swipe_history(user_id)}

    async def like_history(self, user_id: str) -> List[SwipeRecord]:
        return [s for s in await self.swipe_history(user_id) if s.direction == SwipeDirection.LIKE]

    # ------------------------------------------------------------------ #
    # Matches
    # ------------------------------------------------------------------ #

    async def find_existing_active_match(self, user_a: str, user_b: str) -> Optional[MatchRecord]:
        """First ACTIVE record for the pair, searched from both directions."""
        for first, second in ((user_a, user_b), (user_b, user_a)):
            for match in await self._decode_matches("user1Id", first):
                if match.user_b == second and match.is_active:
                    return match
        return None

    async def ensure_active_match(self, user_a: str, user_b: str) -> MatchRecord:
        """Return the pair's ACTIVE match, creating it if there is none."""
        existing = await self.find_existing_active_match(user_a, user_b)
        if existing is not None:
            return existing

        now = self.clock()
        match = MatchRecord(
            id=str(uuid.uuid4()),
            user_a=user_a,
            user_b=user_b,
            created_at=now,
            last_message_at=now,
            status=MatchStatus.ACTIVE,
        )
        # The record is written before it is claimed, so a claim always
        # points at a record that exists.
        await self.store.set(join_path(MATCHES, match.id), match.to_record())

        claim_key = join_path(MATCH_CLAIMS, pair_key(user_a, user_b))
        if not await self.store.create_if_absent(claim_key, match.id):
            holder = await self._claim_holder(claim_key)
            if holder is not None and holder.is_active:
                await self.store.update_fields(
                    join_path(MATCHES, match.id), {"status": MatchStatus.UNMATCHED.value}
                )
                logger.info("match_claim_lost", match_id=holder.id, discarded=match.id)
                return holder
            logger.warning("stale_match_claim", claim_key=claim_key, holder_id=holder.id if holder else None)
            await self.store.set(claim_key, match.id)

        logger.info("match_created", match_id=match.id, user_a=user_a, user_b=user_b)
        return match

    async def _claim_holder(self, claim_key: str) -> Optional[MatchRecord]:
        holder_id = await self.store.get_or_none(claim_key)
        if not holder_id:
            return None
        raw = await self.store.get_or_none(join_path(MATCHES, holder_id))
        if raw is None:
            return None
        return MatchRecord.from_record(holder_id, raw)

    async def list_matches(self, user_id: str) -> List[MatchRecord]:
        """ACTIVE matches of ``user_id``, one per counterpart, newest first."""
        if not user_id:
            raise InvalidInput("user_id is required")
        found: Dict[str, MatchRecord] = {}
        for field in ("user1Id", "user2Id"):
            for match in await self._decode_matches(field, user_id):
                if match.is_active:
                    found[match.id] = match
        return dedupe_by_pair(found.values())

    async def are_users_matched(self, user_a: str, user_b: str) -> bool:
        return any(match.involves(user_a, user_b) for match in await self.list_matches(user_a))

    async def unmatch(self, actor_id: str, other_id: str) -> int:
        """
        End the match with ``other_id``.

        Removes ``other_id`` from the actor's list and marks every ACTIVE
        record for the pair UNMATCHED. Returns how many records changed.
        """
        _require_pair(actor_id, other_id)
        actor = await self.load_profile(actor_id)
        await self._remove_if_present(actor_id, "matches", actor.matched_users, other_id)

        changed = 0
        for field in ("user1Id", "user2Id"):
            for match in await self._decode_matches(field, actor_id):
                if match.other(actor_id) == other_id and match.is_active:
                    await self.store.update_fields(
                        join_path(MATCHES, match.id), {"status": MatchStatus.UNMATCHED.value}
                    )
                    changed += 1

        await self.store.delete(join_path(MATCH_CLAIMS, pair_key(actor_id, other_id)))
        logger.info("unmatched", actor_id=actor_id, other_id=other_id, records=changed)
        return changed

    # ------------------------------------------------------------------ #
    # Safety
    # ------------------------------------------------------------------ #

    async def block_user(self, actor_id: str, blocked_id: str) -> None:
        """Block ``blocked_id`` and drop them from the actor's matches and likes."""
        _require_pair(actor_id, blocked_id)
        block = BlockRecord(blocker_id=actor_id, blocked_id=blocked_id, timestamp=self.clock())
        record = block.to_record()
        record.pop("id", None)
        await self.store.push(BLOCKS, record)

        actor = await self.load_profile(actor_id)
        await self._append_if_absent(actor_id, "blockedUsers", actor.blocked_users, blocked_id)
        await self._remove_if_present(actor_id, "matches", actor.matched_users, blocked_id)
        await self._remove_if_present(actor_id, "likedUsers", actor.liked_users, blocked_id)
        logger.info("user_blocked", actor_id=actor_id, blocked_id=blocked_id)

    async def report_user(self, reporter_id: str, reported_id: str, reason: str) -> ReportRecord:
        """File a PENDING report and remember it on the reporter's profile."""
        _require_pair(reporter_id, reported_id)
        if not reason or not reason.strip():
            raise InvalidInput("A report needs a reason")

        report = ReportRecord(
            reporter_id=reporter_id,
            reported_id=reported_id,
            reason=reason.strip(),
            timestamp=self.clock(),
        )
        record = report.to_record()
        record.pop("id", None)
        report.id = await self.store.push(REPORTS, record)

        reporter = await self.load_profile(reporter_id)
        await self._append_if_absent(reporter_id, "reportedUsers", reporter.reported_users, reported_id)
        logger.info("user_reported", reporter_id=reporter_id, reported_id=reported_id, report_id=report.id)
        return report
