"""
League-winner vote store.

One vote per user, never overwritten. The team name is mirrored onto
``users.chosen_team`` for display; the mirror only ever flows from the vote to
the profile.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import LeagueConfig
from errors import BadRequest, Locked
from models import LeagueWinnerVote, User

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VoteResult:
    created: bool
    vote: LeagueWinnerVote


class VoteStore:
    def __init__(self, db: Session, config: LeagueConfig, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.config = config
        self.clock = clock

    def voting_locked(self) -> bool:
        """Locked by the explicit flag, or once the deadline has been reached."""
        if self.config.voting_locked:
            return True
        deadline = self.config.deadline_utc()
        if deadline is None:
            return False
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now >= deadline

    def get_vote(self, user_id: int) -> Optional[LeagueWinnerVote]:
        return self.db.execute(
            select(LeagueWinnerVote).where(LeagueWinnerVote.user_id == user_id).limit(1)
        ).scalar_one_or_none()

    def cast_vote(self, user_id: int, team_name: str) -> VoteResult:
        team_name = (team_name or "").strip()
        if not team_name:
            raise BadRequest("team_name is required", code="missing_fields")

        existing = self.get_vote(user_id)
        if existing is not None:
            self._backfill_profile(user_id, existing.team_name)
            return VoteResult(created=False, vote=existing)

        if self.voting_locked():
            raise Locked("Voting is closed", code="voting_locked")

        vote = LeagueWinnerVote(user_id=user_id, team_name=team_name)
        self.db.add(vote)
        try:
            self.db.flush()
        except IntegrityError:
            # A concurrent request recorded this user's vote first.
            self.db.rollback()
            existing = self.get_vote(user_id)
            if existing is None:
                raise
            self._backfill_profile(user_id, existing.team_name)
            return VoteResult(created=False, vote=existing)

        self._mirror_profile(user_id, team_name, overwrite=True)
        self.db.commit()
        self.db.refresh(vote)
        logger.info("User %d voted for %s", user_id, team_name)
        return VoteResult(created=True, vote=vote)

    def status(self, user_id: Optional[int] = None) -> dict:
        vote = self.get_vote(user_id) if user_id else None
        return {
            "locked": self.voting_locked(),
            "deadline": self.config.deadline_utc(),
            "has_vote": vote is not None,
            "team_name": vote.team_name if vote is not None else None,
        }

    # ── Profile mirror ───────────────────────────────────────────

    def _backfill_profile(self, user_id: int, team_name: str) -> None:
        if self._mirror_profile(user_id, team_name, overwrite=False):
            self.db.commit()

    def _mirror_profile(self, user_id: int, team_name: str, overwrite: bool) -> bool:
        user = self.db.get(User, user_id)
        if user is None:
            return False
        if user.chosen_team and not overwrite:
            return False
        user.chosen_team = team_name
        return True
