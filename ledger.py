"""
Score ledger: append-only round submissions per (user, group).

Every submission adds a row; corrections are made by submitting again and the
ranking engine reconciles duplicates by taking the highest total per round.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import BadRequest
from groups import GroupRegistry
from models import Group, UserScore

logger = logging.getLogger(__name__)

MIN_ROUND = 1
MAX_ROUND = 38


def validate_round(round_number) -> int:
    if isinstance(round_number, bool) or not isinstance(round_number, int):
        raise BadRequest("round_number must be an integer", code="missing_fields")
    if not MIN_ROUND <= round_number <= MAX_ROUND:
        raise BadRequest(f"round_number must be between {MIN_ROUND} and {MAX_ROUND}", code="bad_round")
    return round_number


def _validate_points(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequest(f"{name} must be an integer", code="missing_fields")
    return value


class ScoreLedger:
    def __init__(self, db: Session, registry: Optional[GroupRegistry] = None):
        self.db = db
        self.registry = registry or GroupRegistry(db)

    def submit_score(
        self,
        user_id: int,
        group_id: int,
        round_number: int,
        round_points: int,
        total_points: int,
        best_player_name: Optional[str] = None,
        best_player_points: Optional[int] = None,
    ) -> int:
        """Append one submission and return its id. Not safe to retry blindly."""
        validate_round(round_number)
        _validate_points("round_points", round_points)
        _validate_points("total_points", total_points)
        if best_player_points is not None:
            _validate_points("best_player_points", best_player_points)
        self.registry.require_member(group_id, user_id)

        entry = UserScore(
            user_id=user_id,
            group_id=group_id,
            round_number=round_number,
            round_points=round_points,
            total_points=total_points,
            expensive_player_name=(best_player_name or None),
            expensive_player_points=best_player_points,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)

        logger.info(
            "Score appended: user=%d group=%d round=%d points=%d total=%d",
            user_id, group_id, round_number, round_points, total_points,
        )
        return entry.id

    def latest_score(self, user_id: int, group_id: int) -> Optional[UserScore]:
        """Highest round first; among equal rounds the most recent submission."""
        self.registry.require_member(group_id, user_id)
        return self.db.execute(
            select(UserScore)
            .where(UserScore.user_id == user_id, UserScore.group_id == group_id)
            .order_by(
                UserScore.round_number.desc(),
                UserScore.created_at.desc(),
                UserScore.id.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()

    def user_rounds(self, group_id: int, user_id: int) -> list[UserScore]:
        """Round-by-round history of ``user_id`` in a group, oldest first."""
        return list(
            self.db.execute(
                select(UserScore)
                .where(UserScore.group_id == group_id, UserScore.user_id == user_id)
                .order_by(UserScore.round_number.asc(), UserScore.created_at.asc(), UserScore.id.asc())
            ).scalars()
        )

    def user_history(self, user_id: int, group_id: Optional[int] = None) -> list[dict]:
        query = (
            select(UserScore, Group.name.label("group_name"))
            .outerjoin(Group, Group.id == UserScore.group_id)
            .where(UserScore.user_id == user_id)
        )
        if group_id:
            query = query.where(UserScore.group_id == group_id)
        query = query.order_by(UserScore.round_number.asc(), UserScore.created_at.asc(), UserScore.id.asc())

        return [
            {
                "id": score.id,
                "group_id": score.group_id,
                "group_name": group_name,
                "round_number": score.round_number,
                "round_points": score.round_points,
                "total_points": score.total_points,
                "created_at": score.created_at,
            }
            for score, group_name in self.db.execute(query).all()
        ]
