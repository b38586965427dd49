"""
Ranking engine.

Builds a point-in-time leaderboard for a group from the score ledger.
``build_rankings`` is pure and works on plain rows; ``RankingEngine`` loads
those rows for a group and hands them over.

Reconciliation rules:
  - per round, the highest submitted ``total_points`` wins (duplicates and
    late corrections are tolerated, arrival order does not matter)
  - the stored running total is trusted; round points are never re-summed
  - the champion bonus is applied to the reported total only
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import LeagueConfig
from groups import GroupRegistry
from models import LeagueWinnerVote, ProfileAvatar, User, UserScore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreRow:
    user_id: int
    username: str
    round_number: int
    round_points: int
    total_points: int


@dataclass
class RankingRow:
    user_id: int
    username: str
    total_points: int
    rounds_played: int
    average_points: int
    latest_round_points: Optional[int]
    chosen_team: Optional[str] = None
    avatar_url: Optional[str] = None
    bonus_applied: bool = False


@dataclass
class RankingSummary:
    member_count: int
    current_round: int


@dataclass
class Rankings:
    rankings: list[RankingRow] = field(default_factory=list)
    summary: RankingSummary = field(default_factory=lambda: RankingSummary(0, 0))


@dataclass
class _Standing:
    username: str
    best_total: dict[int, int] = field(default_factory=dict)
    last_points: dict[int, int] = field(default_factory=dict)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _parse_pinned(pinned_round) -> Optional[float]:
    """Any finite non-zero number pins the leaderboard; fractional and negative pins included."""
    if pinned_round is None or isinstance(pinned_round, bool):
        return None
    try:
        value = float(pinned_round)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value == 0:
        return None
    return value


def build_rankings(
    rows: Iterable[ScoreRow],
    member_count: int = 0,
    pinned_round=None,
    votes: Optional[Mapping[int, str]] = None,
    champion: Optional[str] = None,
    champion_bonus: int = 50,
    chosen_teams: Optional[Mapping[int, Optional[str]]] = None,
    avatars: Optional[Mapping[int, Optional[str]]] = None,
) -> Rankings:
    """
    Rows must arrive in creation order; that order decides which submission
    is "latest" within a round and the tie order of the final sort.
    """
    votes = votes or {}
    chosen_teams = chosen_teams or {}
    avatars = avatars or {}
    champion_key = champion.strip().lower() if champion and champion.strip() else None
    pinned = _parse_pinned(pinned_round)

    standings: dict[int, _Standing] = {}
    current_round = 0
    for row in rows:
        current_round = max(current_round, row.round_number or 0)
        standing = standings.setdefault(row.user_id, _Standing(username=row.username))
        previous = standing.best_total.get(row.round_number)
        if previous is None or row.total_points > previous:
            standing.best_total[row.round_number] = row.total_points
        standing.last_points[row.round_number] = row.round_points

    result = []
    for user_id, standing in standings.items():
        last_round_overall = max(standing.best_total) if standing.best_total else 0
        target_round = pinned if pinned is not None else last_round_overall
        eligible = [r for r in standing.best_total if r <= target_round]
        # A fractional pin has no matching round of its own.
        latest_points = (
            standing.last_points.get(int(target_round)) if float(target_round).is_integer() else None
        )

        total = max(standing.best_total[r] for r in eligible) if eligible else 0
        average = round_half_up(total / len(eligible)) if eligible else 0

        bonus_applied = False
        if champion_key:
            voted = (votes.get(user_id) or "").strip().lower()
            if voted and voted == champion_key:
                total += champion_bonus
                bonus_applied = True

        result.append(
            RankingRow(
                user_id=user_id,
                username=standing.username,
                total_points=total,
                rounds_played=len(eligible),
                average_points=average,
                latest_round_points=latest_points,
                chosen_team=chosen_teams.get(user_id),
                avatar_url=avatars.get(user_id),
                bonus_applied=bonus_applied,
            )
        )

    result.sort(key=lambda r: r.total_points, reverse=True)
    return Rankings(
        rankings=result,
        summary=RankingSummary(member_count=member_count, current_round=current_round),
    )


class RankingEngine:
    """Loads ledger rows for a group and ranks them. Read-only."""

    def __init__(self, db: Session, config: LeagueConfig, registry: Optional[GroupRegistry] = None):
        self.db = db
        self.config = config
        self.registry = registry or GroupRegistry(db)

    def compute_rankings(self, group_id: int, pinned_round=None) -> Rankings:
        """Callers resolve the group and check membership first."""
        rows = [
            ScoreRow(
                user_id=r.user_id,
                username=r.username,
                round_number=r.round_number,
                round_points=r.round_points,
                total_points=r.total_points,
            )
            for r in self.db.execute(
                select(
                    UserScore.user_id,
                    User.username,
                    UserScore.round_number,
                    UserScore.round_points,
                    UserScore.total_points,
                )
                .join(User, User.id == UserScore.user_id)
                .where(UserScore.group_id == group_id)
                .order_by(UserScore.created_at.asc(), UserScore.id.asc())
            ).all()
        ]

        champion = self.config.champion
        votes = self._load_votes() if champion else {}
        user_ids = sorted({r.user_id for r in rows})

        return build_rankings(
            rows,
            member_count=self.registry.member_count(group_id),
            pinned_round=pinned_round,
            votes=votes,
            champion=champion,
            champion_bonus=self.config.champion_bonus,
            chosen_teams=self._load_chosen_teams(user_ids),
            avatars=self._load_avatars(user_ids),
        )

    def _load_votes(self) -> dict[int, str]:
        rows = self.db.execute(select(LeagueWinnerVote.user_id, LeagueWinnerVote.team_name)).all()
        return {r.user_id: r.team_name or "" for r in rows}

    # Display enrichment only: a failure here leaves the fields empty.

    def _load_chosen_teams(self, user_ids: list[int]) -> dict[int, Optional[str]]:
        if not user_ids:
            return {}
        try:
            rows = self.db.execute(select(User.id, User.chosen_team).where(User.id.in_(user_ids))).all()
        except SQLAlchemyError as e:
            logger.warning("⚠ Failed to load chosen teams: %s", e)
            self.db.rollback()
            return {}
        return {r.id: r.chosen_team or None for r in rows}

    def _load_avatars(self, user_ids: list[int]) -> dict[int, Optional[str]]:
        if not user_ids:
            return {}
        try:
            rows = self.db.execute(
                select(ProfileAvatar.user_id, ProfileAvatar.url)
                .where(ProfileAvatar.user_id.in_(user_ids), ProfileAvatar.is_active.is_(True))
                .order_by(ProfileAvatar.created_at.asc(), ProfileAvatar.id.asc())
            ).all()
        except SQLAlchemyError as e:
            logger.warning("⚠ Failed to load avatars: %s", e)
            self.db.rollback()
            return {}
        # Later rows win, so the newest active avatar is kept.
        return {r.user_id: r.url or None for r in rows}
