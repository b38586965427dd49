"""
Group, score and ranking API routes.

Endpoints:
  POST /api/groups                                 — Create a group (returns join code)
  POST /api/groups/join                            — Join a group by code
  GET  /api/groups/mine                            — Groups of the current user
  GET  /api/groups/{id}/scores/latest              — Latest own submission
  POST /api/groups/{id}/scores                     — Append a round score
  POST /api/groups/{id}/scores/preview             — Apply scoring rules, no write
  GET  /api/groups/{id}/rankings                   — Leaderboard (optionally ?round=N)
  GET  /api/groups/{id}/rankings/{user_id}/rounds  — Round-by-round drill-down
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import get_current_user
from config import LeagueConfig, get_league_config
from database import get_db
from errors import AppError, translate_db_error
from groups import GroupRegistry
from ledger import ScoreLedger
from limiter import SCORE_SUBMIT_LIMIT, limiter
from models import User
from ranking import RankingEngine
from schemas import (
    ErrorResponse,
    GroupCreate,
    GroupCreated,
    GroupJoin,
    GroupsResponse,
    JoinResponse,
    LatestScore,
    LatestScoreResponse,
    RankingsResponse,
    RoundDetail,
    RoundsResponse,
    ScorePreviewRequest,
    ScorePreviewResponse,
    ScoreSubmission,
    SubmitResponse,
)
from scoring_rules import compute_round_points

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/groups",
    tags=["Groups"],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


# ── Dependencies ─────────────────────────────────────────────────

def get_registry(db: Session = Depends(get_db)) -> GroupRegistry:
    return GroupRegistry(db)


def get_ledger(db: Session = Depends(get_db)) -> ScoreLedger:
    return ScoreLedger(db)


def get_ranking_engine(
    db: Session = Depends(get_db),
    league: LeagueConfig = Depends(get_league_config),
) -> RankingEngine:
    return RankingEngine(db, league)


# ── 1. Groups ────────────────────────────────────────────────────

@router.post("", response_model=GroupCreated, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreate,
    user: User = Depends(get_current_user),
    registry: GroupRegistry = Depends(get_registry),
):
    """Create a group with a fresh join code; the creator becomes its first member."""
    return registry.create_group(user.id, payload.name)


@router.post("/join", response_model=JoinResponse)
def join_group(
    payload: GroupJoin,
    user: User = Depends(get_current_user),
    registry: GroupRegistry = Depends(get_registry),
):
    group = registry.join_group(user.id, payload.code)
    return JoinResponse(group=group)


@router.get("/mine", response_model=GroupsResponse)
def my_groups(user: User = Depends(get_current_user), registry: GroupRegistry = Depends(get_registry)):
    return GroupsResponse(groups=registry.list_user_groups(user.id))


# ── 2. Scores ────────────────────────────────────────────────────

@router.get("/{group_id}/scores/latest", response_model=LatestScoreResponse)
def latest_score(
    group_id: int,
    user: User = Depends(get_current_user),
    ledger: ScoreLedger = Depends(get_ledger),
):
    """Running total to pre-fill the next round's form."""
    latest = ledger.latest_score(user.id, group_id)
    return LatestScoreResponse(latest=LatestScore.model_validate(latest) if latest is not None else None)


@router.post("/{group_id}/scores", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(SCORE_SUBMIT_LIMIT)
def submit_score(
    request: Request,
    group_id: int,
    payload: ScoreSubmission,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ledger: ScoreLedger = Depends(get_ledger),
):
    """
    Append a round submission for the current user.

    The write is reported as not completed on any storage failure; it is
    never retried here since a retry would append a second row.
    """
    try:
        entry_id = ledger.submit_score(
            user.id,
            group_id,
            payload.round_number,
            payload.round_points,
            payload.total_points,
            payload.expensive_player_name,
            payload.expensive_player_points,
        )
    except AppError:
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("submit_score failed for user %d group %d: %s", user.id, group_id, exc)
        raise translate_db_error(exc)

    return SubmitResponse(id=entry_id)


@router.post("/{group_id}/scores/preview", response_model=ScorePreviewResponse)
def preview_score(
    group_id: int,
    payload: ScorePreviewRequest,
    user: User = Depends(get_current_user),
    ledger: ScoreLedger = Depends(get_ledger),
):
    """Compute round points from the scoring rules and project the new total."""
    breakdown = compute_round_points(
        payload.base_points,
        payload.round_number,
        payload.match_status,
        payload.opponent_more_than_4,
        payload.team_won_league,
    )
    latest = ledger.latest_score(user.id, group_id)
    previous_total = latest.total_points if latest is not None else 0
    return ScorePreviewResponse(
        base_points=breakdown.base_points,
        status_bonus=breakdown.status_bonus,
        opponent_penalty=breakdown.opponent_penalty,
        league_bonus=breakdown.league_bonus,
        round_points=breakdown.round_points,
        previous_total=previous_total,
        projected_total=previous_total + breakdown.round_points,
    )


# ── 3. Rankings ──────────────────────────────────────────────────

@router.get("/{group_id}/rankings", response_model=RankingsResponse)
def get_rankings(
    group_id: int,
    pinned_round: Optional[str] = Query(default=None, alias="round"),
    user: User = Depends(get_current_user),
    registry: GroupRegistry = Depends(get_registry),
    engine: RankingEngine = Depends(get_ranking_engine),
):
    """Leaderboard for a group, pinned to ``round`` when it is a positive number."""
    registry.get_group(group_id)
    registry.require_member(group_id, user.id)
    result = engine.compute_rankings(group_id, pinned_round=pinned_round)
    return RankingsResponse(
        rankings=[asdict(r) for r in result.rankings],
        summary=asdict(result.summary),
    )


@router.get("/{group_id}/rankings/{user_id}/rounds", response_model=RoundsResponse)
def get_user_rounds(
    group_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    registry: GroupRegistry = Depends(get_registry),
    ledger: ScoreLedger = Depends(get_ledger),
):
    registry.get_group(group_id)
    registry.require_member(group_id, user.id)
    rows = ledger.user_rounds(group_id, user_id)
    return RoundsResponse(rounds=[RoundDetail.model_validate(r) for r in rows])
