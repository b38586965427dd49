"""
Account, profile, vote and team routes.

Endpoints:
  POST   /api/auth/register           — Create an account, returns a bearer token
  POST   /api/auth/login              — Sign in, returns a bearer token
  GET    /api/auth/me                 — Current user
  GET    /api/profile                 — Profile with chosen team
  POST   /api/profile                 — Partial profile update
  GET    /api/profile/groups/latest   — Most recently joined group
  GET    /api/profile/scores          — Own submissions (optionally ?group_id=)
  POST   /api/profile/avatar          — Activate a new avatar URL
  GET    /api/profile/avatar          — Active avatar
  DELETE /api/profile/avatar          — Deactivate the active avatar
  GET    /api/votes/league-winner     — Own league-winner vote
  POST   /api/votes/league-winner     — Cast the league-winner vote (once)
  GET    /api/votes/status            — Lock state and own vote
  GET    /api/teams                   — Selectable teams
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

import users
from auth import get_current_user, issue_token
from config import LeagueConfig, get_league_config
from database import get_db
from errors import Conflict
from ledger import ScoreLedger
from models import Team, User
from schemas import (
    ActiveAvatarResponse,
    AuthResponse,
    AvatarOut,
    AvatarSet,
    LatestGroupResponse,
    LoginRequest,
    ProfileOut,
    ProfileUpdate,
    RegisterRequest,
    ScoreHistoryResponse,
    TeamOut,
    TeamsResponse,
    UserOut,
    VoteOut,
    VoteRequest,
    VoteResponse,
    VotingStatus,
)
from votes import VoteStore

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["Auth"])
profile_router = APIRouter(prefix="/api/profile", tags=["Profile"])
votes_router = APIRouter(prefix="/api/votes", tags=["Votes"])
teams_router = APIRouter(prefix="/api/teams", tags=["Teams"])


def get_vote_store(
    db: Session = Depends(get_db),
    league: LeagueConfig = Depends(get_league_config),
) -> VoteStore:
    return VoteStore(db, league)


# ── Auth ─────────────────────────────────────────────────────────

@auth_router.post("/register", response_model=AuthResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    """Register; an already-registered email is signed in instead (200)."""
    user, already = users.register(db, payload.email, payload.password, payload.username)
    body = AuthResponse(already=already, token=issue_token(user), user=UserOut.model_validate(user))
    return JSONResponse(
        status_code=status.HTTP_200_OK if already else status.HTTP_201_CREATED,
        content=body.model_dump(mode="json"),
    )


@auth_router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = users.authenticate(db, payload.email, payload.password)
    return AuthResponse(token=issue_token(user), user=UserOut.model_validate(user))


@auth_router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": UserOut.model_validate(user)}


# ── Profile ──────────────────────────────────────────────────────

@profile_router.get("")
def get_profile(user: User = Depends(get_current_user)):
    return {"user": ProfileOut.model_validate(user)}


@profile_router.post("")
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = users.update_profile(
        db,
        user,
        username=payload.username,
        new_email=payload.new_email,
        chosen_team=payload.chosen_team,
    )
    return {"success": True, "user": ProfileOut.model_validate(updated)}


@profile_router.get("/groups/latest", response_model=LatestGroupResponse)
def latest_group(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """``{"group": null}`` when the user has not joined any group yet."""
    return LatestGroupResponse(group=users.latest_group(db, user.id))


@profile_router.get("/scores", response_model=ScoreHistoryResponse)
def score_history(
    group_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ScoreHistoryResponse(scores=ScoreLedger(db).user_history(user.id, group_id))


@profile_router.post("/avatar", response_model=AvatarOut, status_code=status.HTTP_201_CREATED)
def set_avatar(payload: AvatarSet, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return users.set_active_avatar(db, user.id, payload.url, payload.storage_path)


@profile_router.get("/avatar", response_model=ActiveAvatarResponse)
def get_avatar(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    avatar = users.active_avatar(db, user.id)
    return ActiveAvatarResponse(active=AvatarOut.model_validate(avatar) if avatar is not None else None)


@profile_router.delete("/avatar")
def delete_avatar(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    users.deactivate_avatar(db, user.id)
    return {"success": True}


# ── Votes ────────────────────────────────────────────────────────

@votes_router.get("/league-winner", response_model=VoteResponse)
def get_vote(user: User = Depends(get_current_user), store: VoteStore = Depends(get_vote_store)):
    vote = store.get_vote(user.id)
    return VoteResponse(vote=VoteOut.model_validate(vote) if vote is not None else None)


@votes_router.post("/league-winner", status_code=status.HTTP_201_CREATED)
def cast_vote(
    payload: VoteRequest,
    user: User = Depends(get_current_user),
    store: VoteStore = Depends(get_vote_store),
):
    """One vote per user; a second attempt answers 409 and leaves the first vote in place."""
    result = store.cast_vote(user.id, payload.team_name)
    if not result.created:
        raise Conflict("You have already voted", code="vote_exists")
    return {"success": True, "vote": VoteOut.model_validate(result.vote)}


@votes_router.get("/status", response_model=VotingStatus)
def voting_status(user: User = Depends(get_current_user), store: VoteStore = Depends(get_vote_store)):
    return VotingStatus(**store.status(user.id))


# ── Teams ────────────────────────────────────────────────────────

@teams_router.get("", response_model=TeamsResponse)
def list_teams(db: Session = Depends(get_db)):
    teams = db.execute(select(Team).order_by(Team.name.asc())).scalars().all()
    return TeamsResponse(teams=[TeamOut.model_validate(t) for t in teams])
