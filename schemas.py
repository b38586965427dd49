"""
Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


# ── Request Schemas ──────────────────────────────────────────────

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    username: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class GroupJoin(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)


class ScoreSubmission(BaseModel):
    """Request body for a round submission. Points may be negative."""

    round_number: int = Field(..., ge=1, le=38, description="Season round (1..38)")
    round_points: int = Field(..., description="Points scored this round")
    total_points: int = Field(..., description="Running total including this round")
    expensive_player_name: Optional[str] = Field(default=None, max_length=100)
    expensive_player_points: Optional[int] = None


class ScorePreviewRequest(BaseModel):
    round_number: int = Field(..., ge=1, le=38)
    base_points: int = 0
    match_status: Optional[Literal["win", "draw", "loss"]] = None
    opponent_more_than_4: bool = False
    team_won_league: bool = False


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, max_length=100)
    new_email: Optional[EmailStr] = None
    chosen_team: Optional[str] = Field(default=None, max_length=100)


class AvatarSet(BaseModel):
    url: str = Field(..., min_length=1, max_length=1024)
    storage_path: Optional[str] = Field(default=None, max_length=512)


class VoteRequest(BaseModel):
    team_name: str = Field(..., min_length=1, max_length=100)


# ── Response Schemas ─────────────────────────────────────────────

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str


class ProfileOut(UserOut):
    chosen_team: Optional[str] = None


class AuthResponse(BaseModel):
    success: bool = True
    already: bool = False
    token: str
    user: UserOut


class GroupCreated(BaseModel):
    id: int
    code: str


class GroupRef(BaseModel):
    id: int
    name: str


class JoinResponse(BaseModel):
    success: bool = True
    group: GroupRef


class GroupSummary(BaseModel):
    id: int
    name: str
    code: str
    created_at: Optional[datetime] = None
    member_count: int


class GroupsResponse(BaseModel):
    groups: list[GroupSummary]


class LatestGroup(BaseModel):
    group_id: int
    name: str
    joined_at: Optional[datetime] = None


class LatestGroupResponse(BaseModel):
    group: Optional[LatestGroup] = None


class SubmitResponse(BaseModel):
    success: bool = True
    id: int


class LatestScore(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    round_number: int
    total_points: int


class LatestScoreResponse(BaseModel):
    latest: Optional[LatestScore] = None


class ScorePreviewResponse(BaseModel):
    base_points: int
    status_bonus: int
    opponent_penalty: int
    league_bonus: int
    round_points: int
    previous_total: int
    projected_total: int


class RankingEntry(BaseModel):
    """A single row in the group leaderboard."""

    user_id: int
    username: str
    total_points: int
    rounds_played: int
    average_points: int
    latest_round_points: Optional[int] = None
    chosen_team: Optional[str] = None
    avatar_url: Optional[str] = None
    bonus_applied: bool = False


class RankingSummary(BaseModel):
    member_count: int
    current_round: int


class RankingsResponse(BaseModel):
    rankings: list[RankingEntry]
    summary: RankingSummary


class RoundDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    round: int = Field(validation_alias=AliasChoices("round_number", "round"))
    round_points: int
    total_points: int
    expensive_player_name: Optional[str] = None
    expensive_player_points: Optional[int] = None
    created_at: Optional[datetime] = None


class RoundsResponse(BaseModel):
    rounds: list[RoundDetail]


class ScoreHistoryItem(BaseModel):
    id: int
    group_id: int
    group_name: Optional[str] = None
    round_number: int
    round_points: int
    total_points: int
    created_at: Optional[datetime] = None


class ScoreHistoryResponse(BaseModel):
    scores: list[ScoreHistoryItem]


class AvatarOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    storage_path: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class ActiveAvatarResponse(BaseModel):
    active: Optional[AvatarOut] = None


class VoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_name: str
    voted_at: Optional[datetime] = None


class VoteResponse(BaseModel):
    vote: Optional[VoteOut] = None


class VotingStatus(BaseModel):
    locked: bool
    deadline: Optional[datetime] = None
    has_vote: bool
    team_name: Optional[str] = None


class TeamOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    logo: Optional[str] = None


class TeamsResponse(BaseModel):
    teams: list[TeamOut]


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    kind: str
    message: str
