"""
Round scoring rules applied on top of a player's base fantasy points.

  match result      win +10, draw -5, loss -10
  opponent penalty  -5 when the opponent fielded more than 4 (round 1 only)
  league winner     +50 in the final round when the backed team won the league
"""

from dataclasses import dataclass
from typing import Optional

from errors import BadRequest
from ledger import MAX_ROUND, validate_round

MATCH_STATUS_BONUS = {"win": 10, "draw": -5, "loss": -10}
OPPONENT_PENALTY = -5
OPPONENT_PENALTY_ROUND = 1
LEAGUE_WINNER_BONUS = 50


@dataclass
class RoundBreakdown:
    base_points: int
    status_bonus: int
    opponent_penalty: int
    league_bonus: int

    @property
    def round_points(self) -> int:
        return self.base_points + self.status_bonus + self.opponent_penalty + self.league_bonus


def compute_round_points(
    base_points: int,
    round_number: int,
    match_status: Optional[str] = None,
    opponent_more_than_4: bool = False,
    team_won_league: bool = False,
) -> RoundBreakdown:
    validate_round(round_number)
    status = (match_status or "").strip().lower()
    if status and status not in MATCH_STATUS_BONUS:
        raise BadRequest(f"Unknown match status '{match_status}'", code="bad_match_status")

    return RoundBreakdown(
        base_points=base_points,
        status_bonus=MATCH_STATUS_BONUS.get(status, 0),
        opponent_penalty=(
            OPPONENT_PENALTY if opponent_more_than_4 and round_number == OPPONENT_PENALTY_ROUND else 0
        ),
        league_bonus=LEAGUE_WINNER_BONUS if team_won_league and round_number == MAX_ROUND else 0,
    )
