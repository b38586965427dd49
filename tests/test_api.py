import pytest
from fastapi import Depends
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app import app
from config import LeagueConfig, get_league_config
from database import get_db
from ledger import ScoreLedger
from models import UserScore
from routes import get_ledger
import seed_teams


@pytest.fixture()
def owner(signup):
    return signup("owner@example.com", "owner")


@pytest.fixture()
def group(client, owner):
    resp = client.post("/api/groups", json={"name": "Office League"}, headers=owner["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()


def submit(client, who, group_id, round_number, round_points, total_points, **extra):
    payload = {"round_number": round_number, "round_points": round_points, "total_points": total_points}
    payload.update(extra)
    return client.post(f"/api/groups/{group_id}/scores", json=payload, headers=who["headers"])


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] in ("ok", "degraded")


# ── Groups ───────────────────────────────────────────────────────

def test_create_and_join_group(client, group, signup):
    assert len(group["code"]) == 6
    member = signup("member@example.com")

    resp = client.post("/api/groups/join", json={"code": group["code"].lower()}, headers=member["headers"])
    assert resp.status_code == 200
    assert resp.json()["group"] == {"id": group["id"], "name": "Office League"}

    again = client.post("/api/groups/join", json={"code": group["code"]}, headers=member["headers"])
    assert again.status_code == 409
    assert again.json()["error"] == "already_member"


def test_join_unknown_code(client, owner):
    resp = client.post("/api/groups/join", json={"code": "ZZZZZZ"}, headers=owner["headers"])
    assert resp.status_code == 404
    assert resp.json()["error"] == "group_not_found"


def test_my_groups(client, group, owner):
    resp = client.get("/api/groups/mine", headers=owner["headers"])
    assert resp.status_code == 200
    [mine] = resp.json()["groups"]
    assert mine["id"] == group["id"]
    assert mine["member_count"] == 1


def test_group_routes_require_a_token(client):
    resp = client.post("/api/groups", json={"name": "x"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "no_token"


# ── Scores ───────────────────────────────────────────────────────

def test_submit_and_latest(client, group, owner):
    assert submit(client, owner, group["id"], 1, 45, 45).status_code == 201
    assert submit(client, owner, group["id"], 2, -5, 40).status_code == 201

    resp = client.get(f"/api/groups/{group['id']}/scores/latest", headers=owner["headers"])
    assert resp.json() == {"latest": {"round_number": 2, "total_points": 40}}


def test_latest_is_null_before_any_submission(client, group, owner):
    resp = client.get(f"/api/groups/{group['id']}/scores/latest", headers=owner["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"latest": None}


def test_non_member_cannot_submit(client, group, signup, session_factory):
    outsider = signup("outsider@example.com")
    resp = submit(client, outsider, group["id"], 1, 10, 10)
    assert resp.status_code == 403
    assert resp.json()["error"] == "not_group_member"
    with session_factory() as session:
        assert session.query(UserScore).count() == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"round_number": 39, "round_points": 1, "total_points": 1},
        {"round_number": 1, "round_points": "lots", "total_points": 1},
        {"round_number": 1, "total_points": 1},
    ],
)
def test_malformed_submission_is_bad_request(client, group, owner, payload):
    resp = client.post(f"/api/groups/{group['id']}/scores", json=payload, headers=owner["headers"])
    assert resp.status_code == 400
    assert resp.json()["kind"] == "bad_request"


def test_score_preview(client, group, owner):
    submit(client, owner, group["id"], 37, 40, 900)
    resp = client.post(
        f"/api/groups/{group['id']}/scores/preview",
        json={"round_number": 38, "base_points": 60, "match_status": "win", "team_won_league": True},
        headers=owner["headers"],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["round_points"] == 120
    assert body["previous_total"] == 900
    assert body["projected_total"] == 1020


class BrokenLedger(ScoreLedger):
    """Writes the row, then fails the way the database would on commit."""

    calls = 0

    def __init__(self, db, orig_message):
        super().__init__(db)
        self.orig_message = orig_message

    def submit_score(self, user_id, group_id, round_number, round_points, total_points, *args, **kwargs):
        BrokenLedger.calls += 1
        self.db.add(
            UserScore(
                user_id=user_id,
                group_id=group_id,
                round_number=round_number,
                round_points=round_points,
                total_points=total_points,
            )
        )
        self.db.flush()
        raise OperationalError("INSERT INTO user_scores", {}, Exception(self.orig_message))


@pytest.mark.parametrize(
    "orig_message, status_code, kind",
    [
        ("canceling statement due to statement timeout", 504, "timeout"),
        ("server closed the connection unexpectedly", 500, "internal"),
    ],
)
def test_storage_failure_on_submit_is_not_completed(
    client, group, owner, session_factory, orig_message, status_code, kind
):
    BrokenLedger.calls = 0

    def broken_ledger(db: Session = Depends(get_db)):
        return BrokenLedger(db, orig_message)

    app.dependency_overrides[get_ledger] = broken_ledger
    resp = submit(client, owner, group["id"], 1, 10, 10)

    assert resp.status_code == status_code
    assert resp.json()["kind"] == kind
    assert BrokenLedger.calls == 1
    with session_factory() as session:
        assert session.query(UserScore).count() == 0


# ── Rankings ─────────────────────────────────────────────────────

def test_rankings_scenario_with_pinned_rounds(client, group, owner):
    submit(client, owner, group["id"], 1, 100, 100)
    submit(client, owner, group["id"], 2, 80, 180)
    url = f"/api/groups/{group['id']}/rankings"

    pinned_one = client.get(url, params={"round": 1}, headers=owner["headers"]).json()
    [row] = pinned_one["rankings"]
    assert (row["total_points"], row["rounds_played"]) == (100, 1)

    pinned_two = client.get(url, params={"round": 2}, headers=owner["headers"]).json()
    [row] = pinned_two["rankings"]
    assert (row["total_points"], row["rounds_played"], row["average_points"]) == (180, 2, 90)
    assert pinned_two["summary"] == {"member_count": 1, "current_round": 2}


def test_rankings_ignore_non_numeric_round(client, group, owner):
    submit(client, owner, group["id"], 1, 100, 100)
    submit(client, owner, group["id"], 2, 80, 180)
    resp = client.get(f"/api/groups/{group['id']}/rankings", params={"round": "latest"}, headers=owner["headers"])
    assert resp.json()["rankings"][0]["total_points"] == 180


def test_rankings_fractional_round_pins_to_whole_round(client, group, owner):
    submit(client, owner, group["id"], 1, 100, 100)
    submit(client, owner, group["id"], 2, 80, 180)
    url = f"/api/groups/{group['id']}/rankings"

    [row] = client.get(url, params={"round": "1.0"}, headers=owner["headers"]).json()["rankings"]
    assert (row["total_points"], row["latest_round_points"]) == (100, 100)

    [row] = client.get(url, params={"round": "-1"}, headers=owner["headers"]).json()["rankings"]
    assert (row["total_points"], row["rounds_played"]) == (0, 0)


def test_rankings_max_wins_over_later_lower_total(client, group, owner):
    submit(client, owner, group["id"], 3, 60, 200)
    submit(client, owner, group["id"], 3, 20, 160)
    resp = client.get(f"/api/groups/{group['id']}/rankings", headers=owner["headers"])
    assert resp.json()["rankings"][0]["total_points"] == 200


def test_rankings_empty_group(client, group, owner, signup):
    member = signup("member@example.com")
    client.post("/api/groups/join", json={"code": group["code"]}, headers=member["headers"])

    resp = client.get(f"/api/groups/{group['id']}/rankings", headers=owner["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"rankings": [], "summary": {"member_count": 2, "current_round": 0}}


def test_rankings_order_and_missing_round(client, group, owner, signup):
    member = signup("member@example.com", "member")
    client.post("/api/groups/join", json={"code": group["code"]}, headers=member["headers"])
    submit(client, owner, group["id"], 1, 50, 50)
    submit(client, member, group["id"], 1, 70, 70)
    submit(client, member, group["id"], 2, 30, 100)

    resp = client.get(f"/api/groups/{group['id']}/rankings", params={"round": 2}, headers=owner["headers"])
    rankings = resp.json()["rankings"]
    assert [r["username"] for r in rankings] == ["member", "owner"]
    assert rankings[1]["latest_round_points"] is None
    assert rankings[0]["latest_round_points"] == 30


def test_champion_bonus_applied_at_read_time(client, group, owner, session_factory):
    app.dependency_overrides[get_league_config] = lambda: LeagueConfig(champion_team_name="Arsenal")
    client.post("/api/votes/league-winner", json={"team_name": "arsenal"}, headers=owner["headers"])
    submit(client, owner, group["id"], 1, 100, 100)

    row = client.get(f"/api/groups/{group['id']}/rankings", headers=owner["headers"]).json()["rankings"][0]
    assert row["total_points"] == 150
    assert row["bonus_applied"] is True
    assert row["chosen_team"] == "arsenal"
    with session_factory() as session:
        assert [s.total_points for s in session.query(UserScore).all()] == [100]


def test_rankings_require_membership(client, group, signup):
    outsider = signup("outsider@example.com")
    resp = client.get(f"/api/groups/{group['id']}/rankings", headers=outsider["headers"])
    assert resp.status_code == 403


def test_rankings_unknown_group(client, owner):
    resp = client.get("/api/groups/9999/rankings", headers=owner["headers"])
    assert resp.status_code == 404
    assert resp.json()["error"] == "group_not_found"


def test_user_rounds_drilldown(client, group, owner, signup):
    member = signup("member@example.com")
    client.post("/api/groups/join", json={"code": group["code"]}, headers=member["headers"])
    submit(client, owner, group["id"], 2, 30, 80, expensive_player_name="Haaland", expensive_player_points=12)
    submit(client, owner, group["id"], 1, 50, 50)

    resp = client.get(
        f"/api/groups/{group['id']}/rankings/{owner['user']['id']}/rounds",
        headers=member["headers"],
    )
    assert resp.status_code == 200
    rounds = resp.json()["rounds"]
    assert [r["round"] for r in rounds] == [1, 2]
    assert rounds[1]["expensive_player_name"] == "Haaland"


# ── Votes ────────────────────────────────────────────────────────

def test_vote_once(client, owner):
    first = client.post("/api/votes/league-winner", json={"team_name": "Arsenal"}, headers=owner["headers"])
    assert first.status_code == 201

    second = client.post("/api/votes/league-winner", json={"team_name": "Chelsea"}, headers=owner["headers"])
    assert second.status_code == 409
    assert second.json()["error"] == "vote_exists"

    vote = client.get("/api/votes/league-winner", headers=owner["headers"]).json()["vote"]
    assert vote["team_name"] == "Arsenal"

    status = client.get("/api/votes/status", headers=owner["headers"]).json()
    assert status["has_vote"] is True
    assert status["team_name"] == "Arsenal"
    assert status["locked"] is False


def test_vote_locked(client, owner):
    app.dependency_overrides[get_league_config] = lambda: LeagueConfig(voting_locked=True)
    resp = client.post("/api/votes/league-winner", json={"team_name": "Arsenal"}, headers=owner["headers"])
    assert resp.status_code == 423
    assert resp.json()["error"] == "voting_locked"
    assert client.get("/api/votes/league-winner", headers=owner["headers"]).json() == {"vote": None}


# ── Auth & profile ───────────────────────────────────────────────

def test_register_twice_signs_in(client):
    first = client.post("/api/auth/register", json={"email": "a@example.com", "password": "pw"})
    again = client.post("/api/auth/register", json={"email": "a@example.com", "password": "other"})
    assert first.status_code == 201
    assert again.status_code == 200
    assert again.json()["already"] is True
    assert again.json()["user"]["id"] == first.json()["user"]["id"]


def test_login(client, owner):
    ok = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "pw-123456"})
    assert ok.status_code == 200
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {ok.json()['token']}"})
    assert me.json()["user"]["email"] == "owner@example.com"

    bad = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "nope"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "bad_password"

    missing = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "x"})
    assert missing.status_code == 404


def test_invalid_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_token"


def test_profile_update_and_email_conflict(client, owner, signup):
    signup("taken@example.com")
    resp = client.post("/api/profile", json={"username": "Boss", "chosen_team": "Fulham"}, headers=owner["headers"])
    assert resp.status_code == 200
    profile = client.get("/api/profile", headers=owner["headers"]).json()["user"]
    assert (profile["username"], profile["chosen_team"]) == ("Boss", "Fulham")

    clash = client.post("/api/profile", json={"new_email": "taken@example.com"}, headers=owner["headers"])
    assert clash.status_code == 409
    assert clash.json()["error"] == "email_taken"


def test_profile_team_follows_vote(client, owner):
    client.post("/api/votes/league-winner", json={"team_name": "Arsenal"}, headers=owner["headers"])
    resp = client.post("/api/profile", json={"chosen_team": "Chelsea"}, headers=owner["headers"])
    assert resp.status_code == 409
    assert resp.json()["error"] == "team_locked_by_vote"


def test_latest_group_and_history(client, owner, group):
    resp = client.get("/api/profile/groups/latest", headers=owner["headers"])
    assert resp.json()["group"]["group_id"] == group["id"]

    submit(client, owner, group["id"], 1, 12, 12)
    history = client.get("/api/profile/scores", headers=owner["headers"]).json()["scores"]
    assert history[0]["group_name"] == "Office League"


def test_latest_group_empty(client, owner):
    assert client.get("/api/profile/groups/latest", headers=owner["headers"]).json() == {"group": None}


def test_avatar_lifecycle_shows_in_rankings(client, owner, group):
    client.post("/api/profile/avatar", json={"url": "https://cdn.example.com/1.png"}, headers=owner["headers"])
    client.post("/api/profile/avatar", json={"url": "https://cdn.example.com/2.png"}, headers=owner["headers"])
    active = client.get("/api/profile/avatar", headers=owner["headers"]).json()["active"]
    assert active["url"] == "https://cdn.example.com/2.png"

    submit(client, owner, group["id"], 1, 10, 10)
    row = client.get(f"/api/groups/{group['id']}/rankings", headers=owner["headers"]).json()["rankings"][0]
    assert row["avatar_url"] == "https://cdn.example.com/2.png"

    client.delete("/api/profile/avatar", headers=owner["headers"])
    assert client.get("/api/profile/avatar", headers=owner["headers"]).json() == {"active": None}


def test_teams_listing(client, session_factory):
    with session_factory() as session:
        assert seed_teams.seed(session) == len(seed_teams.TEAMS)
        assert seed_teams.seed(session) == 0

    teams = client.get("/api/teams").json()["teams"]
    assert len(teams) == len(seed_teams.TEAMS)
    assert teams[0]["name"] == "AFC Bournemouth"
