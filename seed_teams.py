"""
Seeds the selectable teams for the league-winner vote.

Idempotent: teams already present (by name) are left untouched.

Usage:
    python seed_teams.py
"""

import time

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import create_tables, engine
from models import Team

TEAMS = [
    ("Arsenal", "arsenal"),
    ("Aston Villa", "aston-villa"),
    ("AFC Bournemouth", "afc-bournemouth"),
    ("Brentford", "brentford"),
    ("Brighton & Hove Albion", "brighton-hove-albion"),
    ("Burnley", "burnley"),
    ("Chelsea", "chelsea"),
    ("Crystal Palace", "crystal-palace"),
    ("Everton", "everton"),
    ("Fulham", "fulham"),
    ("Leeds United", "leeds-united"),
    ("Liverpool", "liverpool"),
    ("Manchester City", "manchester-city"),
    ("Manchester United", "manchester-united"),
    ("Newcastle United", "newcastle-united"),
    ("Nottingham Forest", "nottingham-forest"),
    ("Sunderland", "sunderland"),
    ("Tottenham Hotspur", "tottenham-hotspur"),
    ("West Ham United", "west-ham-united"),
    ("Wolverhampton Wanderers", "wolverhampton-wanderers"),
]


def seed(session: Session) -> int:
    """Insert missing teams and return how many were added."""
    existing = set(session.execute(select(Team.name)).scalars())
    added = 0
    for name, slug in TEAMS:
        if name in existing:
            continue
        session.add(Team(name=name, slug=slug, logo=f"/logos/{slug}.png"))
        added += 1
    session.commit()
    return added


if __name__ == "__main__":
    print("⏳ Seeding teams …")
    start = time.time()
    create_tables()
    with Session(engine) as session:
        added = seed(session)
    print(f"   ✓ {added} teams inserted in {time.time() - start:.1f}s")
