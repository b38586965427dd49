"""
Application settings loaded from the environment (or a local .env file).

The league-level switches (voting lock, deadline, champion team) are exposed
separately as a ``LeagueConfig`` so the vote store and ranking engine receive
them at construction time instead of reading process state per call.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    APP_NAME: str = "Fantasy League API"
    APP_VERSION: str = "1.0.0"

    # ---- Database ----
    DATABASE_URL: str = "sqlite:///./fantasy.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 10
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # ---- Auth ----
    JWT_SECRET: str = "dev_secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7

    # ---- Web ----
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080"
    RATE_LIMIT_ENABLED: bool = True
    SCORE_SUBMIT_RATE_LIMIT: str = "30/minute"

    # ---- League ----
    VOTING_LOCKED: bool = False
    VOTING_DEADLINE: Optional[datetime] = None
    CHAMPION_TEAM_NAME: str = ""
    CHAMPION_BONUS: int = 50

    @field_validator("VOTING_DEADLINE", mode="before")
    @classmethod
    def _blank_deadline(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@dataclass(frozen=True)
class LeagueConfig:
    """Season-wide switches shared by the vote store and the ranking engine."""

    voting_locked: bool = False
    voting_deadline: Optional[datetime] = None
    champion_team_name: str = ""
    champion_bonus: int = 50

    @property
    def champion(self) -> Optional[str]:
        name = (self.champion_team_name or "").strip()
        return name or None

    def deadline_utc(self) -> Optional[datetime]:
        if self.voting_deadline is None:
            return None
        if self.voting_deadline.tzinfo is None:
            return self.voting_deadline.replace(tzinfo=timezone.utc)
        return self.voting_deadline


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def get_league_config() -> LeagueConfig:
    """FastAPI dependency; overridden in tests with fixed configurations."""
    return LeagueConfig(
        voting_locked=settings.VOTING_LOCKED,
        voting_deadline=settings.VOTING_DEADLINE,
        champion_team_name=settings.CHAMPION_TEAM_NAME,
        champion_bonus=settings.CHAMPION_BONUS,
    )
