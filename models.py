"""
SQLAlchemy ORM models for the fantasy league backend.
Tables: users, groups, group_members, user_scores, league_winner_votes,
profile_avatars, teams
"""

from sqlalchemy import (
    Boolean, Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, func
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class User(Base):
    """A registered (or auto-provisioned) player."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    chosen_team = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    memberships = relationship("GroupMember", back_populates="user", cascade="all, delete-orphan")
    scores = relationship("UserScore", back_populates="user", cascade="all, delete-orphan")
    vote = relationship("LeagueWinnerVote", back_populates="user", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class Group(Base):
    """A private league joined through a short shareable code."""

    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(10), unique=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Group(id={self.id}, code='{self.code}')>"


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime, server_default=func.now())

    group = relationship("Group", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )


class UserScore(Base):
    """One append-only round submission. Never updated or deleted."""

    __tablename__ = "user_scores"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    round_number = Column(Integer, nullable=False)
    round_points = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    expensive_player_name = Column(String(100), nullable=True)
    expensive_player_points = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="scores")

    def __repr__(self):
        return (
            f"<UserScore(user_id={self.user_id}, group_id={self.group_id}, "
            f"round={self.round_number}, total={self.total_points})>"
        )


class LeagueWinnerVote(Base):
    __tablename__ = "league_winner_votes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    team_name = Column(String(100), nullable=False)
    voted_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="vote")


class ProfileAvatar(Base):
    __tablename__ = "profile_avatars"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(1024), nullable=False)
    storage_path = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())


class Team(Base):
    """A club users can back in the league-winner vote."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(60), unique=True, nullable=False)
    logo = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
