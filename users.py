"""
User directory: identity lookup, auto-provisioning, registration and profile
maintenance.
"""

import logging
import secrets
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import BadRequest, Conflict, NotFound
from models import GroupMember, Group, LeagueWinnerVote, ProfileAvatar, User

logger = logging.getLogger(__name__)

USERNAME_MAX = 50


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def safe_username(candidate: Optional[str], email: str) -> str:
    base = (candidate or "").strip() or email.split("@")[0].strip() or "user"
    return base[:USERNAME_MAX]


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found", code="user_not_found")
    return user


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


def ensure_user_by_email(db: Session, email: str, username_fallback: Optional[str] = None) -> User:
    """Return the user for ``email``, creating one on first contact."""
    email = normalize_email(email)
    if not email:
        raise BadRequest("Email is required", code="missing_email")

    existing = find_by_email(db, email)
    if existing is not None:
        return existing

    user = User(
        email=email,
        username=safe_username(username_fallback, email),
        # Auto-provisioned accounts get an unusable password until they register.
        password=hash_password(secrets.token_urlsafe(24)),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Another request provisioned the same email first.
        db.rollback()
        user = find_by_email(db, email)
        if user is None:
            raise
        return user
    db.refresh(user)
    logger.info("Auto-provisioned user %d for %s", user.id, email)
    return user


def register(db: Session, email: str, password: str, username: Optional[str] = None) -> tuple[User, bool]:
    """
    Create an account. Returns ``(user, already)`` where ``already`` is True
    when the email was registered before; the caller still signs the user in.
    """
    email = normalize_email(email)
    if not email or not password:
        raise BadRequest("Email and password are required", code="missing_fields")

    existing = find_by_email(db, email)
    if existing is not None:
        return existing, True

    user = User(email=email, username=safe_username(username, email), password=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_by_email(db, email)
        if existing is None:
            raise
        return existing, True
    db.refresh(user)
    logger.info("Registered user %d (%s)", user.id, email)
    return user, False


def authenticate(db: Session, email: str, password: str) -> User:
    user = find_by_email(db, email)
    if user is None:
        raise NotFound("No account for this email", code="not_found")
    if not check_password(password, user.password):
        raise BadRequest("Incorrect password", code="bad_password")
    return user


def update_profile(
    db: Session,
    user: User,
    username: Optional[str] = None,
    new_email: Optional[str] = None,
    chosen_team: Optional[str] = None,
) -> User:
    """
    Apply a partial profile update. ``chosen_team`` follows the vote once one
    exists: it can only be set freely while the user has not voted.
    """
    if new_email is not None:
        candidate = normalize_email(new_email)
        if candidate and candidate != user.email:
            if find_by_email(db, candidate) is not None:
                raise Conflict("Email already in use", code="email_taken")
            user.email = candidate

    if username is not None and username.strip():
        user.username = username.strip()[:USERNAME_MAX]

    if chosen_team is not None and chosen_team.strip():
        team = chosen_team.strip()
        vote = db.execute(
            select(LeagueWinnerVote).where(LeagueWinnerVote.user_id == user.id)
        ).scalar_one_or_none()
        if vote is not None and vote.team_name.lower() != team.lower():
            raise Conflict("Chosen team is fixed by your league-winner vote", code="team_locked_by_vote")
        user.chosen_team = vote.team_name if vote is not None else team

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already in use", code="email_taken")
    db.refresh(user)
    return user


def latest_group(db: Session, user_id: int) -> Optional[dict]:
    """Most recently joined group, or None when the user has not joined any."""
    row = db.execute(
        select(GroupMember.group_id, GroupMember.joined_at, Group.name)
        .join(Group, Group.id == GroupMember.group_id)
        .where(GroupMember.user_id == user_id)
        .order_by(GroupMember.joined_at.desc(), GroupMember.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return None
    return {"group_id": row.group_id, "joined_at": row.joined_at, "name": row.name}


# ── Avatars ──────────────────────────────────────────────────────

def set_active_avatar(db: Session, user_id: int, url: str, storage_path: Optional[str] = None) -> ProfileAvatar:
    if not url or not url.strip():
        raise BadRequest("Avatar url is required", code="missing_fields")
    db.query(ProfileAvatar).filter(ProfileAvatar.user_id == user_id).update({ProfileAvatar.is_active: False})
    avatar = ProfileAvatar(user_id=user_id, url=url.strip(), storage_path=storage_path, is_active=True)
    db.add(avatar)
    db.commit()
    db.refresh(avatar)
    return avatar


def active_avatar(db: Session, user_id: int) -> Optional[ProfileAvatar]:
    return db.execute(
        select(ProfileAvatar)
        .where(ProfileAvatar.user_id == user_id, ProfileAvatar.is_active.is_(True))
        .order_by(ProfileAvatar.created_at.desc(), ProfileAvatar.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def deactivate_avatar(db: Session, user_id: int) -> None:
    db.query(ProfileAvatar).filter(
        ProfileAvatar.user_id == user_id, ProfileAvatar.is_active.is_(True)
    ).update({ProfileAvatar.is_active: False})
    db.commit()
