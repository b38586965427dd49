"""
Group/code registry and membership directory.

Join codes are 6 characters from an alphabet without look-alike glyphs
(no 0/O, 1/I). Uniqueness is enforced by the ``groups.code`` constraint; the
registry retries a bounded number of times when a candidate is taken.
"""

import logging
import secrets
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import BadRequest, Conflict, Forbidden, Internal, NotFound
from models import Group, GroupMember

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 5


def generate_join_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class GroupRegistry:
    def __init__(
        self,
        db: Session,
        code_factory: Callable[[], str] = generate_join_code,
        max_attempts: int = MAX_CODE_ATTEMPTS,
    ):
        self.db = db
        self.code_factory = code_factory
        self.max_attempts = max_attempts

    # ── Registry ─────────────────────────────────────────────────

    def code_taken(self, code: str) -> bool:
        return self.db.execute(select(Group.id).where(Group.code == code).limit(1)).first() is not None

    def create_group(self, owner_id: int, name: str) -> dict:
        """
        Create a group owned by ``owner_id`` and enrol the owner.

        Each attempt draws a fresh code; a candidate already present, or one
        rejected by the unique constraint at insert time, costs one attempt.
        """
        name = (name or "").strip()
        if not name:
            raise BadRequest("Group name is required", code="missing_name")

        for attempt in range(1, self.max_attempts + 1):
            code = self.code_factory()
            if self.code_taken(code):
                logger.debug("Join code %s taken (attempt %d)", code, attempt)
                continue

            group = Group(name=name, code=code, created_by=owner_id)
            self.db.add(group)
            try:
                self.db.flush()
                self.db.add(GroupMember(group_id=group.id, user_id=owner_id))
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if not self.code_taken(code):
                    logger.error("✗ Group insert failed for user %d: not a code collision", owner_id)
                    raise
                # Lost a race for the same code against a concurrent creation.
                logger.warning("Join code %s collided on insert (attempt %d)", code, attempt)
                continue

            logger.info("Group %d '%s' created by user %d with code %s", group.id, name, owner_id, code)
            return {"id": group.id, "code": code}

        raise Internal(
            f"Could not allocate a unique join code after {self.max_attempts} attempts",
            code="code_generation_failed",
        )

    def get_group(self, group_id: int) -> Group:
        if not group_id or group_id <= 0:
            raise BadRequest("Invalid group id", code="bad_group")
        group = self.db.get(Group, group_id)
        if group is None:
            raise NotFound(f"Group {group_id} not found", code="group_not_found")
        return group

    # ── Membership ───────────────────────────────────────────────

    def join_group(self, user_id: int, code: str) -> dict:
        code = (code or "").strip().upper()
        if not code:
            raise BadRequest("Join code is required", code="missing_code")

        group = self.find_by_code(code)
        if group is None:
            raise NotFound("No group matches this code", code="group_not_found")
        if self.is_member(group.id, user_id):
            raise Conflict("Already a member of this group", code="already_member")

        self.db.add(GroupMember(group_id=group.id, user_id=user_id))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Already a member of this group", code="already_member")

        logger.info("User %d joined group %d", user_id, group.id)
        return {"id": group.id, "name": group.name}

    def is_member(self, group_id: int, user_id: int) -> bool:
        row = self.db.execute(
            select(GroupMember.id)
            .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            .limit(1)
        ).first()
        return row is not None

    def require_member(self, group_id: int, user_id: int) -> None:
        if not group_id or group_id <= 0:
            raise BadRequest("Invalid group id", code="bad_group")
        if not self.is_member(group_id, user_id):
            raise Forbidden("You are not a member of this group", code="not_group_member")

    def member_count(self, group_id: int) -> int:
        return self.db.execute(
            select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
        ).scalar_one()

    def list_user_groups(self, user_id: int) -> list[dict]:
        counts = (
            select(GroupMember.group_id, func.count(GroupMember.id).label("member_count"))
            .group_by(GroupMember.group_id)
            .subquery()
        )
        rows = self.db.execute(
            select(Group.id, Group.name, Group.code, Group.created_at, counts.c.member_count)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .outerjoin(counts, counts.c.group_id == Group.id)
            .where(GroupMember.user_id == user_id)
            .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
        ).all()
        return [
            {
                "id": r.id,
                "name": r.name,
                "code": r.code,
                "created_at": r.created_at,
                "member_count": r.member_count or 0,
            }
            for r in rows
        ]

    def find_by_code(self, code: str) -> Optional[Group]:
        return self.db.execute(
            select(Group).where(Group.code == (code or "").strip().upper())
        ).scalar_one_or_none()
