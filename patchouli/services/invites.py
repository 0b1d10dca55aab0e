"""Invite ledger: issue, validate and consume one-time invite codes."""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from patchouli.db.models_auth import InviteCode, User
from patchouli.services.exceptions import NotFound, PermissionDenied

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _usable_clause(now: datetime):
    return and_(
        InviteCode.is_active.is_(True),
        InviteCode.used_by.is_(None),
        or_(InviteCode.expires_at.is_(None), InviteCode.expires_at > now),
    )


class InviteLedger:
    """Persists invite codes and enforces single-use and expiry."""

    def __init__(self, db: Session, ttl_hours: Optional[int] = None):
        self.db = db
        self.ttl_hours = ttl_hours

    def create(self, creator: User, ttl_hours: Optional[int] = None) -> InviteCode:
        """Issue a fresh code on behalf of ``creator``.

        Raises:
            PermissionDenied: If the creator may not invite.
        """
        if not creator.can_invite:
            raise PermissionDenied("Invite permission required")

        ttl = ttl_hours if ttl_hours is not None else self.ttl_hours
        expires_at = utcnow() + timedelta(hours=ttl) if ttl else None
        invite = InviteCode(
            code=secrets.token_urlsafe(16),
            created_by=creator.id,
            expires_at=expires_at,
            is_active=True,
        )
        self.db.add(invite)
        self.db.commit()
        self.db.refresh(invite)
        logger.info(f"Invite {invite.id} created by user {creator.id}")
        return invite

    def validate(self, code: str) -> Optional[InviteCode]:
        """Return the invite if it is active, unconsumed and unexpired.

        An expired invite that is still flagged active is deactivated here.
        """
        invite = self.db.execute(
            select(InviteCode)
            .where(InviteCode.code == code)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if invite is None or not invite.is_active or invite.used_by is not None:
            return None

        if invite.expires_at is not None and invite.expires_at <= utcnow():
            invite.is_active = False
            self.db.commit()
            logger.info(f"Invite {invite.id} expired; deactivated")
            return None
        return invite

    def consume(self, code: str, user_id: int) -> bool:
        """Mark ``code`` as used by ``user_id``.

        The check and the write are one conditional UPDATE, so of two
        concurrent callers only one sees ``True``. The caller owns the
        transaction and must commit or roll back.
        """
        now = utcnow()
        result = self.db.execute(
            update(InviteCode)
            .where(InviteCode.code == code, _usable_clause(now))
            .values(used_by=user_id, used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_for(self, viewer: User) -> List[InviteCode]:
        """Root sees every invite; other inviters see their own."""
        stmt = select(InviteCode).order_by(InviteCode.created_at.desc(), InviteCode.id.desc())
        if not viewer.is_root:
            stmt = stmt.where(InviteCode.created_by == viewer.id)
        return list(self.db.execute(stmt).scalars())

    def delete(self, invite_id: int, actor: User) -> None:
        invite = self.db.get(InviteCode, invite_id)
        if invite is None:
            raise NotFound(f"Invite {invite_id} not found")
        if not actor.is_root and invite.created_by != actor.id:
            raise PermissionDenied("Only the creator or root may delete an invite")
        self.db.delete(invite)
        self.db.commit()
        logger.info(f"Invite {invite_id} deleted by user {actor.id}")
