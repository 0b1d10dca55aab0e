"""User registry: durable user records and their atomic mutations."""
import logging
from typing import List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from patchouli.db.models_auth import InviteCode, User
from patchouli.services.exceptions import InternalError, NotFound, PermissionDenied
from patchouli.services.invites import utcnow

logger = logging.getLogger(__name__)


class UserRegistry:
    """Reads and writes ``users`` rows."""

    def __init__(self, db: Session):
        self.db = db

    def count(self) -> int:
        return self.db.execute(select(func.count()).select_from(User)).scalar_one()

    def root_exists(self) -> bool:
        stmt = select(func.count()).select_from(User).where(User.is_root.is_(True))
        return self.db.execute(stmt).scalar_one() > 0

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    def require(self, user_id: int) -> User:
        user = self.get(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def list_all(self) -> List[User]:
        stmt = select(User).order_by(User.registered_at.desc(), User.id.desc())
        return list(self.db.execute(stmt).scalars())

    def add(
        self,
        external_id: str,
        email: str,
        name: str,
        is_root: bool = False,
        can_invite: bool = False,
        invited_by: Optional[int] = None,
    ) -> User:
        """Stage a new user and flush to obtain its id; the caller commits."""
        now = utcnow()
        user = User(
            external_id=external_id,
            email=email,
            name=name,
            is_root=is_root,
            can_invite=can_invite,
            invited_by=invited_by,
            registered_at=now,
            last_login=now,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def touch_last_login(self, user: User) -> None:
        user.last_login = utcnow()
        self.db.commit()

    def update(self, user: User, actor: User, name: Optional[str] = None,
               can_invite: Optional[bool] = None) -> User:
        """Apply a profile update; only root may change invite rights."""
        if actor.id != user.id and not actor.is_root:
            raise PermissionDenied("Only the user or root may update this profile")
        if can_invite is not None and not actor.is_root:
            raise PermissionDenied("Only root may change invite permission")

        if name is not None:
            user.name = name
        if can_invite is not None:
            user.can_invite = can_invite
        self.db.commit()
        self.db.refresh(user)
        return user

    def delete(self, user_id: int) -> None:
        """Delete a non-root user together with every invite it touched.

        Invites, back-references and the user row go in one transaction;
        the final DELETE re-checks ``is_root`` so a root row is never removed.
        """
        user = self.require(user_id)
        if user.is_root:
            raise PermissionDenied("Root user cannot be deleted")
        email = user.email

        try:
            self.db.execute(
                delete(InviteCode)
                .where(or_(InviteCode.created_by == user_id, InviteCode.used_by == user_id))
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                update(User)
                .where(User.invited_by == user_id)
                .values(invited_by=None)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(
                delete(User)
                .where(User.id == user_id, User.is_root.is_(False))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                raise PermissionDenied("Root user cannot be deleted")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(f"Failed to delete user {user_id}: {e}") from e

        self.db.expunge(user)
        self.db.expire_all()
        logger.info(f"User {user_id} ({email}) deleted with related invites")
