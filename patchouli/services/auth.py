"""Authentication dependencies: bearer credential resolution and role gates."""
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from patchouli.db.database import get_db
from patchouli.db.models_auth import User
from patchouli.services.credentials import CredentialIssuer, get_issuer
from patchouli.services.exceptions import NotFound
from patchouli.services.users import UserRegistry

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    issuer: CredentialIssuer = Depends(get_issuer),
) -> User:
    """FastAPI dependency: resolve the bearer credential and re-check the registry."""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        principal = issuer.resolve(credentials.credentials)
    except NotFound:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired credential")

    user = UserRegistry(db).get_by_email(principal.email)
    if user is None:
        logger.warning(f"Credential for {principal.email} outlived its user")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer registered")
    return user


def get_root_user(current_user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency: require the root user."""
    if not current_user.is_root:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Root access required")
    return current_user


def get_inviter_user(current_user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency: require invite permission."""
    if not current_user.can_invite:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invite permission required")
    return current_user
