"""User management API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from patchouli.api.auth import OUTCOME_ERRORS, get_auth_flow
from patchouli.api.schemas import UserCreate, UserUpdate, UserResponse, SuccessResponse
from patchouli.db.database import get_db
from patchouli.db.models_auth import User
from patchouli.services.auth import get_current_user, get_root_user
from patchouli.services.auth_flow import AuthFlow
from patchouli.services.exceptions import InternalError, NotFound, PermissionDenied
from patchouli.services.oauth import Profile
from patchouli.services.users import UserRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserResponse])
def list_users(
    root: User = Depends(get_root_user),
    db: Session = Depends(get_db),
):
    return UserRegistry(db).list_all()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(req: UserCreate, flow: AuthFlow = Depends(get_auth_flow)):
    """Register without a provider round trip: bootstrap root or invite-gated."""
    profile = Profile(id=req.external_id, email=req.email, name=req.name)
    try:
        result = flow.register(profile, req.invite_code)
    except InternalError as e:
        logger.error(f"User creation failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

    if not result.ok:
        code, template = OUTCOME_ERRORS[result.outcome]
        raise HTTPException(status_code=code, detail=template.format(email=result.email))
    return result.user


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.id != user_id and not current_user.is_root:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    user = UserRegistry(db).get(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    req: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    registry = UserRegistry(db)
    try:
        user = registry.require(user_id)
        return registry.update(user, current_user, name=req.name, can_invite=req.can_invite)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.delete("/{user_id}", response_model=SuccessResponse)
def delete_user(
    user_id: int,
    root: User = Depends(get_root_user),
    db: Session = Depends(get_db),
):
    try:
        UserRegistry(db).delete(user_id)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InternalError as e:
        logger.error(str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    return SuccessResponse(message=f"User {user_id} deleted")
