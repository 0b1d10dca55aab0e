"""Invite code API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from patchouli.api.schemas import InviteCreate, InviteResponse, SuccessResponse
from patchouli.config import Settings, get_settings
from patchouli.db.database import get_db
from patchouli.db.models_auth import User
from patchouli.services.auth import get_inviter_user
from patchouli.services.exceptions import NotFound, PermissionDenied
from patchouli.services.invites import InviteLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invites", tags=["invites"])


@router.get("", response_model=List[InviteResponse])
def list_invites(
    inviter: User = Depends(get_inviter_user),
    db: Session = Depends(get_db),
):
    return InviteLedger(db).list_for(inviter)


@router.post("", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
def create_invite(
    req: Optional[InviteCreate] = None,
    inviter: User = Depends(get_inviter_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    ledger = InviteLedger(db, ttl_hours=settings.invite_ttl_hours)
    ttl = req.expires_in_hours if req else None
    try:
        return ledger.create(inviter, ttl_hours=ttl)
    except PermissionDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.delete("/{invite_id}", response_model=SuccessResponse)
def delete_invite(
    invite_id: int,
    inviter: User = Depends(get_inviter_user),
    db: Session = Depends(get_db),
):
    try:
        InviteLedger(db).delete(invite_id, inviter)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return SuccessResponse(message=f"Invite {invite_id} deleted")
