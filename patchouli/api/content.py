"""Protected content and public system status."""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from patchouli.config import APP_VERSION
from patchouli.api.schemas import ContentResponse, SystemStatusResponse
from patchouli.db.database import get_db
from patchouli.db.models_auth import User
from patchouli.services.auth import get_current_user
from patchouli.services.users import UserRegistry

router = APIRouter(tags=["content"])

PLACEHOLDER_CONTENT = (
    "The Grand Library of Patchouli Knowledge awaits your exploration. "
    "May your quest for knowledge be fruitful and your discoveries illuminate the path ahead."
)


@router.get("/content", response_model=ContentResponse)
def get_content(current_user: User = Depends(get_current_user)):
    return ContentResponse(
        message=PLACEHOLDER_CONTENT,
        user=current_user.email,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/system/status", response_model=SystemStatusResponse)
def system_status(db: Session = Depends(get_db)):
    registry = UserRegistry(db)
    return SystemStatusResponse(
        status="ok",
        version=APP_VERSION,
        users_registered=registry.count(),
        root_user_exists=registry.root_exists(),
        timestamp=datetime.now(timezone.utc),
    )
