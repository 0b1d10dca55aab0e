"""Authentication API endpoints: provider login, callback, token endpoint."""
import html
import logging
from typing import Optional, Union
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from patchouli.api.schemas import (
    TokenRequest, GrantTypeEnum, AccessTokenResponse, PendingTokenResponse,
    PendingStatusResponse, SuccessResponse, UserInfo,
)
from patchouli.config import Settings, get_settings
from patchouli.db.database import get_db
from patchouli.services.auth import security
from patchouli.services.auth_flow import AuthFlow, AuthOutcome, FlowResult
from patchouli.services.correlation import CorrelationStore, Purpose, get_correlation_store
from patchouli.services.credentials import CredentialIssuer, get_issuer
from patchouli.services.exceptions import InternalError, NotFound, UpstreamAuthFailure
from patchouli.services.notifier import DiscordNotifier, get_notifier
from patchouli.services.oauth import IdentityProviderClient, get_provider_client
from patchouli.services.pending import PendingAuthRegistry, PendingStatus, get_pending_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# Outcome -> (HTTP status, user-facing message)
OUTCOME_ERRORS = {
    AuthOutcome.ALREADY_REGISTERED: (status.HTTP_409_CONFLICT, "This account ({email}) is already registered."),
    AuthOutcome.INVITE_REQUIRED: (status.HTTP_400_BAD_REQUEST, "An invite code is required to register."),
    AuthOutcome.INVALID_INVITE: (status.HTTP_400_BAD_REQUEST, "The invite code is invalid, expired or already used."),
    AuthOutcome.NOT_REGISTERED: (status.HTTP_403_FORBIDDEN, "This account ({email}) is not registered."),
}


def get_auth_flow(
    db: Session = Depends(get_db),
    issuer: CredentialIssuer = Depends(get_issuer),
    provider: IdentityProviderClient = Depends(get_provider_client),
    pending: PendingAuthRegistry = Depends(get_pending_registry),
    notifier: DiscordNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> AuthFlow:
    return AuthFlow(
        db,
        issuer,
        provider=provider,
        pending=pending,
        notifier=notifier,
        invite_ttl_hours=settings.invite_ttl_hours,
    )


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"<html><head><title>{html.escape(title)}</title></head>"
        f"<body><h1>{html.escape(title)}</h1>{body}</body></html>",
        status_code=status_code,
    )


def _outcome_error(result: FlowResult):
    code, template = OUTCOME_ERRORS[result.outcome]
    return code, template.format(email=result.email)


async def _run_flow(flow: AuthFlow, code: str, state: str, correlations: CorrelationStore) -> FlowResult:
    """Claim the login state and run the flow; raises HTTPException on failure."""
    correlation = correlations.claim(state)
    if correlation is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown or expired login state")
    try:
        return await flow.handle_callback(code, correlation)
    except UpstreamAuthFailure as e:
        logger.warning(f"Identity provider failure: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Identity provider authentication failed")
    except InternalError as e:
        logger.error(f"Auth flow internal error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


# ===== Browser flow =====

@router.get("/login")
def login(
    register: bool = False,
    invite: Optional[str] = None,
    token: Optional[str] = None,
    provider: IdentityProviderClient = Depends(get_provider_client),
    correlations: CorrelationStore = Depends(get_correlation_store),
):
    """Redirect to the identity provider, remembering the caller's intent."""
    purpose = Purpose.REGISTER if register else Purpose.LOGIN
    state = correlations.open(purpose, client_token=token, invite_code=invite)
    return RedirectResponse(provider.authorize_url(state), status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/callback")
async def callback(
    code: str,
    state: str,
    flow: AuthFlow = Depends(get_auth_flow),
    correlations: CorrelationStore = Depends(get_correlation_store),
    settings: Settings = Depends(get_settings),
):
    """Provider redirect target for the browser flow."""
    try:
        result = await _run_flow(flow, code, state, correlations)
    except HTTPException as e:
        return _page("Authentication Error", f"<p>{html.escape(e.detail)}</p>", e.status_code)

    if not result.ok:
        status_code, message = _outcome_error(result)
        title = "Registration Error" if result.purpose is Purpose.REGISTER else "Login Error"
        return _page(title, f'<p>{html.escape(message)}</p><p><a href="/">Back</a></p>', status_code)

    action = "Registration" if result.purpose is Purpose.REGISTER else "Login"
    if result.out_of_band:
        return _page(
            f"{action} Successful!",
            f"<p>Welcome, {html.escape(result.user.name)}!</p>"
            "<p><strong>Authentication complete. You can close this window.</strong></p>",
        )

    query = urlencode({"session_id": result.credential.value, "user_email": result.email})
    return RedirectResponse(f"{settings.frontend_url.rstrip('/')}/callback?{query}",
                            status_code=status.HTTP_302_FOUND)


# ===== Token endpoint =====

@router.post("/auth/tokens", response_model=Union[AccessTokenResponse, PendingTokenResponse])
async def create_token(
    req: TokenRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    correlations: CorrelationStore = Depends(get_correlation_store),
    pending: PendingAuthRegistry = Depends(get_pending_registry),
    settings: Settings = Depends(get_settings),
):
    """Start an out-of-band login, or trade a provider code for a credential."""
    if req.grant_type is GrantTypeEnum.CLIENT_CREDENTIALS:
        token = pending.create_pending()
        auth_url = f"{settings.public_base_url.rstrip('/')}/login?{urlencode({'token': token})}"
        return PendingTokenResponse(token=token, auth_url=auth_url)

    if not req.code or not req.state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="code and state are required")

    result = await _run_flow(flow, req.code, req.state, correlations)
    if not result.ok:
        status_code, message = _outcome_error(result)
        raise HTTPException(status_code=status_code, detail=message)

    return AccessTokenResponse(
        access_token=result.credential.value,
        token_type=result.credential.token_type,
        expires_in=result.credential.expires_in,
        user=UserInfo.model_validate(result.user),
    )


@router.get("/auth/tokens/{token}", response_model=PendingStatusResponse)
def poll_token(
    token: str,
    pending: PendingAuthRegistry = Depends(get_pending_registry),
    issuer: CredentialIssuer = Depends(get_issuer),
):
    """Poll an out-of-band login started with the client_credentials grant."""
    result = pending.poll(token)
    if result.status is PendingStatus.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown authentication token")
    if result.status is PendingStatus.PENDING:
        return PendingStatusResponse(status="pending")

    try:
        issuer.resolve(result.completion.credential)
    except NotFound:
        return PendingStatusResponse(status="error")
    return PendingStatusResponse(
        status="completed",
        access_token=result.completion.credential,
        user_email=result.completion.email,
    )


@router.delete("/auth/tokens", response_model=SuccessResponse)
def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    issuer: CredentialIssuer = Depends(get_issuer),
):
    """End a session; signed tokens simply lapse at expiry."""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    if issuer.revoke(credentials.credentials):
        return SuccessResponse(message="Logged out")

    try:
        issuer.resolve(credentials.credentials)
    except NotFound:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired credential")
    return SuccessResponse(message="Token discarded; it expires on its own")
