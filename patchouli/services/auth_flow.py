"""Registration/login state machine driven by the OAuth callback.

A callback resolves to exactly one terminal outcome:

    success              a credential was issued
    already_registered   register attempted for a known email
    invite_required      register after bootstrap without an invite code
    invalid_invite       invite unknown, inactive, expired or already used
    not_registered       login attempted for an unknown email

Provider failures raise ``UpstreamAuthFailure`` and store failures raise
``InternalError``; neither is retried.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from patchouli.db.models_auth import User
from patchouli.services.correlation import Correlation, Purpose
from patchouli.services.credentials import CredentialIssuer, IssuedCredential
from patchouli.services.exceptions import InternalError
from patchouli.services.invites import InviteLedger
from patchouli.services.notifier import DiscordNotifier
from patchouli.services.oauth import IdentityProviderClient, Profile
from patchouli.services.pending import PendingAuthRegistry
from patchouli.services.users import UserRegistry

logger = logging.getLogger(__name__)


class AuthOutcome(str, Enum):
    SUCCESS = "success"
    ALREADY_REGISTERED = "already_registered"
    INVITE_REQUIRED = "invite_required"
    INVALID_INVITE = "invalid_invite"
    NOT_REGISTERED = "not_registered"


@dataclass
class FlowResult:
    """Terminal state of one registration or login attempt."""
    outcome: AuthOutcome
    email: str
    purpose: Purpose
    user: Optional[User] = None
    credential: Optional[IssuedCredential] = None
    out_of_band: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome is AuthOutcome.SUCCESS


class AuthFlow:
    """Decides bootstrap vs invited registration vs login and issues credentials."""

    def __init__(
        self,
        db: Session,
        issuer: CredentialIssuer,
        provider: Optional[IdentityProviderClient] = None,
        pending: Optional[PendingAuthRegistry] = None,
        notifier: Optional[DiscordNotifier] = None,
        invite_ttl_hours: Optional[int] = None,
    ):
        self.db = db
        self.issuer = issuer
        self.provider = provider
        self.pending = pending
        self.notifier = notifier
        self.users = UserRegistry(db)
        self.invites = InviteLedger(db, ttl_hours=invite_ttl_hours)

    async def handle_callback(self, code: str, correlation: Correlation) -> FlowResult:
        """Run the full callback: provider round trip, branch, issue, notify."""
        profile = await self.provider.authenticate(code)

        if correlation.purpose is Purpose.REGISTER:
            result = self.register(profile, correlation.invite_code)
        else:
            result = self.login(profile)
        if not result.ok:
            logger.info(f"Auth flow for {profile.email} ended with {result.outcome.value}")
            return result

        result.credential = self.issuer.issue(result.user)

        token = correlation.client_token
        if token and self.pending is not None:
            if self.pending.complete(token, result.credential.value, profile.email):
                result.out_of_band = True
                await self._notify(token, profile.email)
            else:
                logger.warning(f"Client token for {profile.email} is not pending; using browser flow")
        return result

    def register(self, profile: Profile, invite_code: Optional[str] = None) -> FlowResult:
        """Create a user: root on an empty store, otherwise invite-gated."""
        try:
            if self.users.get_by_email(profile.email) is not None:
                return self._result(AuthOutcome.ALREADY_REGISTERED, profile, Purpose.REGISTER)

            if self.users.count() == 0:
                user = self._bootstrap_root(profile)
                if user is not None:
                    return self._registered(profile)
                # Another registration won the bootstrap race.
                if self.users.get_by_email(profile.email) is not None:
                    return self._result(AuthOutcome.ALREADY_REGISTERED, profile, Purpose.REGISTER)

            return self._register_invited(profile, invite_code)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(f"Registration failed for {profile.email}: {e}") from e

    def login(self, profile: Profile) -> FlowResult:
        try:
            user = self.users.get_by_email(profile.email)
            if user is None:
                return self._result(AuthOutcome.NOT_REGISTERED, profile, Purpose.LOGIN)
            self.users.touch_last_login(user)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(f"Login failed for {profile.email}: {e}") from e

        logger.info(f"User logged in: {profile.email}")
        return self._result(AuthOutcome.SUCCESS, profile, Purpose.LOGIN, user=user)

    def _bootstrap_root(self, profile: Profile) -> Optional[User]:
        try:
            user = self.users.add(
                external_id=profile.id,
                email=profile.email,
                name=profile.name,
                is_root=True,
                can_invite=True,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return None
        logger.info(f"Root user registered: {profile.email}")
        return user

    def _register_invited(self, profile: Profile, invite_code: Optional[str]) -> FlowResult:
        if not invite_code:
            return self._result(AuthOutcome.INVITE_REQUIRED, profile, Purpose.REGISTER)

        invite = self.invites.validate(invite_code)
        if invite is None:
            return self._result(AuthOutcome.INVALID_INVITE, profile, Purpose.REGISTER)

        try:
            user = self.users.add(
                external_id=profile.id,
                email=profile.email,
                name=profile.name,
                invited_by=invite.created_by,
            )
            # Conditional update: loses cleanly to a concurrent consumer.
            if not self.invites.consume(invite_code, user.id):
                self.db.rollback()
                return self._result(AuthOutcome.INVALID_INVITE, profile, Purpose.REGISTER)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self._result(AuthOutcome.ALREADY_REGISTERED, profile, Purpose.REGISTER)

        logger.info(f"User registered with invite {invite.id}: {profile.email}")
        return self._registered(profile)

    def _registered(self, profile: Profile) -> FlowResult:
        self.db.expire_all()
        user = self.users.get_by_email(profile.email)
        if user is None:
            raise InternalError(f"User {profile.email} missing after registration")
        return self._result(AuthOutcome.SUCCESS, profile, Purpose.REGISTER, user=user)

    async def _notify(self, token: str, email: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.send_auth_complete(token, email)
        except Exception as e:
            logger.error(f"Auth-complete notification failed for {email}: {e}")

    @staticmethod
    def _result(outcome: AuthOutcome, profile: Profile, purpose: Purpose,
                user: Optional[User] = None) -> FlowResult:
        return FlowResult(outcome=outcome, email=profile.email, purpose=purpose, user=user)
