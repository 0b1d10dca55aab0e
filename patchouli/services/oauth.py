"""Identity provider client - Google OAuth2 authorization code flow."""
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from patchouli.config import get_settings
from patchouli.services.exceptions import UpstreamAuthFailure

logger = logging.getLogger(__name__)

SCOPES = ("openid", "email", "profile")


@dataclass(frozen=True)
class Profile:
    """User profile returned by the provider."""
    id: str
    email: str
    name: str


class IdentityProviderClient:
    """Builds authorization URLs and trades codes for user profiles."""

    def __init__(self, settings=None):
        settings = settings or get_settings()
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_url = settings.redirect_url
        self.auth_url = settings.google_auth_url
        self.token_url = settings.google_token_url
        self.userinfo_url = settings.google_userinfo_url
        self.timeout = settings.provider_timeout_seconds

    def authorize_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for a provider access token.

        Raises:
            UpstreamAuthFailure: On network errors, API errors, or a body
                without an access token.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_url,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.token_url, data=data,
                                             headers={"Accept": "application/json"})
                response.raise_for_status()
            access_token = response.json()["access_token"]
        except httpx.HTTPStatusError as e:
            raise UpstreamAuthFailure(
                f"Token exchange failed {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise UpstreamAuthFailure(f"Token exchange network error: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamAuthFailure(f"Malformed token response: {e}") from e

        if not access_token:
            raise UpstreamAuthFailure("Empty access token from provider")
        return access_token

    async def fetch_profile(self, access_token: str) -> Profile:
        """Fetch id, email and name for the token's owner."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self.userinfo_url,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
            body = response.json()
            profile = Profile(id=str(body["id"]), email=body["email"], name=body.get("name") or body["email"])
        except httpx.HTTPStatusError as e:
            raise UpstreamAuthFailure(f"Profile fetch failed {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise UpstreamAuthFailure(f"Profile fetch network error: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamAuthFailure(f"Malformed profile response: {e}") from e

        logger.info("Provider profile fetched: email=%s", profile.email)
        return profile

    async def authenticate(self, code: str) -> Profile:
        """Code exchange followed by profile fetch. No retries."""
        access_token = await self.exchange_code(code)
        return await self.fetch_profile(access_token)


def get_provider_client() -> IdentityProviderClient:
    """FastAPI dependency returning a provider client for current settings."""
    return IdentityProviderClient(get_settings())
