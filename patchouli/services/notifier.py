"""Discord bot notification service."""
import logging

import httpx

logger = logging.getLogger(__name__)


class DiscordNotifier:
    """Tells the Discord bot that an out-of-band login finished."""

    def __init__(self, settings):
        """
        Initialize notifier.

        Args:
            settings: Application settings with the bot endpoint.
        """
        self._base_url = (settings.discord_bot_url or "").rstrip("/")
        self._timeout = settings.notification_timeout_seconds

    def is_enabled(self) -> bool:
        """Check if a bot endpoint is configured."""
        return bool(self._base_url)

    async def send_auth_complete(self, auth_token: str, user_email: str) -> bool:
        """
        POST an auth-complete notice to the bot.

        Args:
            auth_token: The pending-auth token the bot is polling.
            user_email: Email of the user who logged in.

        Returns:
            True if the bot acknowledged, False otherwise. Never raises.
        """
        if not self.is_enabled():
            logger.debug("Discord notifications disabled")
            return False

        payload = {"auth_token": auth_token, "user_email": user_email}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(f"{self._base_url}/auth-complete", json=payload)
        except Exception as e:
            logger.error(f"Error sending Discord notification: {e}")
            return False

        if response.is_success:
            logger.info(f"Discord notification sent for {user_email}")
            return True
        logger.warning(f"Discord notification failed with status {response.status_code}")
        return False


def get_notifier():
    """Get DiscordNotifier instance with current settings."""
    from patchouli.config import get_settings
    return DiscordNotifier(get_settings())
