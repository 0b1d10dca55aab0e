"""Service-layer error taxonomy."""


class GatewayError(Exception):
    """Base exception for gateway service errors."""


class UpstreamAuthFailure(GatewayError):
    """Identity provider token exchange or profile fetch failed."""


class PermissionDenied(GatewayError):
    """Caller lacks the root or invite right required for the action."""


class NotFound(GatewayError):
    """Unknown user, invite, session, token or login state."""


class InternalError(GatewayError):
    """Store, signing or post-write verification failure."""
