"""
Authentication Module

Provides the authentication dependency for the scheduler-facing trigger endpoints.

External schedulers (cron services, platform automation) call the overdue sweep
with a shared service token in the Authorization header:

    Authorization: Bearer <SWEEP_TRIGGER_TOKEN>

SECURITY NOTE:
- Tokens are compared in constant time
- Unauthenticated calls are only accepted when PYTHON_ENV=development AND
  no token is configured
- Outside development a missing token configuration disables the endpoint
"""

import logging
import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=False,
    description="Service token for scheduler-triggered jobs",
)


@dataclass
class TriggerCaller:
    """
    Represents an authenticated caller of a trigger endpoint.

    Attributes:
        name: Caller label used in logs
        authenticated: False when the development bypass was used
    """

    name: str
    authenticated: bool = True

    def __str__(self) -> str:
        return f"TriggerCaller(name={self.name}, authenticated={self.authenticated})"


_SERVICE_CALLER = TriggerCaller(name="service-token")
_DEV_CALLER = TriggerCaller(name="development", authenticated=False)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_trigger_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TriggerCaller:
    """
    FastAPI dependency that validates the service token of a trigger call.

    Args:
        credentials: Optional HTTP Bearer token from the Authorization header

    Returns:
        TriggerCaller describing the caller

    Raises:
        HTTPException 401: If the token is missing or does not match
        HTTPException 503: If no token is configured outside development
    """
    expected = settings.sweep_trigger_token

    if not expected:
        if settings.is_development and not settings.is_production:
            logger.warning(
                "SECURITY: SWEEP_TRIGGER_TOKEN not set - accepting unauthenticated "
                "trigger call (development only)"
            )
            return _DEV_CALLER

        logger.error("SWEEP_TRIGGER_TOKEN not configured - rejecting trigger call")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "TRIGGER_NOT_CONFIGURED",
                "message": "Trigger authentication is not configured.",
            },
        )

    if credentials is None:
        raise _unauthorized("MISSING_TOKEN", "A bearer token is required.")

    if not secrets.compare_digest(credentials.credentials.encode(), expected.encode()):
        logger.warning("Rejected trigger call with invalid service token")
        raise _unauthorized("INVALID_TOKEN", "Invalid service token.")

    return _SERVICE_CALLER


__all__ = [
    "TriggerCaller",
    "get_trigger_caller",
]
