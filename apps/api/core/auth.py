"""
Authentication dependencies.

Provides FastAPI dependencies for:
- Resolving the user id from the session bearer token
- Guarding scheduled trigger endpoints with the shared cron secret
"""
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from uuid import UUID

from core.config import settings
from core.exceptions import UnauthorizedError
from core.security import decode_access_token, secrets_match

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UUID:
    """
    Get the id of the authenticated user from the JWT session token.

    Raises UnauthorizedError if the token is missing or invalid.
    """
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    try:
        return UUID(str(user_id))
    except ValueError:
        raise UnauthorizedError("Invalid user ID format")


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """
    Guard for scheduled triggers: expects ``Authorization: Bearer <CRON_SECRET>``.

    An unset CRON_SECRET rejects every call.
    """
    provided = None
    if authorization and authorization.lower().startswith("bearer "):
        provided = authorization[len("bearer "):].strip()
    if not secrets_match(provided, settings.CRON_SECRET):
        raise UnauthorizedError("Unauthorized", error_code="INVALID_CRON_SECRET")
