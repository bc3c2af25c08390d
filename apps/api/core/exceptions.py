"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Domain errors raised by
the Whoop services live next to those services; routers translate them into
the classes below.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class BadRequestError(APIException):
    """Missing or malformed request parameters."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="BAD_REQUEST"
        )


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Not authenticated", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )


class WhoopNotConnectedAPIError(UnauthorizedError):
    """The user has no usable Whoop credential and must re-authorize."""

    def __init__(self, detail: str = "Not connected to Whoop"):
        super().__init__(detail=detail, error_code="WHOOP_NOT_CONNECTED")


class SyncFailedError(APIException):
    """A sync could not complete, e.g. Whoop answered with an error."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="SYNC_FAILED"
        )
