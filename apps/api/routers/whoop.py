"""
Whoop Integration Router

Handles the OAuth connect flow, connection status, on-demand syncs and reads
of the cached Whoop data.
"""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional
from urllib.parse import urlencode
from uuid import UUID

import requests
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from core.auth import get_current_user_id
from core.config import settings
from core.database import StorageClient, get_storage
from core.exceptions import BadRequestError, SyncFailedError, WhoopNotConnectedAPIError
from services import whoop_service, whoop_sync
from services.oauth_state import create_whoop_state, user_id_from_whoop_state
from services.whoop_service import WhoopAPIError, WhoopNotConnectedError
from services.whoop_token_store import WhoopTokenStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/whoop", tags=["whoop"])


class MetricsSyncRequest(BaseModel):
    days: int = Field(default=settings.WHOOP_METRICS_SYNC_DAYS, ge=1, le=365)


class WorkoutsSyncRequest(BaseModel):
    days: int = Field(default=settings.WHOOP_WORKOUTS_SYNC_DAYS, ge=1, le=365)


def parse_date_param(value: Optional[str], name: str = "date") -> date:
    """Required YYYY-MM-DD query parameter; 400 when missing or malformed."""
    if not value:
        raise BadRequestError(f"{name.capitalize()} parameter required")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise BadRequestError(f"Invalid {name}: expected YYYY-MM-DD")


@contextmanager
def whoop_errors() -> Iterator[None]:
    """Map Whoop service errors onto API errors."""
    try:
        yield
    except WhoopNotConnectedError:
        raise WhoopNotConnectedAPIError()
    except WhoopAPIError as e:
        raise SyncFailedError(f"Whoop API error: {e.status_code} - {e.endpoint}")


def _web_redirect(**params) -> RedirectResponse:
    base = settings.WEB_APP_BASE_URL.rstrip("/")
    return RedirectResponse(url=f"{base}/?{urlencode(params)}", status_code=302)


@router.get("/auth-url")
def get_whoop_auth_url(user_id: UUID = Depends(get_current_user_id)):
    """
    Get the Whoop OAuth authorization URL for the current user.

    The signed `state` binds the callback to this user.
    """
    try:
        return {"auth_url": whoop_service.get_auth_url(create_whoop_state(user_id))}
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/callback")
def whoop_callback(
    code: Optional[str] = Query(None, description="Authorization code from Whoop"),
    state: Optional[str] = Query(None, description="Signed state token"),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    storage: StorageClient = Depends(get_storage),
):
    """
    Handle the Whoop OAuth callback and redirect back to the web app.

    Failures never surface as an API error; they are passed to the UI as
    `whoop_error`.
    """
    if error:
        logger.warning(f"Whoop OAuth error: {error} {error_description or ''}")
        return _web_redirect(whoop_error=error_description or "Unknown error")
    if not code:
        return _web_redirect(whoop_error="No authorization code received")

    user_id = user_id_from_whoop_state(state)
    if user_id is None:
        return _web_redirect(whoop_error="Invalid state parameter")

    try:
        tokens = whoop_service.exchange_code_for_token(code)
    except requests.Timeout:
        logger.error(f"Whoop token exchange timed out for user {user_id}")
        return _web_redirect(whoop_error="Request timed out")
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "unknown"
        logger.error(f"Whoop token exchange failed for user {user_id}: {status}")
        return _web_redirect(whoop_error=f"Failed to exchange code: {status}")
    except requests.RequestException as e:
        logger.error(f"Whoop token exchange error for user {user_id}: {e}")
        return _web_redirect(whoop_error="Authentication failed")

    if not tokens.get("access_token") or not tokens.get("refresh_token"):
        logger.error(f"Whoop token exchange for user {user_id} returned no token pair")
        return _web_redirect(whoop_error="Authentication failed")

    WhoopTokenStore(storage).put(
        user_id,
        tokens["access_token"],
        tokens["refresh_token"],
        tokens.get("expires_in") or whoop_service.DEFAULT_EXPIRES_IN_S,
    )
    return _web_redirect(whoop_connected="true")


@router.get("/status")
def get_whoop_status(
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    """Connection status. Refreshes the token first if it is about to expire."""
    store = WhoopTokenStore(storage)
    if not whoop_service.get_valid_access_token(store, user_id):
        return {"connected": False}

    credential = store.get(user_id)
    if credential is None:
        return {"connected": False}
    return {
        "connected": True,
        "expires_at": credential.expires_at.isoformat(),
        "is_expiring_soon": whoop_service.is_token_expired(credential),
    }


@router.post("/disconnect")
def disconnect_whoop(
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    WhoopTokenStore(storage).delete(user_id)
    return {"success": True}


@router.post("/sync")
def sync_whoop_metrics(
    request: Optional[MetricsSyncRequest] = None,
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    days = (request or MetricsSyncRequest()).days
    with whoop_errors():
        result = whoop_sync.sync_recent_metrics(storage, user_id, days)
    return {"success": True, "synced": result["synced_count"], "date_range": result["date_range"]}


@router.get("/data")
def get_whoop_data(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    """Cached daily metrics for one date (null when not synced)."""
    day = parse_date_param(date)
    return {"data": whoop_sync.get_cached_metrics(storage, user_id, day)}


@router.post("/workouts/sync")
def sync_whoop_workouts(
    request: Optional[WorkoutsSyncRequest] = None,
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    days = (request or WorkoutsSyncRequest()).days
    with whoop_errors():
        result = whoop_sync.sync_recent_workouts(storage, user_id, days)
    return {"success": True, "synced": result["synced_count"], "date_range": result["date_range"]}


@router.get("/workouts")
def get_whoop_workouts(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    unlinked: bool = Query(False, description="Only workouts not linked to a cardio session"),
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    day = parse_date_param(date) if date else None
    return {"data": whoop_sync.list_cached_workouts(storage, user_id, day=day, unlinked_only=unlinked)}
