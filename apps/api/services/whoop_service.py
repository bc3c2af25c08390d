"""
Whoop API client: OAuth, token refresh gate and paginated collection reads.

Every remote call goes through `get_valid_access_token`, which hands out the
stored access token while it is fresh and refreshes it (once per user, even
under concurrent callers) when it is inside the refresh margin. A credential
that cannot be refreshed is deleted so the user shows as disconnected.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Union
from urllib.parse import urlencode
from uuid import UUID

import requests
from redis.exceptions import LockError, RedisError

from core.cache import get_redis_client
from core.config import settings
from services.whoop_token_store import WhoopCredential, WhoopTokenStore

logger = logging.getLogger(__name__)

AUTH_PATH = "/oauth/oauth2/auth"
TOKEN_PATH = "/oauth/oauth2/token"

CYCLES_ENDPOINT = "/developer/v2/cycle"
RECOVERY_ENDPOINT = "/developer/v2/recovery"
SLEEP_ENDPOINT = "/developer/v2/activity/sleep"
WORKOUT_ENDPOINT = "/developer/v2/activity/workout"

# Seconds a refresh may hold the per-user lock / wait for it.
REFRESH_LOCK_TTL_S = 60
REFRESH_LOCK_WAIT_S = 30
# Token responses that omit (or null) expires_in
DEFAULT_EXPIRES_IN_S = 3600

DateLike = Union[date, str]


class WhoopNotConnectedError(RuntimeError):
    """The user has no usable Whoop credential (never connected, or refresh failed)."""

    def __init__(self, user_id: Optional[UUID] = None):
        super().__init__("Not connected to Whoop")
        self.user_id = user_id


class WhoopAPIError(RuntimeError):
    """Non-2xx response from a Whoop collection endpoint."""

    def __init__(self, endpoint: str, status_code: int, body: str = ""):
        super().__init__(f"Whoop API error: {status_code} - {endpoint}")
        self.endpoint = endpoint
        self.status_code = int(status_code)
        self.body = body


class WhoopTokenRefreshError(RuntimeError):
    """The token endpoint rejected the refresh or was unreachable."""


def _url(path: str) -> str:
    return f"{settings.WHOOP_API_BASE.rstrip('/')}{path}"


# --- OAuth ---

def get_auth_url(state: str) -> str:
    if not settings.WHOOP_CLIENT_ID or not settings.WHOOP_REDIRECT_URI:
        raise ValueError("WHOOP_CLIENT_ID and WHOOP_REDIRECT_URI must be set")

    params = {
        "client_id": settings.WHOOP_CLIENT_ID,
        "redirect_uri": settings.WHOOP_REDIRECT_URI,
        "response_type": "code",
        "scope": settings.WHOOP_SCOPES,
        "state": state,
    }
    return f"{_url(AUTH_PATH)}?{urlencode(params)}"


def exchange_code_for_token(code: str) -> Dict[str, Any]:
    """
    Exchange an authorization code for tokens.

    Returns dict with: access_token, refresh_token, expires_in, token_type, scope
    Raises requests.HTTPError on a non-2xx response.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.WHOOP_REDIRECT_URI,
        "client_id": settings.WHOOP_CLIENT_ID,
        "client_secret": settings.WHOOP_CLIENT_SECRET,
    }
    r = requests.post(_url(TOKEN_PATH), data=data, timeout=settings.EXTERNAL_API_TIMEOUT)
    r.raise_for_status()
    return r.json()


def refresh_access_token(refresh_token: str) -> Dict[str, Any]:
    """
    Exchange a refresh token for a new token pair.

    Raises WhoopTokenRefreshError on network failure, non-2xx, or a payload
    without an access token.
    """
    data = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": settings.WHOOP_CLIENT_ID,
        "client_secret": settings.WHOOP_CLIENT_SECRET,
    }
    try:
        r = requests.post(_url(TOKEN_PATH), data=data, timeout=settings.EXTERNAL_API_TIMEOUT)
        r.raise_for_status()
        payload = r.json()
    except requests.RequestException as e:
        raise WhoopTokenRefreshError(f"Failed to refresh token: {e}") from e
    except ValueError as e:
        raise WhoopTokenRefreshError("Token endpoint returned invalid JSON") from e

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise WhoopTokenRefreshError("Token endpoint response missing access_token")
    return payload


# --- Refresh gate ---

def is_token_expired(credential: WhoopCredential, now: Optional[datetime] = None) -> bool:
    """True when less than the refresh margin remains before expiry."""
    now = now or datetime.now(timezone.utc)
    margin = timedelta(seconds=settings.WHOOP_TOKEN_REFRESH_MARGIN_S)
    return credential.expires_at - now < margin


# user id -> [lock, callers holding or waiting on it]; dropped when unused.
_local_locks: Dict[str, List[Any]] = {}
_local_locks_guard = threading.Lock()


@contextmanager
def _local_lock(user_id: UUID) -> Iterator[None]:
    key = str(user_id)
    with _local_locks_guard:
        entry = _local_locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _local_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _local_locks[key]


@contextmanager
def _refresh_lock(user_id: UUID) -> Iterator[None]:
    """
    Serialize refreshes for one user.

    Uses a Redis lock so API processes and workers share it; falls back to a
    per-process lock when Redis is unavailable.
    """
    client = get_redis_client()
    if client is not None:
        lock = client.lock(
            f"lock:whoop:refresh:{user_id}",
            timeout=REFRESH_LOCK_TTL_S,
            blocking_timeout=REFRESH_LOCK_WAIT_S,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.warning(f"Redis refresh lock failed for user {user_id}: {e}. Using local lock.")
        else:
            if not acquired:
                logger.warning(f"Timed out waiting for Whoop refresh lock (user {user_id})")
            try:
                yield
            finally:
                if acquired:
                    try:
                        lock.release()
                    except LockError:
                        # Lock expired while refreshing; another holder may own it now.
                        logger.warning(f"Whoop refresh lock for user {user_id} expired before release")
            return

    with _local_lock(user_id):
        yield


def get_valid_access_token(
    store: WhoopTokenStore,
    user_id: UUID,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Return an access token usable right now, refreshing if needed.

    Returns None when the user has no credential, or when the refresh failed
    (in which case the credential has been deleted).
    """
    credential = store.get(user_id)
    if credential is None:
        return None
    if not is_token_expired(credential, now):
        return credential.access_token

    with _refresh_lock(user_id):
        # Another caller may have refreshed (or dropped) it while we waited.
        credential = store.get(user_id)
        if credential is None:
            return None
        if not is_token_expired(credential, now):
            return credential.access_token

        try:
            tokens = refresh_access_token(credential.refresh_token)
        except WhoopTokenRefreshError as e:
            logger.warning(f"Whoop token refresh failed for user {user_id}: {e}. Disconnecting.")
            store.delete(user_id)
            return None

        refreshed = store.put(
            user_id,
            tokens["access_token"],
            tokens.get("refresh_token") or credential.refresh_token,
            tokens.get("expires_in") or DEFAULT_EXPIRES_IN_S,
            whoop_user_id=credential.whoop_user_id,
        )
        logger.info(f"Whoop token refreshed for user {user_id}")
        return refreshed.access_token


# --- Collections ---

def _day(value: DateLike) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


def fetch_all_pages(
    endpoint: str,
    access_token: str,
    start_date: DateLike,
    end_date: DateLike,
) -> List[Dict[str, Any]]:
    """
    Walk a paginated collection endpoint and return every record in the window.

    The window covers whole UTC days: start_date 00:00:00.000 to end_date
    23:59:59.999. Raises WhoopAPIError on the first non-2xx page.
    """
    url = _url(endpoint)
    headers = {"Authorization": f"Bearer {access_token}"}
    records: List[Dict[str, Any]] = []
    next_token: Optional[str] = None
    pages = 0

    while True:
        params = {
            "start": f"{_day(start_date)}T00:00:00.000Z",
            "end": f"{_day(end_date)}T23:59:59.999Z",
            "limit": settings.WHOOP_PAGE_SIZE,
        }
        if next_token:
            params["nextToken"] = next_token

        r = requests.get(url, headers=headers, params=params, timeout=settings.EXTERNAL_API_TIMEOUT)
        pages += 1
        if not (200 <= r.status_code < 300):
            body = r.text or ""
            logger.error(f"Whoop API error {r.status_code} for {endpoint}: {body[:500]}")
            raise WhoopAPIError(endpoint, r.status_code, body)

        payload = r.json() or {}
        records.extend(payload.get("records") or [])
        next_token = payload.get("next_token")
        if not next_token:
            break

    logger.debug(f"Fetched {len(records)} record(s) from {endpoint} in {pages} page(s)")
    return records


def fetch_cycles(access_token: str, start_date: DateLike, end_date: DateLike) -> List[Dict[str, Any]]:
    return fetch_all_pages(CYCLES_ENDPOINT, access_token, start_date, end_date)


def fetch_recoveries(access_token: str, start_date: DateLike, end_date: DateLike) -> List[Dict[str, Any]]:
    return fetch_all_pages(RECOVERY_ENDPOINT, access_token, start_date, end_date)


def fetch_sleep(access_token: str, start_date: DateLike, end_date: DateLike) -> List[Dict[str, Any]]:
    return fetch_all_pages(SLEEP_ENDPOINT, access_token, start_date, end_date)


def fetch_workouts(access_token: str, start_date: DateLike, end_date: DateLike) -> List[Dict[str, Any]]:
    return fetch_all_pages(WORKOUT_ENDPOINT, access_token, start_date, end_date)
