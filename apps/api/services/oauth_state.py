"""
Signed OAuth state for the Whoop connect flow.

The `state` query parameter is the only thing tying the provider callback back
to the user who started the flow, so it carries the user id under an HMAC
signature and an issued-at timestamp. The callback never trusts an unsigned or
expired value.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from core.config import settings


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("utf-8"))


def _sign(payload_b64: str) -> str:
    key = settings.SECRET_KEY.encode("utf-8")
    mac = hmac.new(key, payload_b64.encode("utf-8"), hashlib.sha256).digest()
    return _b64url_encode(mac)


def _now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def create_oauth_state(data: Dict[str, Any]) -> str:
    """Sign `data` plus an issued-at timestamp and a nonce."""
    payload = dict(data)
    payload["iat"] = _now_ts()
    payload["nonce"] = secrets.token_urlsafe(8)
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    payload_b64 = _b64url_encode(raw)
    return f"{payload_b64}.{_sign(payload_b64)}"


def verify_oauth_state(token: Optional[str], *, ttl_s: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """
    Verify signature and TTL. Returns the payload dict if valid, else None.
    """
    if not token or "." not in token:
        return None
    payload_b64, sig = token.split(".", 1)
    if not payload_b64 or not sig:
        return None
    if not hmac.compare_digest(sig, _sign(payload_b64)):
        return None
    try:
        payload = json.loads(_b64url_decode(payload_b64))
    except (ValueError, binascii.Error):
        return None
    if not isinstance(payload, dict):
        return None

    try:
        iat = int(payload.get("iat"))
    except (TypeError, ValueError):
        return None

    ttl = int(ttl_s if ttl_s is not None else settings.OAUTH_STATE_TTL_S)
    if ttl > 0 and (_now_ts() - iat) > ttl:
        return None
    return payload


def create_whoop_state(user_id: UUID) -> str:
    return create_oauth_state({"user_id": str(user_id), "provider": "whoop"})


def user_id_from_whoop_state(token: Optional[str], *, ttl_s: Optional[int] = None) -> Optional[UUID]:
    """The user id bound into a valid Whoop state, or None."""
    payload = verify_oauth_state(token, ttl_s=ttl_s)
    if not payload or payload.get("provider") != "whoop":
        return None
    try:
        return UUID(str(payload.get("user_id")))
    except ValueError:
        return None
