"""
Persistent store for the per-user Whoop OAuth credential.

Exactly one credential per user. Tokens are encrypted on write and decrypted on
read; callers only ever see plaintext `WhoopCredential` values. No retries:
storage errors propagate to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from core.database import StorageClient
from models import WhoopToken
from services.repositories import SqlRepository
from services.token_encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class WhoopCredential:
    user_id: UUID
    access_token: str
    refresh_token: str
    expires_at: datetime
    whoop_user_id: Optional[int] = None


class WhoopTokenStore:
    def __init__(self, storage: StorageClient):
        self.storage = storage
        self.repo = SqlRepository(storage, WhoopToken)

    def get(self, user_id: UUID) -> Optional[WhoopCredential]:
        """
        The stored credential, or None when the user never connected.

        A row whose tokens no longer decrypt (rotated encryption key) is
        reported as absent.
        """
        row = self.repo.get({"user_id": user_id})
        if row is None:
            return None

        access_token = decrypt_token(row.access_token)
        refresh_token = decrypt_token(row.refresh_token)
        if not access_token or not refresh_token:
            logger.warning(f"Unreadable Whoop credential for user {user_id}; treating as disconnected")
            return None

        return WhoopCredential(
            user_id=row.user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=as_utc(row.expires_at),
            whoop_user_id=row.whoop_user_id,
        )

    def put(
        self,
        user_id: UUID,
        access_token: str,
        refresh_token: str,
        expires_in_seconds: int,
        whoop_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WhoopCredential:
        """Create or replace the user's credential; expiry is `now + expires_in_seconds`."""
        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=int(expires_in_seconds))

        self.repo.upsert_many(
            [
                {
                    "user_id": user_id,
                    "access_token": encrypt_token(access_token),
                    "refresh_token": encrypt_token(refresh_token),
                    "expires_at": expires_at,
                    "whoop_user_id": whoop_user_id,
                    "updated_at": now,
                }
            ],
            conflict_key=("user_id",),
        )
        logger.info(f"Stored Whoop credential for user {user_id} (expires {expires_at.isoformat()})")
        return WhoopCredential(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            whoop_user_id=whoop_user_id,
        )

    def delete(self, user_id: UUID) -> None:
        removed = self.repo.delete_by_key({"user_id": user_id})
        if removed:
            logger.info(f"Deleted Whoop credential for user {user_id}")

    def list_connected_user_ids(self) -> List[UUID]:
        return [row.user_id for row in self.repo.find(order_by=("created_at",))]
