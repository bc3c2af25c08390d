"""
Tests for the Whoop credential store: one encrypted credential per user.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from models import WhoopToken
from services.whoop_token_store import WhoopTokenStore


class TestTokenStore:
    def test_get_missing_returns_none(self, storage, user_id):
        assert WhoopTokenStore(storage).get(user_id) is None

    def test_put_then_get_round_trips_plaintext(self, storage, user_id):
        store = WhoopTokenStore(storage)
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        store.put(user_id, "access-1", "refresh-1", 3600, whoop_user_id=42, now=now)

        cred = store.get(user_id)
        assert cred.access_token == "access-1"
        assert cred.refresh_token == "refresh-1"
        assert cred.whoop_user_id == 42
        assert cred.expires_at == now + timedelta(seconds=3600)
        assert cred.expires_at.tzinfo is not None

    def test_tokens_are_encrypted_at_rest(self, storage, user_id):
        WhoopTokenStore(storage).put(user_id, "access-plain", "refresh-plain", 3600)

        with storage.session() as db:
            row = db.get(WhoopToken, user_id)
        assert row.access_token != "access-plain"
        assert row.refresh_token != "refresh-plain"

    def test_put_replaces_existing_credential(self, storage, user_id):
        store = WhoopTokenStore(storage)
        store.put(user_id, "old-access", "old-refresh", 60)
        store.put(user_id, "new-access", "new-refresh", 3600)

        with storage.session() as db:
            assert db.query(WhoopToken).count() == 1
        assert store.get(user_id).access_token == "new-access"

    def test_delete(self, storage, user_id):
        store = WhoopTokenStore(storage)
        store.put(user_id, "a", "r", 3600)
        store.delete(user_id)
        assert store.get(user_id) is None
        # Deleting again is a no-op
        store.delete(user_id)

    def test_list_connected_user_ids(self, storage):
        store = WhoopTokenStore(storage)
        users = [uuid4(), uuid4()]
        for uid in users:
            store.put(uid, "a", "r", 3600)

        assert set(store.list_connected_user_ids()) == set(users)

    def test_undecryptable_credential_reads_as_absent(self, storage, user_id):
        now = datetime.now(timezone.utc)
        with storage.session() as db:
            db.add(WhoopToken(
                user_id=user_id,
                access_token="not-a-fernet-token",
                refresh_token="not-a-fernet-token",
                expires_at=now + timedelta(hours=1),
                created_at=now,
                updated_at=now,
            ))

        assert WhoopTokenStore(storage).get(user_id) is None
