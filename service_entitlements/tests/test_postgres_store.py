"""
Unit tests for the PostgreSQL entitlement store.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

import asyncpg
from service_entitlements.app.features.models import EntitlementRecord, FeatureKind, FeatureName
from service_entitlements.app.persistence.postgres import PostgreSQLEntitlementStore, PostgreSQLUserDirectory
from shared.errors import ConflictError, StorageUnavailableError

GRANTED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_row(record_id=1, feature_name="copilot", kind=0, revoked_at=None):
    return {
        "id": record_id,
        "user_id": "user-1",
        "feature_name": feature_name,
        "kind": kind,
        "schema_version": 1,
        "config": {},
        "granted_at": GRANTED_AT,
        "revoked_at": revoked_at,
    }


class TestPostgreSQLEntitlementStore:
    """Test cases for PostgreSQLEntitlementStore."""

    @pytest.fixture
    def conn(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, conn):
        """Create store with a mocked pool."""
        store = PostgreSQLEntitlementStore("postgres://localhost:5432/test")
        store.pool = MagicMock()
        store.pool.acquire.return_value.__aenter__.return_value = conn
        return store

    @pytest.mark.asyncio
    async def test_insert(self, store, conn):
        """Test that insert returns the stored record."""
        conn.fetchrow.return_value = make_row(record_id=7)

        record = await store.insert(EntitlementRecord(
            user_id="user-1",
            feature_name=FeatureName.COPILOT,
            kind=FeatureKind.FEATURE,
            schema_version=1,
            config={},
            granted_at=GRANTED_AT,
        ))

        assert record.record_id == 7
        assert record.feature_name == FeatureName.COPILOT
        args = conn.fetchrow.await_args.args
        assert args[1:] == ("user-1", "copilot", 0, 1, {}, GRANTED_AT, None)

    @pytest.mark.asyncio
    async def test_list_by_user(self, store, conn):
        """Test listing records with a kind filter."""
        conn.fetch.return_value = [make_row(1), make_row(2, "free_plan_v1", 1)]

        records = await store.list_by_user("user-1", kind=FeatureKind.QUOTA)

        assert [r.record_id for r in records] == [1, 2]
        assert records[1].kind == FeatureKind.QUOTA
        assert conn.fetch.await_args.args[1:] == ("user-1", 1, False)

    @pytest.mark.asyncio
    async def test_delete_active(self, store, conn):
        """Test tombstoning active records."""
        conn.execute.return_value = "UPDATE 2"
        assert await store.delete_active("user-1", FeatureName.COPILOT) is True

        conn.execute.return_value = "UPDATE 0"
        assert await store.delete_active("user-1", FeatureName.COPILOT) is False

    @pytest.mark.asyncio
    async def test_list_users_with_feature(self, store, conn):
        """Test listing holders of a feature."""
        conn.fetch.return_value = [{"user_id": "user-1"}, {"user_id": "user-2"}]

        assert await store.list_users_with_feature(FeatureName.EARLY_ACCESS) == ["user-1", "user-2"]

    @pytest.mark.asyncio
    async def test_unique_violation_is_conflict(self, store, conn):
        """Test that unique violations surface as ConflictError."""
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(ConflictError):
            await store.insert(EntitlementRecord(
                user_id="user-1",
                feature_name=FeatureName.COPILOT,
                kind=FeatureKind.FEATURE,
                schema_version=1,
            ))

    @pytest.mark.asyncio
    async def test_connection_error_is_storage_unavailable(self, store, conn):
        """Test that connection failures surface as StorageUnavailableError."""
        conn.fetch.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(StorageUnavailableError):
            await store.list_by_user("user-1")

    @pytest.mark.asyncio
    async def test_not_started(self):
        """Test that using the store before start fails cleanly."""
        store = PostgreSQLEntitlementStore("postgres://localhost:5432/test")

        with pytest.raises(StorageUnavailableError):
            await store.list_by_user("user-1")

        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check(self, store, conn):
        """Test database health check."""
        conn.fetchval.return_value = 1

        assert await store.health_check() is True

    @pytest.mark.asyncio
    async def test_user_directory(self, store, conn):
        """Test email lookups against the users table."""
        conn.fetchval.return_value = 42
        directory = PostgreSQLUserDirectory(store)

        assert await directory.find_user_id_by_email(" X@Random.com ") == "42"
        assert conn.fetchval.await_args.args[1] == "X@Random.com"

        conn.fetchval.return_value = None
        assert await directory.find_user_id_by_email("ghost@random.com") is None
