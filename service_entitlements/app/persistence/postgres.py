"""
PostgreSQL persistence layer for Entitlements Service.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import List, Optional

import asyncpg
from shared.logging import get_logger
from shared.errors import ConflictError, StorageUnavailableError
from ..features.models import EntitlementRecord, FeatureKind, FeatureName
from .base import EntitlementStore, UserDirectory


async def _init_connection(conn):
    """Decode JSONB columns to Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog"
    )


class PostgreSQLEntitlementStore(EntitlementStore):
    """PostgreSQL-backed, append-only entitlement store.

    Every write is a single statement, so concurrent grants for the same
    user and feature both land and readers only ever see committed rows.
    """

    def __init__(self, dsn: str, command_timeout: float = 30.0, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.command_timeout = command_timeout
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("entitlements.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                init=_init_connection
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StorageUnavailableError("PostgreSQL unavailable", {"error": str(e)})

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    @asynccontextmanager
    async def connection(self):
        """Acquire a connection, translating driver errors to engine errors."""
        if self.pool is None:
            raise StorageUnavailableError("PostgreSQL persistence not started")

        try:
            async with self.pool.acquire() as conn:
                yield conn
        except asyncpg.UniqueViolationError as e:
            self.logger.warning("Write conflict", error=str(e))
            raise ConflictError("Entitlement write conflict", {"error": str(e)})
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            self.logger.error("PostgreSQL operation failed", error=str(e))
            raise StorageUnavailableError("PostgreSQL unavailable", {"error": str(e)})

    async def _create_tables(self):
        """Create database tables."""
        async with self.connection() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS user_features (
                    id BIGSERIAL PRIMARY KEY,
                    user_id VARCHAR(255) NOT NULL,
                    feature_name VARCHAR(100) NOT NULL,
                    kind SMALLINT NOT NULL,
                    schema_version INTEGER NOT NULL,
                    config JSONB NOT NULL DEFAULT '{}',
                    granted_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    revoked_at TIMESTAMP WITH TIME ZONE
                );
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_user_features_user
                ON user_features(user_id, kind) WHERE revoked_at IS NULL;
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_user_features_feature
                ON user_features(feature_name) WHERE revoked_at IS NULL;
            """)

    async def insert(self, record: EntitlementRecord) -> EntitlementRecord:
        """Append a record."""
        async with self.connection() as conn:
            row = await conn.fetchrow("""
                INSERT INTO user_features (
                    user_id, feature_name, kind, schema_version, config, granted_at, revoked_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
            """,
                record.user_id, record.feature_name.value, int(record.kind),
                record.schema_version, record.config, record.granted_at, record.revoked_at
            )

        stored = self._row_to_record(row)
        self.logger.info(
            "Entitlement record saved",
            record_id=stored.record_id,
            user_id=stored.user_id,
            feature=stored.feature_name.value
        )
        return stored

    async def list_by_user(
        self,
        user_id: str,
        kind: Optional[FeatureKind] = None,
        include_revoked: bool = False,
    ) -> List[EntitlementRecord]:
        """Load a user's records, oldest first."""
        async with self.connection() as conn:
            rows = await conn.fetch("""
                SELECT * FROM user_features
                WHERE user_id = $1
                  AND ($2::smallint IS NULL OR kind = $2)
                  AND ($3 OR revoked_at IS NULL)
                ORDER BY granted_at ASC, id ASC
            """, user_id, None if kind is None else int(kind), include_revoked)

        return [self._row_to_record(row) for row in rows]

    async def delete_active(self, user_id: str, feature_name: FeatureName) -> bool:
        """Tombstone the active records of a user and feature."""
        async with self.connection() as conn:
            result = await conn.execute("""
                UPDATE user_features SET revoked_at = NOW()
                WHERE user_id = $1 AND feature_name = $2 AND revoked_at IS NULL
            """, user_id, feature_name.value)

        # asyncpg returns the command tag, e.g. "UPDATE 2"
        revoked = int(result.split()[-1]) if result else 0
        if revoked:
            self.logger.info("Entitlement records revoked", user_id=user_id, feature=feature_name.value, count=revoked)
        else:
            self.logger.info("No active entitlement to revoke", user_id=user_id, feature=feature_name.value)
        return revoked > 0

    async def list_users_with_feature(self, feature_name: FeatureName) -> List[str]:
        """Load user ids holding an active record of a feature."""
        async with self.connection() as conn:
            rows = await conn.fetch("""
                SELECT DISTINCT user_id FROM user_features
                WHERE feature_name = $1 AND revoked_at IS NULL
                ORDER BY user_id
            """, feature_name.value)

        return [row["user_id"] for row in rows]

    def _row_to_record(self, row) -> EntitlementRecord:
        """Convert database row to EntitlementRecord."""
        return EntitlementRecord.from_dict({
            "record_id": row["id"],
            "user_id": row["user_id"],
            "feature_name": row["feature_name"],
            "kind": row["kind"],
            "schema_version": row["schema_version"],
            "config": row["config"],
            "granted_at": row["granted_at"],
            "revoked_at": row["revoked_at"],
        })

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.connection() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except StorageUnavailableError:
            return False


class PostgreSQLUserDirectory(UserDirectory):
    """Reads the externally owned ``users`` table through the store's pool."""

    def __init__(self, store: PostgreSQLEntitlementStore):
        self.store = store

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        async with self.store.connection() as conn:
            user_id = await conn.fetchval("""
                SELECT id FROM users WHERE lower(email) = lower($1) LIMIT 1
            """, email.strip())

        return str(user_id) if user_id is not None else None
