"""
In-memory storage for Entitlements Service.

Used for the ``memory`` store backend (local development) and in tests.
"""

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from shared.logging import get_logger
from ..features.models import EntitlementRecord, FeatureKind, FeatureName
from .base import EntitlementStore, UserDirectory


class InMemoryEntitlementStore(EntitlementStore):
    """Append-only in-memory entitlement store."""

    def __init__(self):
        self.logger = get_logger("entitlements.persistence.memory")
        self._records: List[EntitlementRecord] = []
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def insert(self, record: EntitlementRecord) -> EntitlementRecord:
        async with self._lock:
            stored = replace(record, record_id=next(self._ids))
            self._records.append(stored)

        self.logger.debug(
            "Entitlement record inserted",
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
        return [
            record for record in list(self._records)
            if record.user_id == user_id
            and (kind is None or record.kind == kind)
            and (include_revoked or record.active)
        ]

    async def delete_active(self, user_id: str, feature_name: FeatureName) -> bool:
        revoked = 0
        async with self._lock:
            now = datetime.now(timezone.utc)
            for position, record in enumerate(self._records):
                if record.user_id == user_id and record.feature_name == feature_name and record.active:
                    self._records[position] = replace(record, revoked_at=now)
                    revoked += 1

        self.logger.debug(
            "Entitlement records revoked",
            user_id=user_id,
            feature=feature_name.value,
            count=revoked
        )
        return revoked > 0

    async def list_users_with_feature(self, feature_name: FeatureName) -> List[str]:
        return sorted({
            record.user_id for record in list(self._records)
            if record.feature_name == feature_name and record.active
        })

    async def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._records)


class InMemoryUserDirectory(UserDirectory):
    """Email to user id mapping held in memory."""

    def __init__(self, users: Optional[Dict[str, str]] = None):
        self._users: Dict[str, str] = {}
        for email, user_id in (users or {}).items():
            self.add_user(email, user_id)

    def add_user(self, email: str, user_id: str):
        self._users[email.strip().lower()] = user_id

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        return self._users.get(email.strip().lower())
