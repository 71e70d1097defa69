"""
Storage collaborator contracts for Entitlements Service.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..features.models import EntitlementRecord, FeatureKind, FeatureName


class EntitlementStore(ABC):
    """Durable, append-only store of entitlement records.

    Implementations raise ``ConflictError`` for write conflicts and
    ``StorageUnavailableError`` for any backend failure. They never retry.
    """

    async def start(self):
        """Start the store."""

    async def stop(self):
        """Stop the store."""

    @abstractmethod
    async def insert(self, record: EntitlementRecord) -> EntitlementRecord:
        """Append a record and return it with its ``record_id`` assigned."""

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        kind: Optional[FeatureKind] = None,
        include_revoked: bool = False,
    ) -> List[EntitlementRecord]:
        """List a user's records, optionally filtered by kind."""

    @abstractmethod
    async def delete_active(self, user_id: str, feature_name: FeatureName) -> bool:
        """Tombstone every active record of the pair. True if any was active."""

    @abstractmethod
    async def list_users_with_feature(self, feature_name: FeatureName) -> List[str]:
        """User ids holding an active record of ``feature_name``, sorted."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store health."""


class UserDirectory(ABC):
    """Read-only view of the externally owned user accounts."""

    async def start(self):
        """Start the directory."""

    async def stop(self):
        """Stop the directory."""

    @abstractmethod
    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        """Resolve an email (case-insensitive) to a user id."""
