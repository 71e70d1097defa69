"""
Active quota resolution for Entitlements Service.
"""

from dataclasses import replace
from typing import Optional

from shared.logging import get_logger
from ..features.catalog import FeatureCatalog
from ..features.models import EntitlementRecord, FeatureDefinition, FeatureKind
from ..persistence.base import EntitlementStore


class QuotaResolver:
    """Derives the single active quota of a user.

    The most recently granted active quota record wins. Records granted at
    the same instant are ordered by catalog declaration, so the result does
    not depend on the order the store returns rows in.
    """

    def __init__(self, catalog: FeatureCatalog, store: EntitlementStore):
        self.catalog = catalog
        self.store = store
        self.logger = get_logger("entitlements.quota_resolver")

    async def resolve_record(self, user_id: str) -> Optional[EntitlementRecord]:
        records = await self.store.list_by_user(user_id, kind=FeatureKind.QUOTA)

        candidates = []
        for record in records:
            if not record.active or record.kind != FeatureKind.QUOTA:
                continue
            if not self.catalog.has(record.feature_name, record.schema_version):
                self.logger.warning(
                    "Skipping quota record with no catalog definition",
                    user_id=user_id,
                    feature=record.feature_name.value,
                    version=record.schema_version
                )
                continue
            definition = self.catalog.definition_for(record.feature_name, record.schema_version)
            if definition.kind != FeatureKind.QUOTA:
                continue
            candidates.append((record, self.catalog.declaration_index(definition)))

        if not candidates:
            return None

        record, _ = max(
            candidates,
            key=lambda candidate: (candidate[0].granted_at, candidate[1], candidate[0].record_id or 0)
        )
        return record

    async def resolve(self, user_id: str) -> FeatureDefinition:
        """The active quota definition, carrying the config it was granted with."""
        record = await self.resolve_record(user_id)
        if record is None:
            return self.catalog.default_quota
        definition = self.catalog.definition_for(record.feature_name, record.schema_version)
        return replace(definition, default_config=record.config)
