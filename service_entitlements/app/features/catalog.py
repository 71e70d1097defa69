"""
Feature catalog for Entitlements Service.
"""

from typing import Dict, Iterable, Optional, Tuple, Union

from shared.errors import CatalogError, NotFoundError
from .models import FeatureDefinition, FeatureKind, FeatureName

MiB = 1024 * 1024
GiB = 1024 * MiB
DAY_SECONDS = 24 * 60 * 60


# Declaration order is significant: quota ties resolve to the later entry.
FEATURES: Tuple[FeatureDefinition, ...] = (
    FeatureDefinition(
        name=FeatureName.COPILOT,
        kind=FeatureKind.FEATURE,
        version=1,
        default_config={},
    ),
    FeatureDefinition(
        name=FeatureName.EARLY_ACCESS,
        kind=FeatureKind.FEATURE,
        version=1,
        default_config={"whitelist": ["@toeverything.info"]},
    ),
    FeatureDefinition(
        name=FeatureName.FREE_PLAN_V1,
        kind=FeatureKind.QUOTA,
        version=1,
        default_config={
            "name": "Free",
            "blob_limit": 10 * MiB,
            "storage_quota": 10 * GiB,
            "history_period": 7 * DAY_SECONDS,
            "member_limit": 3,
        },
    ),
    FeatureDefinition(
        name=FeatureName.PRO_PLAN_V1,
        kind=FeatureKind.QUOTA,
        version=1,
        default_config={
            "name": "Pro",
            "blob_limit": 100 * MiB,
            "storage_quota": 100 * GiB,
            "history_period": 30 * DAY_SECONDS,
            "member_limit": 10,
        },
    ),
)

DEFAULT_QUOTA = FeatureName.FREE_PLAN_V1


def coerce_feature_name(name: Union[str, FeatureName]) -> FeatureName:
    """Turn a raw feature name into a FeatureName, or raise NotFoundError."""
    if isinstance(name, FeatureName):
        return name
    try:
        return FeatureName(name)
    except ValueError:
        raise NotFoundError(f"Unknown feature {name!r}", {"feature": name})


class FeatureCatalog:
    """Read-only registry of feature definitions.

    Built once at startup and shared by reference. Lookups never mutate
    state, so concurrent readers need no locking.
    """

    def __init__(self, definitions: Iterable[FeatureDefinition], default_quota: FeatureName):
        self._definitions: Tuple[FeatureDefinition, ...] = tuple(definitions)
        self._index: Dict[Tuple[FeatureName, int], int] = {}

        for position, definition in enumerate(self._definitions):
            if definition.key in self._index:
                raise CatalogError(
                    "Duplicate feature definition",
                    {"feature": definition.name.value, "version": definition.version}
                )
            self._index[definition.key] = position

        quota = self._latest(default_quota)
        if quota is None or quota.kind != FeatureKind.QUOTA:
            raise CatalogError(
                "Default quota must be a declared quota feature",
                {"feature": getattr(default_quota, "value", default_quota)}
            )
        self._default_quota = quota

    def _latest(self, name: FeatureName) -> Optional[FeatureDefinition]:
        candidates = [d for d in self._definitions if d.name == name]
        if not candidates:
            return None
        return max(candidates, key=lambda d: d.version)

    def definition_for(self, name: Union[str, FeatureName], version: Optional[int] = None) -> FeatureDefinition:
        """Look up a definition; the latest version when ``version`` is omitted."""
        feature_name = coerce_feature_name(name)

        if version is None:
            definition = self._latest(feature_name)
        else:
            position = self._index.get((feature_name, version))
            definition = self._definitions[position] if position is not None else None

        if definition is None:
            raise NotFoundError(
                f"Unknown feature {feature_name.value!r} version {version}",
                {"feature": feature_name.value, "version": version}
            )
        return definition

    def has(self, name: FeatureName, version: int) -> bool:
        return (name, version) in self._index

    def all(self) -> Tuple[FeatureDefinition, ...]:
        return self._definitions

    def declaration_index(self, definition: FeatureDefinition) -> int:
        return self._index[definition.key]

    @property
    def default_quota(self) -> FeatureDefinition:
        return self._default_quota

    def __len__(self) -> int:
        return len(self._definitions)


def default_catalog() -> FeatureCatalog:
    """Build the process-wide catalog from the fixed feature list."""
    return FeatureCatalog(FEATURES, DEFAULT_QUOTA)
