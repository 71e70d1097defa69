"""
Feature and entitlement data models for the Entitlements Service.
"""

import copy
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum

from pydantic import BaseModel, Field


class FeatureKind(IntEnum):
    """Feature kinds. Integer values are persisted."""
    FEATURE = 0
    QUOTA = 1


class FeatureName(str, Enum):
    """Recognized feature names."""
    COPILOT = "copilot"
    EARLY_ACCESS = "early_access"
    FREE_PLAN_V1 = "free_plan_v1"
    PRO_PLAN_V1 = "pro_plan_v1"


class Operation(str, Enum):
    """Externally nameable engine operations, used as rate-limit scope."""
    GRANT = "grant"
    REVOKE = "revoke"
    LIST_EARLY_ACCESS = "list_early_access"
    HAS_EARLY_ACCESS = "has_early_access"
    RESOLVE_QUOTA = "resolve_quota"
    LIST_FEATURES = "list_features"


# Operations that require the caller to be staff
ADMIN_OPERATIONS = frozenset({
    Operation.GRANT,
    Operation.REVOKE,
    Operation.LIST_EARLY_ACCESS,
})


@dataclass(frozen=True)
class FeatureDefinition:
    """A catalog entry. Never mutated after startup."""
    name: FeatureName
    kind: FeatureKind
    version: int
    default_config: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self):
        return (self.name, self.version)

    def default_config_copy(self) -> Dict[str, Any]:
        return copy.deepcopy(self.default_config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature": self.name.value,
            "type": int(self.kind),
            "version": self.version,
            "configs": self.default_config_copy(),
        }


@dataclass(frozen=True)
class EntitlementRecord:
    """A recorded grant of a feature to a user.

    The persisted field names are stable across schema version bumps;
    ``from_dict`` ignores keys it does not know.
    """
    user_id: str
    feature_name: FeatureName
    kind: FeatureKind
    schema_version: int
    config: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    granted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    revoked_at: Optional[datetime] = None
    record_id: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.revoked_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "feature_name": self.feature_name.value,
            "kind": int(self.kind),
            "schema_version": self.schema_version,
            "config": copy.deepcopy(self.config),
            "granted_at": self.granted_at,
            "revoked_at": self.revoked_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntitlementRecord":
        return cls(
            user_id=data["user_id"],
            feature_name=FeatureName(data["feature_name"]),
            kind=FeatureKind(data["kind"]),
            schema_version=data["schema_version"],
            config=dict(data.get("config") or {}),
            granted_at=data["granted_at"],
            revoked_at=data.get("revoked_at"),
            record_id=data.get("record_id"),
        )


@dataclass(frozen=True)
class Caller:
    """Authenticated caller, resolved by the API façade."""
    user_id: str
    email: str


class GrantRequest(BaseModel):
    """Request model for granting a feature."""
    user_id: str = Field(..., min_length=1, description="Target user ID")
    feature: str = Field(..., description="Feature name")
    config: Optional[Dict[str, Any]] = Field(None, description="Feature configuration; catalog default when omitted")


class RevokeRequest(BaseModel):
    """Request model for revoking a feature."""
    user_id: str = Field(..., min_length=1, description="Target user ID")
    feature: str = Field(..., description="Feature name")


class EarlyAccessRequest(BaseModel):
    """Request model for adding early access by email."""
    email: str = Field(..., min_length=3, description="User email")


class EntitlementResponse(BaseModel):
    """Response model for a recorded entitlement."""
    user_id: str
    feature_name: str
    kind: FeatureKind
    schema_version: int
    config: Dict[str, Any]
    granted_at: datetime
    revoked_at: Optional[datetime] = None
    record_id: Optional[int] = None

    @classmethod
    def from_record(cls, record: EntitlementRecord) -> "EntitlementResponse":
        return cls(record_id=record.record_id, **record.to_dict())


class RevokeResponse(BaseModel):
    """Response model for revoke operations."""
    revoked: bool


class FeatureDefinitionResponse(BaseModel):
    """Response model for a catalog entry."""
    feature: str
    type: FeatureKind
    version: int
    configs: Dict[str, Any]

    @classmethod
    def from_definition(cls, definition: FeatureDefinition) -> "FeatureDefinitionResponse":
        return cls(**definition.to_dict())


class QuotaResponse(BaseModel):
    """Response model for a user's active quota."""
    user_id: str
    quota: FeatureDefinitionResponse


class EarlyAccessCheckResponse(BaseModel):
    """Response model for early access checks."""
    email: str
    early_access: bool


class EarlyAccessUsersResponse(BaseModel):
    """Response model for early access user listing."""
    users: List[str]
    total: int


class UserFeaturesResponse(BaseModel):
    """Response model for a user's active features."""
    user_id: str
    features: List[str]
