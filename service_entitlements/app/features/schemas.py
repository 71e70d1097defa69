"""
Per-feature configuration schemas.

Each feature name has its own tagged model. The models are combined into a
single union discriminated on ``feature``; adding a feature means adding a
model here and appending it to ``FEATURE_SCHEMAS``.
"""

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ======== configs ========

class CopilotConfig(_StrictModel):
    """The copilot toggle carries no configuration."""


class EarlyAccessConfig(_StrictModel):
    whitelist: List[str] = Field(default_factory=list)

    @field_validator("whitelist")
    @classmethod
    def _non_blank_entries(cls, value: List[str]) -> List[str]:
        cleaned = [entry.strip() for entry in value]
        if any(not entry or entry == "@" for entry in cleaned):
            raise ValueError("whitelist entries must be non-empty domain or email patterns")
        return cleaned


class QuotaConfig(_StrictModel):
    name: str = Field(..., min_length=1)
    # bytes
    blob_limit: PositiveInt
    storage_quota: PositiveInt
    # seconds
    history_period: PositiveInt
    member_limit: NonNegativeInt


# ======== features ========

class CopilotFeature(_StrictModel):
    feature: Literal["copilot"]
    type: Literal[0]
    version: Literal[1]
    configs: CopilotConfig


class EarlyAccessFeature(_StrictModel):
    feature: Literal["early_access"]
    type: Literal[0]
    version: Literal[1]
    configs: EarlyAccessConfig


class FreePlanFeature(_StrictModel):
    feature: Literal["free_plan_v1"]
    type: Literal[1]
    version: Literal[1]
    configs: QuotaConfig


class ProPlanFeature(_StrictModel):
    feature: Literal["pro_plan_v1"]
    type: Literal[1]
    version: Literal[1]
    configs: QuotaConfig


FEATURE_SCHEMAS = (
    CopilotFeature,
    EarlyAccessFeature,
    FreePlanFeature,
    ProPlanFeature,
)

FeatureSchema = Annotated[Union[FEATURE_SCHEMAS], Field(discriminator="feature")]
