"""
Feature configuration validation for Entitlements Service.
"""

import json
from typing import Any, Dict, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import CatalogError, ValidationError
from .catalog import FeatureCatalog, coerce_feature_name
from .models import FeatureKind, FeatureName
from .schemas import FeatureSchema

ValidatedConfig = Dict[str, Any]

_feature_adapter: TypeAdapter = TypeAdapter(FeatureSchema)


class ConfigValidator:
    """Validates feature records against the catalog and per-feature schemas."""

    def __init__(self, catalog: FeatureCatalog):
        self.catalog = catalog
        self.logger = get_logger("entitlements.config_validator")

    def validate(
        self,
        kind: Union[int, FeatureKind],
        name: Union[str, FeatureName],
        schema_version: int,
        raw_config: Optional[Dict[str, Any]],
    ) -> ValidatedConfig:
        """Validate ``raw_config`` for the feature ``(name, schema_version)``.

        Raises NotFoundError for unknown feature names and ValidationError
        for kind mismatches, unsupported versions and malformed configs.
        """
        feature_name = coerce_feature_name(name)

        if not self.catalog.has(feature_name, schema_version):
            raise ValidationError(
                f"Unsupported schema version {schema_version} for {feature_name.value!r}",
                {"feature": feature_name.value, "version": schema_version}
            )

        try:
            kind = FeatureKind(kind)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Unknown feature kind {kind!r}",
                {"feature": feature_name.value, "kind": repr(kind)}
            )

        definition = self.catalog.definition_for(feature_name, schema_version)
        if kind != definition.kind:
            raise ValidationError(
                f"Feature {feature_name.value!r} is declared as {definition.kind.name}",
                {"feature": feature_name.value, "kind": int(kind), "expected_kind": int(definition.kind)}
            )

        candidate = {
            "feature": feature_name.value,
            "type": int(kind),
            "version": schema_version,
            "configs": {} if raw_config is None else raw_config,
        }

        try:
            validated = _feature_adapter.validate_python(candidate)
        except PydanticValidationError as e:
            self.logger.info(
                "Feature config rejected",
                feature=feature_name.value,
                version=schema_version,
                error_count=e.error_count()
            )
            raise ValidationError(
                f"Invalid configuration for {feature_name.value!r}",
                {"feature": feature_name.value, "errors": json.loads(e.json(include_url=False))}
            )

        return validated.configs.model_dump()

    def validate_catalog(self) -> None:
        """Check that every catalog default config satisfies its own schema."""
        for definition in self.catalog.all():
            try:
                self.validate(definition.kind, definition.name, definition.version, definition.default_config_copy())
            except ValidationError as e:
                raise CatalogError(
                    f"Default config of {definition.name.value!r} is invalid",
                    {"feature": definition.name.value, "version": definition.version, "errors": e.details}
                )
