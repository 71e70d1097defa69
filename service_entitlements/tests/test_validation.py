"""
Unit tests for feature configuration validation.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_entitlements.app.features.catalog import FEATURES, FeatureCatalog, default_catalog
from service_entitlements.app.features.models import FeatureDefinition, FeatureKind, FeatureName
from service_entitlements.app.features.validation import ConfigValidator
from shared.errors import CatalogError, NotFoundError, ValidationError
from shared.test_helpers import TestDataFactory


class TestConfigValidator:
    """Test cases for ConfigValidator."""

    @pytest.fixture
    def validator(self):
        """Create ConfigValidator over the default catalog."""
        return ConfigValidator(default_catalog())

    def test_copilot_empty_config(self, validator):
        """Test that copilot accepts an empty config."""
        assert validator.validate(FeatureKind.FEATURE, "copilot", 1, {}) == {}

    def test_copilot_none_config(self, validator):
        """Test that a missing config is treated as empty."""
        assert validator.validate(FeatureKind.FEATURE, FeatureName.COPILOT, 1, None) == {}

    def test_copilot_rejects_extra_keys(self, validator):
        """Test that copilot rejects unexpected keys."""
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(FeatureKind.FEATURE, "copilot", 1, {"model": "gpt"})

        assert exc_info.value.details["feature"] == "copilot"
        assert exc_info.value.details["errors"]

    def test_early_access_whitelist(self, validator):
        """Test early access whitelist validation."""
        config = validator.validate(
            FeatureKind.FEATURE, "early_access", 1, {"whitelist": [" @example.com ", "a@b.io"]}
        )

        assert config == {"whitelist": ["@example.com", "a@b.io"]}

    @pytest.mark.parametrize("config", [
        {"whitelist": "@example.com"},
        {"whitelist": [1, 2]},
        {"whitelist": [""]},
        {"whitelist": ["@"]},
        {"allowlist": ["@example.com"]},
        ["@example.com"],
    ])
    def test_early_access_rejects_malformed(self, validator, config):
        """Test early access rejects structurally invalid configs."""
        with pytest.raises(ValidationError):
            validator.validate(FeatureKind.FEATURE, "early_access", 1, config)

    def test_quota_config(self, validator):
        """Test quota config validation."""
        config = TestDataFactory.create_quota_config()

        assert validator.validate(FeatureKind.QUOTA, "pro_plan_v1", 1, config) == config

    @pytest.mark.parametrize("override", [
        {"blob_limit": 0},
        {"storage_quota": -1},
        {"member_limit": "many"},
        {"name": ""},
    ])
    def test_quota_rejects_bad_limits(self, validator, override):
        """Test quota configs with invalid limits."""
        config = TestDataFactory.create_quota_config(**override)

        with pytest.raises(ValidationError):
            validator.validate(FeatureKind.QUOTA, "free_plan_v1", 1, config)

    def test_quota_rejects_missing_fields(self, validator):
        """Test quota configs with missing fields."""
        config = TestDataFactory.create_quota_config()
        del config["history_period"]

        with pytest.raises(ValidationError):
            validator.validate(FeatureKind.QUOTA, "free_plan_v1", 1, config)

    def test_unknown_feature(self, validator):
        """Test that unknown feature names are rejected."""
        with pytest.raises(NotFoundError):
            validator.validate(FeatureKind.FEATURE, "teleportation", 1, {})

    def test_kind_mismatch(self, validator):
        """Test that a kind mismatched with the catalog is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(FeatureKind.QUOTA, "copilot", 1, {})

        assert exc_info.value.details["expected_kind"] == int(FeatureKind.FEATURE)

    @pytest.mark.parametrize("kind", ["Feature", None, 7])
    def test_unknown_kind(self, validator, kind):
        """Test that kinds outside FeatureKind are rejected as validation errors."""
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(kind, "copilot", 1, {})

        assert exc_info.value.details["kind"] == repr(kind)

    def test_unsupported_version(self, validator):
        """Test that unsupported schema versions are rejected."""
        with pytest.raises(ValidationError):
            validator.validate(FeatureKind.FEATURE, "copilot", 2, {})

    def test_validate_catalog_default(self, validator):
        """Test that every default config in the catalog is valid."""
        validator.validate_catalog()

    def test_validate_catalog_invalid_default(self):
        """Test that an invalid default config aborts startup."""
        definitions = [d for d in FEATURES if d.name != FeatureName.EARLY_ACCESS] + [
            FeatureDefinition(FeatureName.EARLY_ACCESS, FeatureKind.FEATURE, 1, {"whitelist": "nope"}),
        ]
        validator = ConfigValidator(FeatureCatalog(definitions, FeatureName.FREE_PLAN_V1))

        with pytest.raises(CatalogError):
            validator.validate_catalog()

    def test_validate_catalog_missing_schema(self):
        """Test that a catalog entry without a schema aborts startup."""
        definitions = list(FEATURES) + [
            FeatureDefinition(FeatureName.COPILOT, FeatureKind.FEATURE, 2, {}),
        ]
        validator = ConfigValidator(FeatureCatalog(definitions, FeatureName.FREE_PLAN_V1))

        with pytest.raises(CatalogError):
            validator.validate_catalog()
