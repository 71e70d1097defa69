"""
Feature catalog package.

Defines which features and quota tiers exist and how their configuration
is shaped:

- models: FeatureDefinition, EntitlementRecord and API request/response models.
- schemas: One tagged pydantic model per feature name, joined in a
  discriminated union.
- catalog: The immutable, process-wide FeatureCatalog.
- validation: ConfigValidator dispatching through the union.
"""

from .catalog import FeatureCatalog, default_catalog
from .models import EntitlementRecord, FeatureDefinition, FeatureKind, FeatureName
from .validation import ConfigValidator

__all__ = [
    "ConfigValidator",
    "EntitlementRecord",
    "FeatureCatalog",
    "FeatureDefinition",
    "FeatureKind",
    "FeatureName",
    "default_catalog",
]
