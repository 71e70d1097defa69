"""
Early access allow-list matching.
"""

from typing import Iterable, Optional, Sequence, Tuple

from ..features.catalog import FeatureCatalog
from ..features.models import FeatureName


def split_email(email: str) -> Optional[Tuple[str, str]]:
    """Split an email into lower-cased (local part, domain), or None if malformed."""
    local, sep, domain = (email or "").strip().lower().rpartition("@")
    if not sep or not local or not domain:
        return None
    return local, domain


def pattern_matches(pattern: str, local: str, domain: str) -> bool:
    """Match one allow-list pattern.

    ``@example.com`` and ``example.com`` match the domain and its
    subdomains; ``someone@example.com`` matches that address only.
    """
    pattern = pattern.strip().lower()
    if pattern.startswith("@"):
        pattern = pattern[1:]
    elif "@" in pattern:
        return pattern == f"{local}@{domain}"

    if not pattern:
        return False
    return domain == pattern or domain.endswith("." + pattern)


def email_matches(email: str, patterns: Iterable[str]) -> bool:
    parts = split_email(email)
    if parts is None:
        return False
    local, domain = parts
    return any(pattern_matches(pattern, local, domain) for pattern in patterns)


class EarlyAccessGate:
    """Static allow-list membership test. An empty list matches nothing."""

    def __init__(self, allow_list: Sequence[str]):
        self.allow_list: Tuple[str, ...] = tuple(allow_list)

    @classmethod
    def from_catalog(cls, catalog: FeatureCatalog) -> "EarlyAccessGate":
        definition = catalog.definition_for(FeatureName.EARLY_ACCESS)
        return cls(definition.default_config_copy().get("whitelist", []))

    def matches(self, email: str) -> bool:
        return email_matches(email, self.allow_list)
