"""
Unit tests for early access allow-list matching and staff checks.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_entitlements.app.auth.staff import StaffPolicy
from service_entitlements.app.early_access.gate import EarlyAccessGate, split_email
from service_entitlements.app.features.catalog import default_catalog


class TestEarlyAccessGate:
    """Test cases for EarlyAccessGate."""

    @pytest.fixture
    def gate(self):
        """Create gate from the default catalog."""
        return EarlyAccessGate.from_catalog(default_catalog())

    def test_allow_list_domain_match(self, gate):
        """Test domain match against the default allow-list."""
        assert gate.matches("x@toeverything.info") is True

    def test_allow_list_case_insensitive(self, gate):
        """Test that matching ignores case."""
        assert gate.matches("Someone@ToEverything.INFO") is True

    def test_allow_list_subdomain(self, gate):
        """Test that subdomains of an allowed domain match."""
        assert gate.matches("x@eu.toeverything.info") is True

    def test_allow_list_no_match(self, gate):
        """Test that other domains do not match."""
        assert gate.matches("x@random.com") is False

    def test_lookalike_domain_does_not_match(self, gate):
        """Test that a domain merely ending with the same text does not match."""
        assert gate.matches("x@nottoeverything.info") is False
        assert gate.matches("x@toeverything.info.evil.com") is False

    @pytest.mark.parametrize("email", ["", "toeverything.info", "@toeverything.info", "x@"])
    def test_malformed_email(self, gate, email):
        """Test that malformed emails never match."""
        assert gate.matches(email) is False

    def test_empty_allow_list_matches_nothing(self):
        """Test that an empty allow-list matches nothing."""
        gate = EarlyAccessGate([])

        assert gate.matches("x@toeverything.info") is False
        assert gate.matches("x@random.com") is False

    def test_exact_address_pattern(self):
        """Test full-address patterns."""
        gate = EarlyAccessGate(["vip@partner.com"])

        assert gate.matches("VIP@partner.com") is True
        assert gate.matches("other@partner.com") is False

    def test_bare_domain_pattern(self):
        """Test patterns without a leading @."""
        gate = EarlyAccessGate(["partner.com"])

        assert gate.matches("x@partner.com") is True
        assert gate.matches("x@sub.partner.com") is True

    def test_split_email_uses_last_at(self):
        """Test that the domain is the part after the last @."""
        assert split_email('"a@b"@Example.com') == ('"a@b"', "example.com")


class TestStaffPolicy:
    """Test cases for StaffPolicy."""

    def test_staff_domain(self):
        """Test staff by domain."""
        policy = StaffPolicy(["@toeverything.info"])

        assert policy.is_staff("admin@toeverything.info") is True
        assert policy.is_staff("user@random.com") is False

    def test_staff_explicit_email(self):
        """Test staff listed explicitly."""
        policy = StaffPolicy([], ["ops@contractor.io"])

        assert policy.is_staff("ops@contractor.io") is True
        assert policy.is_staff("dev@contractor.io") is False

    def test_staff_emails_ignore_domain_patterns(self):
        """Test that staff_emails cannot widen to a whole domain."""
        policy = StaffPolicy([], ["@contractor.io", "contractor.io"])

        assert policy.is_staff("dev@contractor.io") is False

    def test_no_staff_configured(self):
        """Test that nobody is staff without configuration."""
        assert StaffPolicy().is_staff("admin@toeverything.info") is False
