"""
Staff role checks for administrative entitlement operations.
"""

from typing import Iterable

from ..early_access.gate import email_matches, split_email


class StaffPolicy:
    """Decides whether an email belongs to staff.

    Staff are addresses under one of ``staff_email_domains`` or listed
    explicitly in ``staff_emails``.
    """

    def __init__(self, staff_email_domains: Iterable[str] = (), staff_emails: Iterable[str] = ()):
        # Full addresses only; anything else would widen the match to a domain
        explicit = tuple(email for email in staff_emails if split_email(email) is not None)
        self.patterns = tuple(staff_email_domains) + explicit

    def is_staff(self, email: str) -> bool:
        return email_matches(email, self.patterns)
