"""
Quota package: resolves the one active quota tier of a user.
"""

from .resolver import QuotaResolver

__all__ = ["QuotaResolver"]
