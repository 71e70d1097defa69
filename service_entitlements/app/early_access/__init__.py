"""
Early access package: allow-list matching for the early access feature.
"""

from .gate import EarlyAccessGate, email_matches

__all__ = ["EarlyAccessGate", "email_matches"]
