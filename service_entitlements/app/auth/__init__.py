"""
Authorization collaborators: staff role checks used to gate
administrative entitlement operations.
"""

from .staff import StaffPolicy

__all__ = ["StaffPolicy"]
