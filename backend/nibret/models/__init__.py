"""
SQLAlchemy database models.
"""

from nibret.models.auth import User
from nibret.models.property import Property
from nibret.models.customer import Customer
from nibret.models.lead import Lead, LeadInteraction
from nibret.models.activity import Activity

__all__ = [
    "User",
    "Property",
    "Customer",
    "Lead",
    "LeadInteraction",
    "Activity",
]
