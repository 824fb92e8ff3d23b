"""
Opportunity module.

Opportunity is the capacity-bearing aggregate: an approval dimension
(PENDING -> APPROVED/REJECTED, decided by an approver) and a capacity
dimension (APPROVED <-> FILLED, driven only by slot reservation).
"""

from .models import Opportunity, OpportunityLevel, OpportunityStatus

__all__ = ["Opportunity", "OpportunityLevel", "OpportunityStatus"]
