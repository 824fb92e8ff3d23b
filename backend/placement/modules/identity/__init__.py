"""
Identity module.

Actors are a tagged union over `role` (applicant / owner / approver). The
workflow never branches on the concrete role; it asks for capabilities
(`roles.CAP_*`) through `authorization.require_capability`.
"""

from .directory import Directory
from .models import Actor, Applicant, Approver, OpportunityOwner, parse_actor

__all__ = ["Actor", "Applicant", "Approver", "Directory", "OpportunityOwner", "parse_actor"]
