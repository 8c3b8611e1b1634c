"""
Cleanup campaign workflows.

Coordinators own validation, pricing and the atomic writes; persistence and
payment holds come in through the CampaignStore and PaymentGateway seams.
"""

from .creation_coordinator import CreateResult, CreationCoordinator
from .join_coordinator import JoinResult, JoinCoordinator

__all__ = ["CreateResult", "CreationCoordinator", "JoinResult", "JoinCoordinator"]
