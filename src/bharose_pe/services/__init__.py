"""Application services: use case orchestration."""

from bharose_pe.services.contract_service import ContractService
from bharose_pe.services.dispute_service import DisputeService
from bharose_pe.services.escalation_service import EscalationService
from bharose_pe.services.lifecycle_service import LifecycleResult, LifecycleService
from bharose_pe.services.notification_service import (
    NotificationDispatcher,
    NotificationService,
)

__all__ = [
    "ContractService",
    "DisputeService",
    "EscalationService",
    "LifecycleResult",
    "LifecycleService",
    "NotificationDispatcher",
    "NotificationService",
]
