"""
settlement_batch -- settlement batch lifecycle on top of the kernel.

Creation (BatchOrchestrator), file generation and bank hand-off
(BatchDispatchService) and bank result reconciliation
(ReconciliationEngine).

Architecture: top layer.  May import settlement_kernel, settlement_engines
and settlement_config.  Nothing below imports settlement_batch, except the
kernel's lazy model registration in settlement_kernel.db.
"""

from settlement_batch.orchestrator import BatchOrchestrator
from settlement_batch.services.dispatch import BatchDispatchService
from settlement_batch.services.reconciliation import ReconciliationEngine

__all__ = [
    "BatchDispatchService",
    "BatchOrchestrator",
    "ReconciliationEngine",
]
