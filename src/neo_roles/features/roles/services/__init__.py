"""Role services package.

Checks, assignment coordination, retry and transaction monitoring.
"""

from .checker import Checker
from .transaction_monitor import TransactionMonitor, TransactionMetrics
from .retry import RetryPolicy, is_transient_error, retry_async
from .assignment_service import AssignmentService
from .role_service import RoleService

__all__ = [
    "Checker",
    "TransactionMonitor",
    "TransactionMetrics",
    "RetryPolicy",
    "is_transient_error",
    "retry_async",
    "AssignmentService",
    "RoleService",
]
