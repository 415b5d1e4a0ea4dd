"""Constants for neo-roles.

Wildcards, audit actions, default limits, PostgreSQL SQLSTATE codes used for
store error classification and the transient-error markers used by the retry
wrapper.
"""

from enum import Enum
from typing import FrozenSet, Tuple


# Wildcards
WILDCARD = "*"
PERMISSION_SEPARATOR = "."
SCOPE_SEPARATOR = ":"


class AuditAction(str, Enum):
    """Actions recorded in the role audit log."""
    ASSIGNED = "assigned"
    REVOKED = "revoked"


# Defaults
DEFAULT_BATCH_SIZE = 500
DEFAULT_AUDIT_LOG_LIMIT = 100
MAX_AUDIT_LOG_LIMIT = 1000

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY_SECONDS = 1.0
DEFAULT_RETRY_JITTER_RATIO = 0.1

HEALTH_MIN_TRANSACTIONS = 10
HEALTH_MAX_FAILURE_RATE = 0.05
HEALTH_MAX_AVERAGE_DURATION_SECONDS = 1.0

# Default table names
ROLE_ASSIGNMENTS_TABLE = "role_assignments"
ROLE_AUDIT_LOG_TABLE = "role_audit_log"
SCOPE_HIERARCHY_TABLE = "scope_hierarchy"


class SQLState:
    """PostgreSQL SQLSTATE codes relevant to role storage."""
    UNIQUE_VIOLATION = "23505"
    FOREIGN_KEY_VIOLATION = "23503"
    NO_DATA = "02000"
    NO_DATA_FOUND = "P0002"
    SERIALIZATION_FAILURE = "40001"
    DEADLOCK_DETECTED = "40P01"
    LOCK_NOT_AVAILABLE = "55P03"
    CONNECTION_EXCEPTION_CLASS = "08"


NOT_FOUND_SQLSTATES: FrozenSet[str] = frozenset({SQLState.NO_DATA, SQLState.NO_DATA_FOUND})

RETRYABLE_SQLSTATES: FrozenSet[str] = frozenset({
    SQLState.SERIALIZATION_FAILURE,
    SQLState.DEADLOCK_DETECTED,
    SQLState.LOCK_NOT_AVAILABLE,
})

# Lower-case substrings that mark an error message as transient
TRANSIENT_ERROR_MARKERS: Tuple[str, ...] = (
    "connection",
    "timeout",
    "deadlock",
    "lock wait timeout",
    "connection refused",
    "connection reset",
    "broken pipe",
    "temporary failure",
    "try again",
    "resource temporarily unavailable",
)
