"""Value objects for neo-roles."""

from .scope import Scope
from .audit_context import AuditContext

__all__ = [
    "Scope",
    "AuditContext",
]
