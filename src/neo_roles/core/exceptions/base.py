"""Base exceptions for neo-roles.

All exceptions inherit from NeoRolesError and carry an error code, a details
dictionary and the optional scope/role/user/actor context of the operation
that failed, so callers can log or render them without parsing messages.
"""

from typing import Any, Dict, Optional


class NeoRolesError(Exception):
    """Base exception for all neo-roles errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        scope_type: Optional[str] = None,
        scope_id: Optional[str] = None,
        role: Optional[str] = None,
        user_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = dict(details or {})
        self.scope_type = scope_type
        self.scope_id = scope_id
        self.role = role
        self.user_id = user_id
        self.actor_id = actor_id

        for key, value in self.context.items():
            self.details.setdefault(key, value)

    @property
    def context(self) -> Dict[str, str]:
        """Non-empty diagnostic context attached to this error."""
        context = {
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "role": self.role,
            "user_id": self.user_id,
            "actor_id": self.actor_id,
        }
        return {key: value for key, value in context.items() if value}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({context_str})"


def create_error_response(exception: NeoRolesError) -> Dict[str, Any]:
    """Create standardized error response from exception.

    Args:
        exception: The neo-roles exception

    Returns:
        Error response dictionary
    """
    return {
        "error": {
            "code": exception.error_code,
            "message": exception.message,
            "details": exception.details,
            "type": exception.__class__.__name__,
        }
    }
