"""Request metadata passed explicitly to role write operations."""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class AuditContext:
    """Who is acting and where the request came from.

    ``user_id`` is the authenticated subject and ``actor_id`` the principal
    performing a change on someone else's behalf. Both are optional; write
    operations require at least one of them.
    """

    user_id: Optional[str] = None
    actor_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    @property
    def effective_actor_id(self) -> Optional[str]:
        """Actor id, falling back to the user id."""
        return self.actor_id or self.user_id or None

    def with_actor(self, actor_id: str) -> "AuditContext":
        return replace(self, actor_id=actor_id)

    def with_request(
        self,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "AuditContext":
        return replace(self, ip_address=ip_address, user_agent=user_agent, request_id=request_id)
