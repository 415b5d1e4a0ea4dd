"""Audit log entities for role changes.

Maps to the ``role_audit_log`` table. Entries are append-only; a failed
audit write never fails the role change that triggered it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ....config.constants import AuditAction, DEFAULT_AUDIT_LOG_LIMIT, MAX_AUDIT_LOG_LIMIT
from ....core.value_objects import AuditContext
from ....utils.datetime import format_iso8601, utc_now


@dataclass(frozen=True)
class AuditEntry:
    """One recorded role change."""

    actor_id: str
    action: AuditAction
    target_user_id: str
    role: str
    scope_type: str
    scope_id: str
    actor_roles: Tuple[str, ...] = ()
    previous_roles: Tuple[str, ...] = ()
    new_roles: Tuple[str, ...] = ()
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )
    timestamp: datetime = field(default_factory=utc_now)
    id: Optional[str] = None

    @classmethod
    def create(
        cls,
        context: AuditContext,
        action: AuditAction,
        target_user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        actor_roles=(),
        previous_roles=(),
        new_roles=(),
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "AuditEntry":
        """Build an entry stamped with the request metadata of ``context``."""
        return cls(
            actor_id=context.effective_actor_id or "",
            action=action,
            target_user_id=target_user_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
            actor_roles=tuple(actor_roles),
            previous_roles=tuple(previous_roles),
            new_roles=tuple(new_roles),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            request_id=context.request_id,
            metadata=MappingProxyType(dict(metadata or {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action.value,
            "target_user_id": self.target_user_id,
            "role": self.role,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "actor_roles": list(self.actor_roles),
            "previous_roles": list(self.previous_roles),
            "new_roles": list(self.new_roles),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "request_id": self.request_id,
            "metadata": dict(self.metadata),
            "timestamp": format_iso8601(self.timestamp),
        }


class AuditLogFilter(BaseModel):
    """Filter for audit log queries. Results are ordered newest first."""

    model_config = ConfigDict(frozen=True)

    actor_id: Optional[str] = None
    target_user_id: Optional[str] = None
    scope_type: Optional[str] = None
    scope_id: Optional[str] = None
    action: Optional[AuditAction] = None
    role: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: int = Field(default=DEFAULT_AUDIT_LOG_LIMIT, ge=1, le=MAX_AUDIT_LOG_LIMIT)
    offset: int = Field(default=0, ge=0)

    def _with(self, **changes: Any) -> "AuditLogFilter":
        # Re-validate so limit/offset bounds hold on every copy
        return self.__class__.model_validate({**self.model_dump(), **changes})

    def with_actor(self, actor_id: str) -> "AuditLogFilter":
        return self._with(actor_id=actor_id)

    def with_target_user(self, user_id: str) -> "AuditLogFilter":
        return self._with(target_user_id=user_id)

    def with_scope(self, scope_type: str, scope_id: Optional[str] = None) -> "AuditLogFilter":
        return self._with(scope_type=scope_type, scope_id=scope_id)

    def with_action(self, action: AuditAction) -> "AuditLogFilter":
        return self._with(action=action)

    def with_role(self, role: str) -> "AuditLogFilter":
        return self._with(role=role)

    def with_time_range(self, since: Optional[datetime], until: Optional[datetime]) -> "AuditLogFilter":
        return self._with(since=since, until=until)

    def with_pagination(self, limit: int, offset: int = 0) -> "AuditLogFilter":
        return self._with(limit=limit, offset=offset)
