"""Scope value object.

A scope is a (type, id) pair such as ``organization:acme``. The id ``*``
addresses every instance of the scope type.
"""

from dataclasses import dataclass

from ...config.constants import SCOPE_SEPARATOR, WILDCARD
from ..exceptions import InvalidScopeError


@dataclass(frozen=True)
class Scope:
    """Immutable scope reference."""

    type: str
    id: str

    def __post_init__(self):
        if not self.type:
            raise InvalidScopeError("Scope type cannot be empty")
        if not self.id:
            raise InvalidScopeError("Scope id cannot be empty", scope_type=self.type)

    @classmethod
    def parse(cls, value: str) -> "Scope":
        """Parse ``type:id``. Only the first separator splits, ids may contain colons."""
        scope_type, separator, scope_id = value.partition(SCOPE_SEPARATOR)
        if not separator:
            raise InvalidScopeError(f"Scope must be formatted as type{SCOPE_SEPARATOR}id: {value}")
        return cls(type=scope_type, id=scope_id)

    @classmethod
    def wildcard(cls, scope_type: str) -> "Scope":
        return cls(type=scope_type, id=WILDCARD)

    @property
    def is_wildcard(self) -> bool:
        return self.id == WILDCARD

    def __str__(self) -> str:
        return f"{self.type}{SCOPE_SEPARATOR}{self.id}"
