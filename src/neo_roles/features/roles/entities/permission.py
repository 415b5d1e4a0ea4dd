"""Permission pattern matching.

Permissions are dot-separated segments such as ``projects.tasks.read``. A
pattern may replace whole segments with ``*`` (``projects.*.read``) or be the
single wildcard ``*``, which grants everything. Wildcards never match across
segments: ``projects.*`` does not match ``projects.tasks.read``.
"""

import re
from typing import Iterable, Set

from ....config.constants import PERMISSION_SEPARATOR, WILDCARD
from ....core.exceptions import InvalidPermissionError

_SEGMENT = re.compile(r"^[A-Za-z0-9_]+$")


class PermissionMatcher:
    """Stateless matcher for wildcard permission patterns."""

    def match(self, pattern: str, permission: str) -> bool:
        """Check if a single pattern grants a permission."""
        if pattern == permission or pattern == WILDCARD:
            return True

        pattern_parts = pattern.split(PERMISSION_SEPARATOR)
        permission_parts = permission.split(PERMISSION_SEPARATOR)
        if len(pattern_parts) != len(permission_parts):
            return False

        return all(
            expected == WILDCARD or expected == actual
            for expected, actual in zip(pattern_parts, permission_parts)
        )

    def match_any(self, patterns: Iterable[str], permission: str) -> bool:
        """Check if any pattern grants a permission."""
        return any(self.match(pattern, permission) for pattern in patterns)

    def validate(self, permission: str) -> None:
        """Validate a permission or pattern.

        Raises:
            InvalidPermissionError: If the permission is empty, has fewer than
                two segments (other than ``*`` itself), has an empty segment or
                a segment with characters outside ``[A-Za-z0-9_]``.
        """
        if not permission:
            raise InvalidPermissionError("Permission cannot be empty")

        if permission == WILDCARD:
            return

        parts = permission.split(PERMISSION_SEPARATOR)
        if len(parts) < 2:
            raise InvalidPermissionError(
                f"Permission must have at least two segments: {permission}",
                details={"permission": permission},
            )

        for part in parts:
            if not part:
                raise InvalidPermissionError(
                    f"Permission contains an empty segment: {permission}",
                    details={"permission": permission},
                )
            if part != WILDCARD and not _SEGMENT.match(part):
                raise InvalidPermissionError(
                    f"Permission segment '{part}' contains invalid characters: {permission}",
                    details={"permission": permission},
                )

    def is_valid(self, permission: str) -> bool:
        try:
            self.validate(permission)
        except InvalidPermissionError:
            return False
        return True

    def expand_permissions(self, patterns: Iterable[str], known_permissions: Iterable[str]) -> Set[str]:
        """Return the known permissions granted by at least one pattern."""
        patterns = tuple(patterns)
        return {
            permission for permission in known_permissions
            if self.match_any(patterns, permission)
        }


DEFAULT_MATCHER = PermissionMatcher()


def match_permission(pattern: str, permission: str) -> bool:
    return DEFAULT_MATCHER.match(pattern, permission)


def match_any_permission(patterns: Iterable[str], permission: str) -> bool:
    return DEFAULT_MATCHER.match_any(patterns, permission)
