"""Role repositories package.

Concrete RoleStore implementations.
"""

from .asyncpg_store import AsyncPGRoleStore, AsyncPGTransactionStore, create_pool

__all__ = [
    "AsyncPGRoleStore",
    "AsyncPGTransactionStore",
    "create_pool",
]
