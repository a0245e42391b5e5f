"""Storage backends for the authorization engine."""

from packages.authz.storage.base import (
    AuthzStore,
    StoreTransaction,
    UniqueViolation,
    open_transaction,
    run_with_retry,
)
from packages.authz.storage.memory import InMemoryAuthzStore
from packages.authz.storage.sql import SqlAuthzStore

__all__ = [
    "AuthzStore",
    "StoreTransaction",
    "UniqueViolation",
    "open_transaction",
    "run_with_retry",
    "InMemoryAuthzStore",
    "SqlAuthzStore",
]
