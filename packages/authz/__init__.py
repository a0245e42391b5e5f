"""Authorization package.

Role-Based Access Control (RBAC) over a permission catalog, plus the
per-client, per-scope consent ledger of the SSO service.

Usage:
    from packages.authz import AuthzEngine, ResourceType, Action

    engine = init_authz_engine(directory)

    # Check permission
    if engine.check(user_id, ResourceType.CONTACT, Action.SELECT).allowed:
        # Allowed
        pass

    # Consent ledger
    engine.grant_authorization(user_id, client_id, scope_id)
"""

from packages.authz.models import (
    Action,
    Authorization,
    AuthorizationStatus,
    AuthzDecision,
    Decision,
    Permission,
    ResourceType,
    Role,
)
from packages.authz.errors import (
    AuthzError,
    ConflictRetryExhaustedError,
    DuplicateNameError,
    DuplicatePermissionError,
    DuplicateRoleNameError,
    NotFoundError,
    StorageUnavailableError,
    UnknownClientError,
    UnknownScopeError,
    UnknownUserError,
)
from packages.authz.engine import AuthzEngine, get_authz_engine, init_authz_engine

__all__ = [
    "Action",
    "Authorization",
    "AuthorizationStatus",
    "AuthzDecision",
    "Decision",
    "Permission",
    "ResourceType",
    "Role",
    "AuthzError",
    "ConflictRetryExhaustedError",
    "DuplicateNameError",
    "DuplicatePermissionError",
    "DuplicateRoleNameError",
    "NotFoundError",
    "StorageUnavailableError",
    "UnknownClientError",
    "UnknownScopeError",
    "UnknownUserError",
    "AuthzEngine",
    "get_authz_engine",
    "init_authz_engine",
]
