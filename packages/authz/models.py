"""Authorization data models.

Defines resource types, actions, permissions, roles, permission-check
decisions and the rows of the authorization (consent) ledger.
"""

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


class ResourceType(IntEnum):
    """Categories of protected resources.

    The enumeration is versioned together with the stored catalog: new
    values need a migration. Operations also accept plain integers so rows
    written by a newer schema can still be read.
    """

    USER = 1
    CONTACT = 2
    PROFILE = 3
    APPLICATION = 4
    SCOPE = 5
    AUTHORIZATION = 6
    GROUP = 7


class Action(str, Enum):
    """Actions that can be performed on a resource type."""

    CREATE = "create"
    SELECT = "select"
    UPDATE = "update"
    REMOVE = "remove"


class Permission(BaseModel):
    """A grantable (resource_type, action) pair.

    Unique per (resource_type, action).
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Permission identifier")
    resource_type: int = Field(description="Protected resource category")
    action: str = Field(description="Action on the resource type")

    @property
    def key(self) -> tuple[int, str]:
        return (self.resource_type, self.action)


class Role(BaseModel):
    """A named group of permissions.

    Users are assigned roles, which grant them the role's permissions.
    The ``admin`` role is a seed row like any other and may hold any
    subset of the catalog, including none.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Role identifier")
    name: str = Field(description="Unique role name")


class Decision(str, Enum):
    """Outcome of a permission check."""

    ALLOW = "allow"
    DENY = "deny"


class AuthzDecision(BaseModel):
    """Result of a permission check, with an explanation."""

    decision: Decision = Field(description="Allow or deny")
    user_id: int = Field(description="Principal that was checked")
    resource_type: int = Field(description="Resource type that was checked")
    action: str = Field(description="Action that was checked")
    permission_id: int | None = Field(
        default=None,
        description="Resolved permission (None if not in the catalog)"
    )
    reason: str = Field(default="", description="Explanation of decision")

    @property
    def allowed(self) -> bool:
        return self.decision == Decision.ALLOW


class AuthorizationStatus(IntEnum):
    """Known states of a ledger row.

    The stored column is a bare integer. Values outside this enumeration
    are kept as-is and treated as "not active".
    """

    ACTIVE = 0
    REVOKED = 1

    @classmethod
    def parse(cls, value: int) -> "AuthorizationStatus | None":
        """Map a stored integer to a known state, or None if unrecognised."""
        try:
            return cls(value)
        except ValueError:
            return None


class Authorization(BaseModel):
    """One (user, client, scope) consent row.

    At most one row exists per triple. Grant/revoke cycles mutate the
    same row; revocation is a soft delete (status + removed_time).
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Ledger row identifier")
    user_id: int = Field(description="Principal that gave consent")
    client_id: int = Field(description="Relying application")
    scope_id: int = Field(description="Scope of the client being granted")
    created_time: datetime = Field(description="Set once at first insert")
    updated_time: datetime | None = Field(
        default=None,
        description="Set on every status transition"
    )
    removed_time: datetime | None = Field(
        default=None,
        description="Set while the grant is revoked"
    )
    status: int = Field(
        default=AuthorizationStatus.ACTIVE,
        description="0 = active; other values are not grantable"
    )

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.user_id, self.client_id, self.scope_id)

    @property
    def state(self) -> AuthorizationStatus | None:
        return AuthorizationStatus.parse(self.status)

    @property
    def is_active(self) -> bool:
        return self.state is AuthorizationStatus.ACTIVE
