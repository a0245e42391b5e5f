"""Authorization error taxonomy.

Every error carries a human-readable ``message``, a machine ``code`` and a
``retryable`` flag telling the caller whether repeating the call may
succeed.
"""


class AuthzError(Exception):
    """Base class for authorization engine failures."""

    retryable = False

    def __init__(self, message: str, code: str = "authz_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AuthzError):
    """Raised when the target row does not exist."""

    def __init__(self, what: str, key: object):
        super().__init__(f"{what} not found: {key}", "not_found")
        self.what = what
        self.key = key


class DuplicateNameError(AuthzError):
    """Raised when a unique name or key is already taken."""

    def __init__(self, message: str, code: str = "duplicate_name"):
        super().__init__(message, code)


class DuplicateRoleNameError(DuplicateNameError):
    """Raised when creating a role whose name is taken."""

    def __init__(self, name: str):
        super().__init__(f"Role name already exists: {name}", "duplicate_role_name")
        self.name = name


class DuplicatePermissionError(DuplicateNameError):
    """Raised when defining a (resource_type, action) pair twice."""

    def __init__(self, resource_type: int, action: str):
        super().__init__(
            f"Permission already exists: resource_type={resource_type} action={action}",
            "duplicate_permission",
        )
        self.resource_type = resource_type
        self.action = action


class UnknownReferenceError(AuthzError):
    """Raised when an external collaborator does not know an id."""


class UnknownUserError(UnknownReferenceError):
    def __init__(self, user_id: int):
        super().__init__(f"Unknown user: {user_id}", "unknown_user")
        self.user_id = user_id


class UnknownClientError(UnknownReferenceError):
    def __init__(self, client_id: int):
        super().__init__(f"Unknown client: {client_id}", "unknown_client")
        self.client_id = client_id


class UnknownScopeError(UnknownReferenceError):
    def __init__(self, scope_id: int, client_id: int):
        super().__init__(
            f"Unknown scope {scope_id} for client {client_id}", "unknown_scope"
        )
        self.scope_id = scope_id
        self.client_id = client_id


class ConflictRetryExhaustedError(AuthzError):
    """Raised when a concurrent-insert race did not settle in time.

    Transient: the caller may repeat the call.
    """

    retryable = True

    def __init__(self, key: object, attempts: int):
        super().__init__(
            f"Could not resolve concurrent write on {key} after {attempts} attempts",
            "conflict_retry_exhausted",
        )
        self.key = key
        self.attempts = attempts


class StorageUnavailableError(AuthzError):
    """Raised when the relational store cannot be reached.

    The in-flight transaction is rolled back.
    """

    def __init__(self, reason: str = "Storage unavailable"):
        super().__init__(reason, "storage_unavailable")
