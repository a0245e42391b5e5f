"""FastAPI dependencies for resource servers.

The authentication layer in front of the app is expected to put the
verified principal id on ``request.state.user_id``.
"""

from enum import Enum

from fastapi import Depends, HTTPException, Request, status

from packages.authz.engine import AuthzEngine, get_authz_engine
from packages.authz.models import AuthzDecision


def get_principal_id(request: Request) -> int:
    """Read the authenticated principal from the request."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "unauthenticated",
                "message": "No authenticated principal on request",
            },
        )
    try:
        return int(user_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "unauthenticated",
                "message": "Principal on request is not a user id",
            },
        )


def get_engine() -> AuthzEngine:
    """Engine used by the guards (override in tests via dependency_overrides)."""
    return get_authz_engine()


def require_permission(resource_type: int, action: str | Enum):
    """FastAPI dependency to require a permission.

    Usage:
        @app.get("/contacts")
        async def list_contacts(
            _: AuthzDecision = Depends(
                require_permission(ResourceType.CONTACT, Action.SELECT)
            )
        ):
            pass
    """

    def check(
        user_id: int = Depends(get_principal_id),
        engine: AuthzEngine = Depends(get_engine),
    ) -> AuthzDecision:
        decision = engine.check(user_id, resource_type, action)

        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "forbidden",
                    "message": decision.reason,
                    "resource_type": decision.resource_type,
                    "action": decision.action,
                },
            )

        return decision

    return check
