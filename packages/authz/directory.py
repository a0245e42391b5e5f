"""Collaborator interfaces consumed by the engine.

Users, client applications and their scopes are owned by other services;
the engine only asks whether an id exists.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable


class UserDirectory(ABC):
    @abstractmethod
    def user_exists(self, user_id: int) -> bool:
        """Return whether the user is known."""


class ClientRegistry(ABC):
    @abstractmethod
    def client_exists(self, client_id: int) -> bool:
        """Return whether the client application is registered."""

    @abstractmethod
    def scope_exists(self, scope_id: int, client_id: int) -> bool:
        """Return whether the scope exists and belongs to the client."""


class Directory(UserDirectory, ClientRegistry):
    """Everything the engine asks about users, clients and scopes."""


class StaticDirectory(Directory):
    """In-memory directory for development and tests.

    Usage:
        directory = StaticDirectory(users=[42], scopes={7: [3]})
        directory.scope_exists(3, 7)  # True
    """

    def __init__(
        self,
        users: Iterable[int] = (),
        scopes: dict[int, Iterable[int]] | None = None,
    ):
        self._users = set(users)
        self._scopes: dict[int, set[int]] = {
            client_id: set(scope_ids) for client_id, scope_ids in (scopes or {}).items()
        }

    def add_user(self, user_id: int) -> None:
        self._users.add(user_id)

    def add_client(self, client_id: int, scope_ids: Iterable[int] = ()) -> None:
        self._scopes.setdefault(client_id, set()).update(scope_ids)

    def user_exists(self, user_id: int) -> bool:
        return user_id in self._users

    def client_exists(self, client_id: int) -> bool:
        return client_id in self._scopes

    def scope_exists(self, scope_id: int, client_id: int) -> bool:
        return scope_id in self._scopes.get(client_id, ())
