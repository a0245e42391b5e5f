"""Authorization ledger.

Durable record of which scopes of which client each user has consented to.
One row per (user, client, scope), ever:

    ABSENT --grant--> ACTIVE --revoke--> REVOKED --grant--> ACTIVE ...

Revocation is a soft delete: the row keeps its id and ``created_time`` and
gets ``removed_time``; a later grant reactivates the same row.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from packages.authz.errors import NotFoundError
from packages.authz.models import Authorization, AuthorizationStatus
from packages.authz.storage import AuthzStore, StoreTransaction, run_with_retry

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class AuthorizationLedger:
    """Grant/revoke state machine over the authorization table.

    Usage:
        ledger = AuthorizationLedger(store)
        row = ledger.grant(42, 7, 3)
        ledger.revoke(42, 7, 3)
    """

    def __init__(
        self,
        store: AuthzStore,
        clock: Callable[[], datetime] = utcnow,
        retry_attempts: int = 3,
    ):
        self.store = store
        self.clock = clock
        self.retry_attempts = retry_attempts

    def grant(self, user_id: int, client_id: int, scope_id: int) -> Authorization:
        """Grant a scope of a client to a user.

        Idempotent: granting an active triple returns the row unchanged.
        A concurrent grant that inserts the row first makes our insert
        collide; the retry then finds the row and takes the update path.

        Raises:
            ConflictRetryExhaustedError: If the collision did not settle
        """
        key = (user_id, client_id, scope_id)

        def work(tx: StoreTransaction) -> Authorization:
            existing = tx.find_authorization(user_id, client_id, scope_id, lock=True)

            if existing is None:
                row = tx.insert_authorization(
                    user_id, client_id, scope_id,
                    status=AuthorizationStatus.ACTIVE,
                    created_time=self.clock(),
                )
                logger.info("Authorization %d granted: user=%d client=%d scope=%d",
                            row.id, user_id, client_id, scope_id)
                return row

            if existing.is_active:
                logger.debug("Authorization %d already active", existing.id)
                return existing

            row = tx.update_authorization(
                existing.id,
                status=AuthorizationStatus.ACTIVE,
                updated_time=self.clock(),
                removed_time=None,
            )
            logger.info("Authorization %d reactivated (was status %d)",
                        row.id, existing.status)
            return row

        return run_with_retry(self.store, work, key, self.retry_attempts)

    def revoke(self, user_id: int, client_id: int, scope_id: int) -> Authorization:
        """Revoke a previously granted scope.

        Idempotent: revoking a row that is not active returns it unchanged.

        Raises:
            NotFoundError: If the triple was never granted
        """
        key = (user_id, client_id, scope_id)

        with self.store.transaction() as tx:
            existing = tx.find_authorization(user_id, client_id, scope_id, lock=True)
            if existing is None:
                raise NotFoundError("authorization", key)

            if not existing.is_active:
                logger.debug("Authorization %d already inactive (status %d)",
                             existing.id, existing.status)
                return existing

            now = self.clock()
            row = tx.update_authorization(
                existing.id,
                status=AuthorizationStatus.REVOKED,
                updated_time=now,
                removed_time=now,
            )

        logger.info("Authorization %d revoked: user=%d client=%d scope=%d",
                    row.id, user_id, client_id, scope_id)
        return row

    def get(self, user_id: int, client_id: int, scope_id: int) -> Authorization | None:
        """Get the row for a triple in any state."""
        with self.store.transaction() as tx:
            return tx.find_authorization(user_id, client_id, scope_id)

    def list_active(self, user_id: int) -> list[Authorization]:
        """Active rows of a user, oldest grant first."""
        with self.store.transaction() as tx:
            return tx.list_authorizations(user_id, status=AuthorizationStatus.ACTIVE)

    def is_authorized(self, user_id: int, client_id: int, scope_id: int) -> bool:
        row = self.get(user_id, client_id, scope_id)
        return row is not None and row.is_active

    def purge(self, user_id: int, client_id: int, scope_id: int) -> bool:
        """Physically delete a row (administrative; not undoable).

        Returns:
            True if a row was deleted
        """
        with self.store.transaction() as tx:
            existing = tx.find_authorization(user_id, client_id, scope_id, lock=True)
            if existing is None:
                return False
            tx.delete_authorization(existing.id)

        logger.warning("Authorization %d purged: user=%d client=%d scope=%d",
                       existing.id, user_id, client_id, scope_id)
        return True
