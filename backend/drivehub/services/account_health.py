"""Connection health state machine for linked accounts.

    active ──auth failure──▶ revoked ──user──▶ disconnected
      │  ▲                     ▲
      ▼  │ successful sync     │ auth failure
     error ────────────────────┘

Leaving ``revoked`` requires a brand new OAuth linking flow, which resets the
row directly (see AccountService.link_account) rather than transitioning here.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.logging import get_logger
from drivehub.db.models import ConnectionStatus, LinkedAccount

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.ACTIVE: frozenset(
        {ConnectionStatus.REVOKED, ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED}
    ),
    ConnectionStatus.ERROR: frozenset(
        {
            ConnectionStatus.ACTIVE,
            ConnectionStatus.REVOKED,
            ConnectionStatus.ERROR,
            ConnectionStatus.DISCONNECTED,
        }
    ),
    ConnectionStatus.REVOKED: frozenset({ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.DISCONNECTED: frozenset(),
}


class AccountStateError(Exception):
    """Raised when a health transition is not allowed."""

    def __init__(self, account_id: str, current: ConnectionStatus, target: ConnectionStatus):
        super().__init__(
            f"Account {account_id} cannot move from {current.value} to {target.value}"
        )
        self.account_id = account_id
        self.current = current
        self.target = target


class AccountHealthService:
    """Applies and persists connection status transitions.

    Every transition is committed immediately, so the new status survives a
    rollback of whatever the caller was doing when the failure happened.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the health service.

        Args:
            db: AsyncSession the account is attached to.
        """
        self.db = db

    @staticmethod
    def can_transition(current: ConnectionStatus, target: ConnectionStatus) -> bool:
        """Check whether ``current -> target`` is a legal transition."""
        return target in ALLOWED_TRANSITIONS[ConnectionStatus(current)]

    @staticmethod
    def is_syncable(account: LinkedAccount, include_errored: bool = False) -> bool:
        """Whether automatic sync should pick this account up."""
        status = ConnectionStatus(account.connection_status)
        if status == ConnectionStatus.ACTIVE:
            return True
        return include_errored and status == ConnectionStatus.ERROR

    async def mark_revoked(self, account: LinkedAccount, reason: str | None = None) -> bool:
        """Mark an account revoked and drop both of its tokens.

        Idempotent: an account already revoked is left untouched.

        Returns:
            True if the status changed.
        """
        if account.connection_status == ConnectionStatus.REVOKED:
            return False

        self._check(account, ConnectionStatus.REVOKED)
        account.connection_status = ConnectionStatus.REVOKED
        account.access_token_encrypted = None
        account.refresh_token_encrypted = None
        account.token_expires_at = None
        account.last_error = reason
        await self.db.commit()

        logger.warning(
            "account_revoked",
            account_id=account.id,
            email=account.email,
            reason=reason,
        )
        return True

    async def mark_error(self, account: LinkedAccount, reason: str) -> bool:
        """Record a non-auth failure; tokens are kept for the next attempt.

        Returns:
            True if the status changed (repeated errors only update the message).
        """
        previous = ConnectionStatus(account.connection_status)
        self._check(account, ConnectionStatus.ERROR)
        account.connection_status = ConnectionStatus.ERROR
        account.last_error = reason
        await self.db.commit()

        logger.warning(
            "account_error",
            account_id=account.id,
            email=account.email,
            reason=reason,
        )
        return previous != ConnectionStatus.ERROR

    async def mark_active(self, account: LinkedAccount) -> bool:
        """Recover an errored account after a successful operation.

        Returns:
            True if the status changed.
        """
        if account.connection_status == ConnectionStatus.ACTIVE:
            return False

        self._check(account, ConnectionStatus.ACTIVE)
        account.connection_status = ConnectionStatus.ACTIVE
        account.last_error = None
        await self.db.commit()

        logger.info("account_recovered", account_id=account.id, email=account.email)
        return True

    async def mark_disconnected(self, account: LinkedAccount) -> bool:
        """Mark an account disconnected at the user's request."""
        if account.connection_status == ConnectionStatus.DISCONNECTED:
            return False

        self._check(account, ConnectionStatus.DISCONNECTED)
        account.connection_status = ConnectionStatus.DISCONNECTED
        await self.db.commit()

        logger.info("account_disconnected", account_id=account.id, email=account.email)
        return True

    def _check(self, account: LinkedAccount, target: ConnectionStatus) -> None:
        current = ConnectionStatus(account.connection_status)
        if not self.can_transition(current, target):
            raise AccountStateError(account.id, current, target)
