"""User datastore contract and an in-memory implementation.

Handlers depend only on the four-method ``UserStore`` protocol. Every
write is checked against the record rules in ``rules.USER_RULES``.
"""
from __future__ import annotations

from typing import Protocol

from models import UserPrivate
from rules import ValidationReport, validate_user


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UserValidationError(Exception):
    """Raised when a record fails the record rules."""

    def __init__(self, report: ValidationReport) -> None:
        self.report = report
        super().__init__(report.summary())


class DuplicateEmailError(Exception):
    """Raised when an email is already claimed by another account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Email already registered: {email}")


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class UserStore(Protocol):
    """Async datastore capability used by the handlers."""

    async def exists(self, email: str) -> bool: ...

    async def create(self, user: UserPrivate) -> None: ...

    async def read_by_id(self, user_id: str) -> UserPrivate | None: ...

    async def read_by_email(self, email: str) -> UserPrivate | None: ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryUserStore:
    """Two-table store: primary records by id, plus an email -> id index.

    ``create`` claims the email index before writing the primary record
    and releases the claim if that write fails, so a failed sign-up never
    leaves an index entry pointing at nothing.
    """

    def __init__(self) -> None:
        self._users: dict[str, UserPrivate] = {}
        self._by_email: dict[str, str] = {}  # email -> user_id

    async def exists(self, email: str) -> bool:
        return email in self._by_email

    async def create(self, user: UserPrivate) -> None:
        report = validate_user(user)
        if not report.passed:
            raise UserValidationError(report)

        self._claim_email(user.email, user.id)
        try:
            self._write_user(user)
        except Exception:
            self._release_email(user.email, user.id)
            raise

    async def read_by_id(self, user_id: str) -> UserPrivate | None:
        user = self._users.get(user_id)
        return user.model_copy() if user is not None else None

    async def read_by_email(self, email: str) -> UserPrivate | None:
        user_id = self._by_email.get(email)
        if user_id is None:
            return None
        return await self.read_by_id(user_id)

    # -- Writes -------------------------------------------------------------

    def _claim_email(self, email: str, user_id: str) -> None:
        if email in self._by_email:
            raise DuplicateEmailError(email)
        self._by_email[email] = user_id

    def _release_email(self, email: str, user_id: str) -> None:
        if self._by_email.get(email) == user_id:
            del self._by_email[email]

    def _write_user(self, user: UserPrivate) -> None:
        self._users[user.id] = user.model_copy()

    # -- Maintenance --------------------------------------------------------

    def set_role(self, user_id: str, role: str) -> None:
        """Change an account's role (used by operators and tests)."""
        user = self._users[user_id]
        self._users[user_id] = user.model_copy(update={"role": role})

    def count(self) -> int:
        return len(self._users)

    def clear(self) -> None:
        """Remove all users (useful for testing)."""
        self._users.clear()
        self._by_email.clear()
