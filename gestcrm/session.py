"""
Session capability.

Who is signed in is supplied by a SessionProvider. The login flow is not wired
up yet, so the CLI runs with BypassSessionProvider, a fixed approved user taken
from config. Swapping in a real provider only touches the CLI entry point.
"""

import logging
from typing import Optional

from gestcrm.config import config
from gestcrm.models import CurrentUser, RUOLO_OWNER

logger = logging.getLogger(__name__)

NOT_APPROVED_MESSAGE = (
    "Il tuo account è in attesa di approvazione da parte dell'amministratore. "
    "Contatta il supporto per maggiori informazioni."
)
OWNER_ONLY_MESSAGE = "Accesso non autorizzato. Solo gli owner possono gestire gli utenti."


class NotAuthenticatedError(Exception):
    """No user is signed in."""


class AccountNotApprovedError(Exception):
    """The signed-in account has not been approved by an administrator."""

    def __init__(self, message: str = NOT_APPROVED_MESSAGE):
        super().__init__(message)


class NotAuthorizedError(Exception):
    """The signed-in account lacks the role an operation needs."""

    def __init__(self, message: str = OWNER_ONLY_MESSAGE):
        super().__init__(message)


class SessionProvider:
    """Interface for whatever knows the current user."""

    def current_user(self) -> Optional[CurrentUser]:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError


class BypassSessionProvider(SessionProvider):
    """Always signed in as the configured user: an approved owner."""

    def __init__(self, user_id: Optional[str] = None, email: Optional[str] = None):
        self._user = CurrentUser(
            id=user_id or config.AUTH_USER_ID,
            email=email or config.AUTH_USER_EMAIL,
            nome='Admin',
            cognome='User',
            ruolo=RUOLO_OWNER,
            approved=True,
        )
        self._signed_in = True

    def current_user(self) -> Optional[CurrentUser]:
        return self._user if self._signed_in else None

    def sign_out(self) -> None:
        logger.info(f"Signed out {self._user.email}")
        self._signed_in = False


def require_user(provider: SessionProvider) -> CurrentUser:
    """
    The approved current user.
    An unapproved account is signed out before AccountNotApprovedError is raised.
    """
    user = provider.current_user()
    if user is None:
        raise NotAuthenticatedError("Nessun utente autenticato")

    if not user.approved:
        logger.warning(f"require_user: account {user.email} not approved, signing out")
        provider.sign_out()
        raise AccountNotApprovedError()

    return user


def require_owner(provider: SessionProvider) -> CurrentUser:
    """The approved current user, provided they hold the owner role."""
    user = require_user(provider)
    if user.ruolo != RUOLO_OWNER:
        logger.warning(f"require_owner: {user.email} has role {user.ruolo!r}, refusing user management")
        raise NotAuthorizedError()
    return user
