"""
Unit tests for the session capability (gestcrm/session.py).
"""

import pytest

from gestcrm.models import CurrentUser, USER_ROLES
from gestcrm.session import (
    AccountNotApprovedError, BypassSessionProvider, NotAuthenticatedError, NotAuthorizedError,
    NOT_APPROVED_MESSAGE, OWNER_ONLY_MESSAGE, SessionProvider, require_owner, require_user,
)


class StubSession(SessionProvider):
    """Fixed identity; records sign-outs."""

    def __init__(self, user=None):
        self.user = user
        self.signed_out = False

    def current_user(self):
        return None if self.signed_out else self.user

    def sign_out(self):
        self.signed_out = True


def test_bypass_provider_defaults_from_config():
    user = BypassSessionProvider().current_user()
    assert user.id == 'mock-user-id'
    assert user.email == 'admin@gestionale.com'
    assert user.approved is True


def test_bypass_user_is_an_owner():
    user = BypassSessionProvider().current_user()
    assert user.ruolo == 'owner'
    assert user.ruolo in USER_ROLES


def test_bypass_provider_overrides():
    user = BypassSessionProvider(user_id='u42', email='a@b.it').current_user()
    assert (user.id, user.email) == ('u42', 'a@b.it')


def test_bypass_provider_sign_out():
    provider = BypassSessionProvider()
    provider.sign_out()
    assert provider.current_user() is None


def test_require_user_returns_approved_user():
    user = CurrentUser(id='u1', email='u1@x.it', approved=True)
    assert require_user(StubSession(user)) is user


def test_require_user_without_session():
    with pytest.raises(NotAuthenticatedError):
        require_user(StubSession(None))


def test_require_user_unapproved_signs_out():
    session = StubSession(CurrentUser(id='u1', email='u1@x.it', approved=False))
    with pytest.raises(AccountNotApprovedError, match='in attesa di approvazione'):
        require_user(session)
    assert session.signed_out is True


def test_not_approved_message_default():
    assert str(AccountNotApprovedError()) == NOT_APPROVED_MESSAGE


def test_base_provider_is_abstract():
    with pytest.raises(NotImplementedError):
        SessionProvider().current_user()


def test_require_owner_allows_owner():
    user = CurrentUser(id='u1', email='boss@x.it', ruolo='owner', approved=True)
    assert require_owner(StubSession(user)) is user


@pytest.mark.parametrize('ruolo', ['commerciale', 'manager'])
def test_require_owner_refuses_other_roles(ruolo):
    session = StubSession(CurrentUser(id='u1', email='u1@x.it', ruolo=ruolo, approved=True))
    with pytest.raises(NotAuthorizedError, match='Solo gli owner'):
        require_owner(session)
    assert session.signed_out is False


def test_require_owner_checks_approval_first():
    session = StubSession(CurrentUser(id='u1', email='u1@x.it', ruolo='owner', approved=False))
    with pytest.raises(AccountNotApprovedError):
        require_owner(session)


def test_require_owner_accepts_bypass_user():
    assert require_owner(BypassSessionProvider()).ruolo == 'owner'


def test_owner_only_message_default():
    assert str(NotAuthorizedError()) == OWNER_ONLY_MESSAGE
