from __future__ import annotations

from flask import current_app, has_request_context, session
from flask_login import UserMixin, current_user, login_user, logout_user

from smartmark.auth.provider import Identity, IdentityProviderError
from smartmark.extensions import login_manager


IDENTITY_SESSION_KEY = "identity"


class AuthUser(UserMixin):
    def __init__(self, identity: Identity):
        self.identity = identity

    @property
    def id(self) -> str:
        return self.identity.id


@login_manager.user_loader
def load_user(user_id: str):
    identity = Identity.from_session(session.get(IDENTITY_SESSION_KEY))
    if identity is None or identity.id != user_id:
        return None
    return AuthUser(identity)


def get_identity_provider():
    return current_app.extensions["identity_provider"]


def can_persist_session() -> bool:
    """Only a live request can rewrite the session cookie.

    Callers outside a request (CLI commands, scheduler jobs) still get the
    refreshed identity back, but nothing is written.
    """
    return has_request_context()


def persist_identity(identity: Identity) -> bool:
    if not can_persist_session():
        return False
    session[IDENTITY_SESSION_KEY] = identity.as_session()
    return True


def sign_in(identity: Identity) -> AuthUser:
    user = AuthUser(identity)
    persist_identity(identity)
    login_user(user)
    return user


def sign_out() -> None:
    logout_user()
    if can_persist_session():
        session.pop(IDENTITY_SESSION_KEY, None)


def refresh_identity(identity: Identity, leeway_seconds: int) -> Identity | None:
    """Refresh tokens close to expiry. Returns ``None`` when the session is dead."""
    if not identity.expires_within(leeway_seconds):
        return identity
    try:
        refreshed = get_identity_provider().refresh(identity)
    except IdentityProviderError as exc:
        current_app.logger.warning(
            "Session refresh failed for user %s: %s", identity.id, exc
        )
        return None
    persist_identity(refreshed)
    return refreshed


def refresh_current_session() -> None:
    if not current_user.is_authenticated:
        return
    leeway = current_app.config["SESSION_REFRESH_LEEWAY_SECONDS"]
    refreshed = refresh_identity(current_user.identity, leeway)
    if refreshed is None:
        sign_out()
        return
    current_user.identity = refreshed
