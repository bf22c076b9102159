from urllib.parse import parse_qs, urlparse

import pytest

from smartmark import create_app
from smartmark.auth.provider import Identity, IdentityProviderError
from smartmark.config import TestConfig
from smartmark.extensions import db


class FakeIdentityProvider:
    """Treats the authorization code as the user id."""

    def __init__(self):
        self.refresh_calls = 0
        self.fail_refresh = False
        self.expires_at = None

    def authorization_url(self, state, redirect_uri):
        return f"https://idp.test/authorize?state={state}"

    def exchange_code(self, code, redirect_uri):
        if code == "bad-code":
            raise IdentityProviderError("invalid grant")
        return Identity(
            id=code,
            email=f"{code}@example.com",
            full_name=code.title(),
            avatar_url=f"https://avatars.example.com/{code}.png",
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_at=self.expires_at,
        )

    def refresh(self, identity):
        self.refresh_calls += 1
        if self.fail_refresh:
            raise IdentityProviderError("refresh token revoked")
        identity.access_token = f"access-{identity.id}-{self.refresh_calls}"
        identity.expires_at = None
        return identity


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def app(identity_provider):
    app = create_app(TestConfig, identity_provider=identity_provider)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


def sign_in(client, user_id: str):
    response = client.get("/auth/login")
    assert response.status_code == 302
    state = parse_qs(urlparse(response.headers["Location"]).query)["state"][0]
    response = client.get(f"/auth/callback?code={user_id}&state={state}")
    assert response.status_code == 302
    return response


@pytest.fixture
def login():
    return sign_in
