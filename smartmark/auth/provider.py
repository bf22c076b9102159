from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from urllib.parse import urlencode

import httpx


_FULL_NAME_CLAIMS = ("full_name", "name", "display_name")
_AVATAR_CLAIMS = ("avatar_url", "picture")


class IdentityProviderError(Exception):
    pass


@dataclass
class Identity:
    id: str
    email: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None

    @classmethod
    def from_session(cls, payload) -> Identity | None:
        if not isinstance(payload, dict) or not payload.get("id"):
            return None
        fields = {key: payload.get(key) for key in cls.__dataclass_fields__}
        return cls(**fields)

    def as_session(self) -> dict:
        return asdict(self)

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
        }

    def expires_within(self, seconds: float, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at - seconds <= (now if now is not None else time.time())


def _first_claim(claims: dict, names) -> str | None:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            return value
    return None


class OAuthIdentityProvider:
    """Authorization-code client for an OpenID Connect provider (Google by default)."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authorize_url: str,
        token_url: str,
        userinfo_url: str,
        scopes: str = "openid email profile",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.userinfo_url = userinfo_url
        self.scopes = scopes
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config) -> OAuthIdentityProvider:
        return cls(
            client_id=config["OAUTH_CLIENT_ID"],
            client_secret=config["OAUTH_CLIENT_SECRET"],
            authorize_url=config["OAUTH_AUTHORIZE_URL"],
            token_url=config["OAUTH_TOKEN_URL"],
            userinfo_url=config["OAUTH_USERINFO_URL"],
            scopes=config["OAUTH_SCOPES"],
            timeout=config["OAUTH_TIMEOUT"],
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scopes,
            "state": state,
            "access_type": "offline",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def _request_tokens(self, form: dict) -> dict:
        form = {
            **form,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            with self._client() as client:
                response = client.post(
                    self.token_url, data=form, headers={"Accept": "application/json"}
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityProviderError(f"token request failed: {exc}") from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise IdentityProviderError("token response missing access_token")
        return payload

    def _fetch_claims(self, access_token: str) -> dict:
        try:
            with self._client() as client:
                response = client.get(
                    self.userinfo_url,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                claims = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityProviderError(f"userinfo request failed: {exc}") from exc
        if not isinstance(claims, dict) or not claims.get("sub"):
            raise IdentityProviderError("userinfo response missing subject")
        return claims

    def _identity_from_tokens(
        self, tokens: dict, refresh_token: str | None = None
    ) -> Identity:
        claims = self._fetch_claims(tokens["access_token"])
        expires_in = tokens.get("expires_in")
        expires_at = None
        if isinstance(expires_in, (int, float)):
            expires_at = time.time() + float(expires_in)
        return Identity(
            id=str(claims["sub"]),
            email=claims.get("email") if isinstance(claims.get("email"), str) else None,
            full_name=_first_claim(claims, _FULL_NAME_CLAIMS),
            avatar_url=_first_claim(claims, _AVATAR_CLAIMS),
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_at=expires_at,
        )

    def exchange_code(self, code: str, redirect_uri: str) -> Identity:
        tokens = self._request_tokens(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        return self._identity_from_tokens(tokens)

    def refresh(self, identity: Identity) -> Identity:
        if not identity.refresh_token:
            raise IdentityProviderError("session has no refresh token")
        tokens = self._request_tokens(
            {"grant_type": "refresh_token", "refresh_token": identity.refresh_token}
        )
        return self._identity_from_tokens(tokens, refresh_token=identity.refresh_token)
