from __future__ import annotations

import secrets
from urllib.parse import urlencode

from flask import current_app, jsonify, redirect, request, session, url_for
from flask_login import current_user
from itsdangerous import BadData, URLSafeTimedSerializer

from smartmark.auth import auth_bp
from smartmark.auth.provider import IdentityProviderError
from smartmark.auth.session import (
    get_identity_provider,
    refresh_current_session,
    sign_in,
    sign_out,
)
from smartmark.services.profile import sync_profile_from_identity


OAUTH_NONCE_SESSION_KEY = "oauth_nonce"
CALLBACK_FAILED_ERROR = "auth_callback_failed"


def _state_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(
        secret_key=current_app.config["SECRET_KEY"], salt="oauth-state"
    )


def _safe_redirect_target(raw_next: str | None, fallback: str = "/") -> str:
    candidate = (raw_next or "").strip()
    if candidate.startswith("/") and not candidate.startswith("//"):
        return candidate
    return fallback


def _with_error(path: str, error: str) -> str:
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{urlencode({'error': error})}"


@auth_bp.before_app_request
def refresh_session_tokens():
    refresh_current_session()


@auth_bp.route("/login", methods=["GET"])
def login():
    next_path = _safe_redirect_target(request.args.get("next"))
    if current_user.is_authenticated:
        return redirect(next_path)

    nonce = secrets.token_urlsafe(16)
    session[OAUTH_NONCE_SESSION_KEY] = nonce
    state = _state_serializer().dumps({"nonce": nonce, "next": next_path})
    redirect_uri = url_for("auth.callback", _external=True)
    return redirect(get_identity_provider().authorization_url(state, redirect_uri))


@auth_bp.route("/callback", methods=["GET"])
def callback():
    code = request.args.get("code")
    raw_state = request.args.get("state") or ""
    expected_nonce = session.pop(OAUTH_NONCE_SESSION_KEY, None)

    try:
        state = _state_serializer().loads(
            raw_state, max_age=current_app.config["OAUTH_STATE_MAX_AGE_SECONDS"]
        )
    except BadData:
        state = None
    next_path = _safe_redirect_target((state or {}).get("next"))

    if not code:
        return redirect(next_path)

    if state is None or not expected_nonce or state.get("nonce") != expected_nonce:
        current_app.logger.warning("OAuth callback rejected: state mismatch")
        return redirect(_with_error(next_path, CALLBACK_FAILED_ERROR))

    redirect_uri = url_for("auth.callback", _external=True)
    try:
        identity = get_identity_provider().exchange_code(code, redirect_uri)
    except IdentityProviderError as exc:
        current_app.logger.warning("OAuth code exchange failed: %s", exc)
        return redirect(_with_error(next_path, CALLBACK_FAILED_ERROR))

    sign_in(identity)
    sync_profile_from_identity(identity)
    return redirect(next_path)


@auth_bp.route("/logout", methods=["POST"])
def logout():
    sign_out()
    return "", 204


@auth_bp.route("/me", methods=["GET"])
def me():
    if not current_user.is_authenticated:
        return jsonify({"error": "Unauthorized"}), 401
    return jsonify({"user": current_user.identity.public_dict()})
