from functools import wraps

from flask import g, jsonify
from flask_login import current_user

from smartmark.services.profile import sync_profile_from_identity


def api_auth_required(func):
    @wraps(func)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Unauthorized"}), 401
        sync_profile_from_identity(current_user.identity)
        g.api_user = current_user
        return func(*args, **kwargs)

    return wrapped
