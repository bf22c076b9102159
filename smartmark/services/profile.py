from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from smartmark.extensions import db
from smartmark.models import Profile


def _meta_string(value) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def sync_profile_from_identity(identity) -> bool:
    """Upsert the profile mirror for ``identity``. Failures are logged, never raised."""
    try:
        profile = db.session.get(Profile, identity.id)
        if profile is None:
            profile = Profile(id=identity.id)
            db.session.add(profile)
        profile.email = identity.email or None
        profile.full_name = _meta_string(identity.full_name)
        profile.avatar_url = _meta_string(identity.avatar_url)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Profile sync failed for user %s: %s", identity.id, exc
        )
        return False
    return True
