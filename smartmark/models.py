import uuid
from datetime import datetime, timezone

from smartmark.extensions import db
from smartmark.services.common import isoformat_utc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.String(255), primary_key=True)
    email = db.Column(db.String(320), nullable=True)
    full_name = db.Column(db.String(255), nullable=True)
    avatar_url = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class Bookmark(db.Model):
    __tablename__ = "bookmarks"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(255), nullable=False, index=True)
    title = db.Column(db.Text, nullable=False)
    url = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (db.Index("ix_bookmark_user_created", "user_id", "created_at"),)

    def as_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "url": self.url,
            "created_at": isoformat_utc(self.created_at),
        }


class BookmarkEvent(db.Model):
    __tablename__ = "bookmark_events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(255), nullable=False, index=True)
    event_type = db.Column(db.String(16), nullable=False)
    new = db.Column(db.JSON, nullable=False, default=dict)
    old = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # AUTOINCREMENT keeps SQLite from reusing cursors once old rows are pruned.
    __table_args__ = (
        db.Index("ix_bookmark_event_user_cursor", "user_id", "id"),
        {"sqlite_autoincrement": True},
    )

    def as_dict(self):
        return {
            "cursor": self.id,
            "eventType": self.event_type,
            "new": self.new or {},
            "old": self.old or {},
            "commit_timestamp": isoformat_utc(self.created_at),
        }
