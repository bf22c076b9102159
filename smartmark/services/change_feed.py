from __future__ import annotations

from datetime import timedelta

from smartmark.extensions import db
from smartmark.models import BookmarkEvent, utcnow
from smartmark.services.reducer import EVENT_DELETE, EVENT_INSERT, EVENT_TYPES


def log_change_event(
    user_id: str, event_type: str, new: dict | None = None, old: dict | None = None
) -> BookmarkEvent:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown change event type: {event_type}")
    event = BookmarkEvent(
        user_id=user_id,
        event_type=event_type,
        new=new or {},
        old=old or {},
    )
    db.session.add(event)
    return event


def log_bookmark_inserted(bookmark) -> BookmarkEvent:
    return log_change_event(bookmark.user_id, EVENT_INSERT, new=bookmark.as_dict())


def log_bookmark_deleted(bookmark) -> BookmarkEvent:
    return log_change_event(bookmark.user_id, EVENT_DELETE, old=bookmark.as_dict())


def head_cursor(user_id: str) -> int:
    latest = (
        BookmarkEvent.query.filter_by(user_id=user_id)
        .order_by(BookmarkEvent.id.desc())
        .first()
    )
    return latest.id if latest else 0


def pull_change_events(user_id: str, since: int, limit: int) -> list[BookmarkEvent]:
    return (
        BookmarkEvent.query.filter_by(user_id=user_id)
        .filter(BookmarkEvent.id > since)
        .order_by(BookmarkEvent.id.asc())
        .limit(limit)
        .all()
    )


def prune_change_events(retention_minutes: int) -> int:
    cutoff = utcnow() - timedelta(minutes=retention_minutes)
    deleted = BookmarkEvent.query.filter(BookmarkEvent.created_at < cutoff).delete(
        synchronize_session=False
    )
    db.session.commit()
    return deleted
