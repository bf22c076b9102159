from __future__ import annotations

from dataclasses import dataclass, field

from smartmark.services.records import BookmarkRecord, remove_record, upsert_record


EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"

EVENT_TYPES = {EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE}


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)
    cursor: int | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> ChangeEvent:
        new = payload.get("new")
        old = payload.get("old")
        cursor = payload.get("cursor")
        return cls(
            event_type=str(payload.get("eventType") or "").upper(),
            new=new if isinstance(new, dict) else {},
            old=old if isinstance(old, dict) else {},
            cursor=cursor if isinstance(cursor, int) else None,
        )


def reduce_change_event(current: list[BookmarkRecord], event: ChangeEvent):
    """Fold one row-level change into the newest-first bookmark list.

    Malformed or unknown events return ``current`` itself.
    """
    if event.event_type in (EVENT_INSERT, EVENT_UPDATE):
        record = BookmarkRecord.from_dict(event.new)
        if record is None:
            return current
        return upsert_record(current, record)

    if event.event_type == EVENT_DELETE:
        previous_id = (event.old or {}).get("id")
        if not previous_id:
            return current
        previous_id = str(previous_id)
        if not any(item.id == previous_id for item in current):
            return current
        return remove_record(current, previous_id)

    return current
