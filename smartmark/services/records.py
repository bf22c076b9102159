from __future__ import annotations

from dataclasses import asdict, dataclass

from smartmark.services.common import parse_timestamp


LOCAL_ID_PREFIX = "local-"


@dataclass(frozen=True)
class BookmarkRecord:
    """The bookmark shape shared by the API, the change feed and the client."""

    id: str
    user_id: str
    title: str
    url: str
    created_at: str

    @classmethod
    def from_dict(cls, payload) -> BookmarkRecord | None:
        if not isinstance(payload, dict):
            return None
        record_id = payload.get("id")
        if not record_id:
            return None
        return cls(
            id=str(record_id),
            user_id=str(payload.get("user_id") or ""),
            title=str(payload.get("title") or ""),
            url=str(payload.get("url") or ""),
            created_at=str(payload.get("created_at") or ""),
        )

    def as_dict(self) -> dict:
        return asdict(self)


def sort_newest_first(items) -> list[BookmarkRecord]:
    # sorted() is stable, so equal timestamps keep their incoming order.
    return sorted(items, key=lambda item: parse_timestamp(item.created_at), reverse=True)


def upsert_record(items, record: BookmarkRecord) -> list[BookmarkRecord]:
    remaining = [item for item in items if item.id != record.id]
    return sort_newest_first([record, *remaining])


def remove_record(items, record_id: str) -> list[BookmarkRecord]:
    return [item for item in items if item.id != record_id]
