from __future__ import annotations

import json
import logging

from smartmark.services.merge import record_key
from smartmark.services.records import BookmarkRecord


LOCAL_BOOKMARKS_KEY = "smart-bookmark-local-bookmarks"
ONBOARDING_COMPLETE_KEY = "smart-bookmark-onboarding-complete"

logger = logging.getLogger(__name__)


class LocalStore:
    """Guest bookmarks and the onboarding marker kept in device storage."""

    def __init__(self, storage):
        self.storage = storage

    def read_bookmarks(self) -> list[BookmarkRecord]:
        raw = self.storage.get_item(LOCAL_BOOKMARKS_KEY)
        if not raw:
            return []
        try:
            rows = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable local bookmark list")
            return []
        if not isinstance(rows, list):
            return []

        records = []
        for row in rows:
            record = BookmarkRecord.from_dict(row)
            if record is None or not record.title.strip() or not record.url:
                continue
            records.append(record)
        return records

    def write_bookmarks(self, records) -> None:
        payload = [record.as_dict() for record in records]
        self.storage.set_item(LOCAL_BOOKMARKS_KEY, json.dumps(payload))

    def clear_bookmarks(self) -> None:
        self.storage.remove_item(LOCAL_BOOKMARKS_KEY)

    def remove_by_keys(self, keys) -> list[BookmarkRecord]:
        keys = set(keys)
        remaining = [
            record for record in self.read_bookmarks() if record_key(record) not in keys
        ]
        if remaining:
            self.write_bookmarks(remaining)
        else:
            self.clear_bookmarks()
        return remaining

    def onboarding_complete(self) -> bool:
        return self.storage.get_item(ONBOARDING_COMPLETE_KEY) is not None

    def mark_onboarding_complete(self) -> None:
        self.storage.set_item(ONBOARDING_COMPLETE_KEY, "1")
