from __future__ import annotations

from smartmark.services.common import normalize_url


def dedup_key(title: str, url: str) -> str:
    normalized = normalize_url(url) or (url or "").strip()
    return f"{(title or '').strip().lower()}::{normalized.lower()}"


def record_key(record) -> str:
    return dedup_key(record.title, record.url)


def find_unsynced(local_items, server_items) -> list:
    """Return local bookmarks with no server counterpart, in their original order.

    Matching is on the case-insensitive (title, normalized url) pair. Duplicate
    local entries are emitted once.
    """
    server_keys = {record_key(item) for item in server_items}
    emitted: set[str] = set()
    unsynced = []
    for item in local_items:
        key = record_key(item)
        if key in server_keys or key in emitted:
            continue
        emitted.add(key)
        unsynced.append(item)
    return unsynced
