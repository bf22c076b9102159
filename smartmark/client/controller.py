from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from smartmark.client.api import ApiError, UnauthorizedError
from smartmark.client.channel import (
    STATUS_CLOSED,
    STATUS_CONNECTING,
    PollingChannel,
    status_label,
)
from smartmark.services.common import isoformat_utc, normalize_url
from smartmark.services.merge import find_unsynced, record_key
from smartmark.services.records import (
    LOCAL_ID_PREFIX,
    BookmarkRecord,
    remove_record,
    sort_newest_first,
    upsert_record,
)
from smartmark.services.reducer import reduce_change_event


GUEST_USER_ID = "local"

TITLE_REQUIRED_MESSAGE = "Title is required."
INVALID_URL_MESSAGE = "Please enter a valid URL."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."

logger = logging.getLogger(__name__)


class DashboardState(str, Enum):
    GUEST_LOADING = "guest-loading"
    GUEST_ONBOARDING = "guest-onboarding"
    GUEST_ACTIVE = "guest-active"
    AUTHENTICATED_ACTIVE = "authenticated-active"


GUEST_STATES = {
    DashboardState.GUEST_LOADING,
    DashboardState.GUEST_ONBOARDING,
    DashboardState.GUEST_ACTIVE,
}


class DashboardStateError(Exception):
    pass


@dataclass(frozen=True)
class StatusMessage:
    kind: str
    text: str


@dataclass(frozen=True)
class SyncReport:
    attempted: int
    succeeded: int
    failed: int


def _now_iso() -> str:
    return isoformat_utc(datetime.now(timezone.utc))


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def _sync_summary(report: SyncReport) -> StatusMessage:
    if not report.failed:
        return StatusMessage(
            "success", f"Synced {_plural(report.succeeded, 'local bookmark')}."
        )
    if not report.succeeded:
        return StatusMessage(
            "error",
            f"Failed to sync {_plural(report.failed, 'local bookmark')}. "
            "They stay on this device for retry.",
        )
    return StatusMessage(
        "error",
        f"Synced {report.succeeded} of {_plural(report.attempted, 'local bookmark')}. "
        f"{report.failed} failed and stay on this device for retry.",
    )


class DashboardController:
    """Owns the visible bookmark list and routes user actions.

    Guest states keep bookmarks in ``local_store`` only. In the authenticated
    state every mutation goes through ``api`` and the list is also fed by a
    realtime channel, opened on entry and closed on exit.
    """

    def __init__(
        self,
        local_store,
        api=None,
        channel_factory=None,
        login_url=None,
        on_unauthorized=None,
        clock=_now_iso,
    ):
        self.local_store = local_store
        self.api = api
        self.channel_factory = channel_factory or PollingChannel
        self.login_url = login_url
        self.on_unauthorized = on_unauthorized
        self.clock = clock

        self.state = DashboardState.GUEST_LOADING
        self.user: dict | None = None
        self.bookmarks: list[BookmarkRecord] = []
        self.local_bookmarks: list[BookmarkRecord] = []
        self.unsynced: list[BookmarkRecord] = []
        self.status: StatusMessage | None = None
        self.channel = None
        self.realtime_status = STATUS_CLOSED

        self.is_submitting = False
        self.is_syncing = False
        self.is_signing_out = False
        self.deleting_id: str | None = None

    # -- derived values -------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.state is DashboardState.AUTHENTICATED_ACTIVE

    @property
    def pending_sync_count(self) -> int:
        return len(self.unsynced)

    @property
    def can_sync(self) -> bool:
        return self.is_authenticated and bool(self.unsynced) and not self.is_syncing

    @property
    def realtime_label(self) -> str:
        return status_label(self.realtime_status)

    @property
    def user_label(self) -> str:
        if not self.user:
            return "Guest"
        return self.user.get("email") or self.user.get("id") or "Guest"

    @property
    def user_initial(self) -> str:
        return (self.user_label[:1] or "U").upper()

    # -- transitions ----------------------------------------------------

    def _require(self, *states) -> None:
        if self.state not in states:
            raise DashboardStateError(f"action not allowed in state {self.state.value}")

    def _clear_status(self) -> None:
        self.status = None

    def _error(self, text: str) -> None:
        self.status = StatusMessage("error", text)

    def mount(self) -> DashboardState:
        self._require(DashboardState.GUEST_LOADING)
        self.local_bookmarks = sort_newest_first(self.local_store.read_bookmarks())
        self.bookmarks = list(self.local_bookmarks)
        if self.local_store.onboarding_complete():
            self.state = DashboardState.GUEST_ACTIVE
        else:
            self.state = DashboardState.GUEST_ONBOARDING
        return self.state

    def begin_sign_in(self) -> str | None:
        self._require(*GUEST_STATES)
        self._clear_status()
        self.local_store.mark_onboarding_complete()
        return self.login_url() if self.login_url else None

    def skip_onboarding(self) -> DashboardState:
        self._require(DashboardState.GUEST_ONBOARDING)
        self._clear_status()
        self.local_store.mark_onboarding_complete()
        self.state = DashboardState.GUEST_ACTIVE
        return self.state

    def enter_authenticated(self, user: dict, bookmarks=None, initial_error=None):
        if self.api is None:
            raise DashboardStateError("an API client is required to sign in")
        self._close_channel()
        self.user = dict(user)
        self.state = DashboardState.AUTHENTICATED_ACTIVE
        self.status = StatusMessage("error", initial_error) if initial_error else None
        self.local_bookmarks = self.local_store.read_bookmarks()

        if bookmarks is None:
            try:
                bookmarks = self.api.list_bookmarks()
            except ApiError as exc:
                logger.warning("Loading bookmarks failed: %s", exc)
                bookmarks = []
                self._error("Failed to load bookmarks.")
        self._set_bookmarks(sort_newest_first(bookmarks))

        self.channel = self.channel_factory(self.api, self.user["id"])
        self.realtime_status = STATUS_CONNECTING
        self.channel.open()
        return self.state

    def sign_out(self) -> bool:
        self._require(DashboardState.AUTHENTICATED_ACTIVE)
        self._clear_status()
        self.is_signing_out = True
        try:
            self.api.sign_out()
        except ApiError as exc:
            self._error(exc.message or "Failed to sign out.")
            return False
        finally:
            self.is_signing_out = False

        self._close_channel()
        self.user = None
        self.unsynced = []
        self.state = DashboardState.GUEST_LOADING
        self.mount()
        return True

    def unmount(self) -> None:
        self._close_channel()

    def _close_channel(self) -> None:
        if self.channel is not None:
            self.channel.close()
            self.channel = None
        self.realtime_status = STATUS_CLOSED

    # -- list bookkeeping -----------------------------------------------

    def _set_bookmarks(self, items) -> None:
        self.bookmarks = items
        if self.is_authenticated:
            self._recompute_pending()

    def _recompute_pending(self) -> None:
        self.unsynced = find_unsynced(self.local_bookmarks, self.bookmarks)
        if self.local_bookmarks and not self.unsynced:
            self.local_store.clear_bookmarks()
            self.local_bookmarks = []

    def _persist_guest_list(self) -> None:
        self.local_bookmarks = list(self.bookmarks)
        self.local_store.write_bookmarks(self.local_bookmarks)

    def apply_change_event(self, event) -> None:
        if not self.is_authenticated:
            return
        updated = reduce_change_event(self.bookmarks, event)
        if updated is not self.bookmarks:
            self._set_bookmarks(updated)

    def pump_realtime(self) -> int:
        """Apply everything the channel has queued. Returns the events folded."""
        if self.channel is None:
            return 0
        folded = 0
        for kind, item in self.channel.drain():
            if kind == "status":
                self.realtime_status = item
            elif kind == "event":
                self.apply_change_event(item)
                folded += 1
        return folded

    # -- user actions ---------------------------------------------------

    def _validate(self, title: str, url: str):
        clean_title = (title or "").strip()
        if not clean_title:
            self._error(TITLE_REQUIRED_MESSAGE)
            return None
        normalized = normalize_url(url)
        if not normalized:
            self._error(INVALID_URL_MESSAGE)
            return None
        return clean_title, normalized

    def _handle_api_error(self, exc: ApiError, fallback: str) -> None:
        if isinstance(exc, UnauthorizedError):
            self._error(SESSION_EXPIRED_MESSAGE)
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            return
        self._error(exc.message or fallback)

    def add_bookmark(self, title: str, url: str) -> bool:
        self._require(DashboardState.GUEST_ACTIVE, DashboardState.AUTHENTICATED_ACTIVE)
        self._clear_status()
        if self.is_submitting:
            return False
        validated = self._validate(title, url)
        if validated is None:
            return False
        clean_title, normalized = validated

        if not self.is_authenticated:
            record = BookmarkRecord(
                id=f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}",
                user_id=GUEST_USER_ID,
                title=clean_title,
                url=normalized,
                created_at=self.clock(),
            )
            self.bookmarks = upsert_record(self.bookmarks, record)
            self._persist_guest_list()
            return True

        self.is_submitting = True
        try:
            created = self.api.create_bookmark(clean_title, normalized)
        except ApiError as exc:
            self._handle_api_error(exc, "Failed to add bookmark.")
            return False
        finally:
            self.is_submitting = False
        self._set_bookmarks(upsert_record(self.bookmarks, created))
        return True

    def delete_bookmark(self, bookmark_id: str) -> bool:
        self._require(DashboardState.GUEST_ACTIVE, DashboardState.AUTHENTICATED_ACTIVE)
        self._clear_status()

        if not self.is_authenticated:
            self.bookmarks = remove_record(self.bookmarks, bookmark_id)
            self._persist_guest_list()
            return True

        if self.deleting_id is not None:
            return False
        self.deleting_id = bookmark_id
        try:
            self.api.delete_bookmark(bookmark_id)
        except ApiError as exc:
            self._handle_api_error(exc, "Failed to delete bookmark.")
            return False
        finally:
            self.deleting_id = None
        self._set_bookmarks(remove_record(self.bookmarks, bookmark_id))
        return True

    def cancel_add(self) -> None:
        self._clear_status()

    def sync_local_bookmarks(self) -> SyncReport | None:
        """Push unsynced local bookmarks one at a time, continuing past failures."""
        self._require(DashboardState.AUTHENTICATED_ACTIVE)
        self._clear_status()
        if self.is_syncing:
            return None
        pending = list(self.unsynced)
        if not pending:
            return SyncReport(attempted=0, succeeded=0, failed=0)

        self.is_syncing = True
        synced_keys: list[str] = []
        failed = 0
        unauthorized = False
        try:
            for record in pending:
                try:
                    url = normalize_url(record.url) or record.url
                    created = self.api.create_bookmark(record.title.strip(), url)
                except ApiError as exc:
                    logger.warning("Syncing local bookmark %s failed: %s", record.id, exc)
                    unauthorized = unauthorized or isinstance(exc, UnauthorizedError)
                    failed += 1
                    continue
                synced_keys.append(record_key(record))
                self.bookmarks = upsert_record(self.bookmarks, created)
        finally:
            self.is_syncing = False

        if synced_keys:
            self.local_bookmarks = self.local_store.remove_by_keys(synced_keys)
        self._recompute_pending()

        report = SyncReport(
            attempted=len(pending), succeeded=len(synced_keys), failed=failed
        )
        self.status = _sync_summary(report)
        if unauthorized and self.on_unauthorized is not None:
            self.on_unauthorized()
        return report
