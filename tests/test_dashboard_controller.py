import pytest

from smartmark.client.api import NetworkError, NotFoundError, UnauthorizedError
from smartmark.client.channel import PollingChannel
from smartmark.client.controller import (
    DashboardController,
    DashboardState,
    DashboardStateError,
)
from smartmark.client.local_store import LocalStore
from smartmark.client.storage import MemoryStorage
from smartmark.services.records import BookmarkRecord
from smartmark.services.reducer import ChangeEvent


class FakeApi:
    def __init__(self):
        self.rows = []
        self.created = []
        self.fail_titles = set()
        self.fail_with = None
        self.counter = 0
        self.sign_out_calls = 0

    def _stamp(self):
        self.counter += 1
        return f"2024-06-01T00:00:{self.counter:02d}.000Z"

    def list_bookmarks(self):
        if self.fail_with:
            raise self.fail_with
        return list(self.rows)

    def create_bookmark(self, title, url):
        self.created.append((title, url))
        if self.fail_with:
            raise self.fail_with
        if title in self.fail_titles:
            raise NetworkError(None, "Failed to add bookmark.")
        record = BookmarkRecord(
            id=f"srv-{len(self.created)}",
            user_id="alice",
            title=title,
            url=url,
            created_at=self._stamp(),
        )
        self.rows.append(record)
        return record

    def delete_bookmark(self, bookmark_id):
        if self.fail_with:
            raise self.fail_with
        if not any(row.id == bookmark_id for row in self.rows):
            raise NotFoundError(404, "Bookmark not found.")
        self.rows = [row for row in self.rows if row.id != bookmark_id]

    def sign_out(self):
        self.sign_out_calls += 1
        if self.fail_with:
            raise self.fail_with


class FakeChannel:
    instances = []

    def __init__(self, api, user_id):
        self.api = api
        self.user_id = user_id
        self.opened = False
        self.closed = False
        self.queued = []
        FakeChannel.instances.append(self)

    def open(self):
        self.opened = True

    def close(self):
        self.closed = True

    def drain(self):
        items, self.queued = self.queued, []
        return items


def _local(record_id, title, url, created_at="2024-01-01T00:00:00.000Z"):
    return BookmarkRecord(
        id=record_id, user_id="local", title=title, url=url, created_at=created_at
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def controller(storage, api):
    FakeChannel.instances = []
    return DashboardController(
        LocalStore(storage),
        api=api,
        channel_factory=FakeChannel,
        login_url=lambda: "/auth/login?next=/dashboard",
    )


def _signed_in(controller, bookmarks=None):
    controller.mount()
    controller.enter_authenticated(
        {"id": "alice", "email": "alice@example.com"}, bookmarks=bookmarks
    )
    return controller


def test_mount_without_onboarding_shows_prompt(controller):
    assert controller.mount() is DashboardState.GUEST_ONBOARDING


def test_mount_after_onboarding_goes_active(controller, storage):
    LocalStore(storage).mark_onboarding_complete()

    assert controller.mount() is DashboardState.GUEST_ACTIVE


def test_skip_onboarding_marks_flag(controller, storage):
    controller.mount()

    assert controller.skip_onboarding() is DashboardState.GUEST_ACTIVE
    assert LocalStore(storage).onboarding_complete()


def test_begin_sign_in_marks_flag_and_returns_redirect(controller, storage):
    controller.mount()

    assert controller.begin_sign_in() == "/auth/login?next=/dashboard"
    assert LocalStore(storage).onboarding_complete()


def test_actions_are_rejected_during_onboarding(controller):
    controller.mount()

    with pytest.raises(DashboardStateError):
        controller.add_bookmark("Docs", "react.dev")


def test_guest_add_and_delete_persist_locally(controller, storage):
    controller.mount()
    controller.skip_onboarding()

    assert controller.add_bookmark(" Docs ", "react.dev") is True
    [record] = controller.bookmarks
    assert record.id.startswith("local-")
    assert record.title == "Docs"
    assert record.url == "https://react.dev/"
    assert [item.id for item in LocalStore(storage).read_bookmarks()] == [record.id]

    assert controller.delete_bookmark(record.id) is True
    assert controller.bookmarks == []
    assert LocalStore(storage).read_bookmarks() == []


def test_guest_validation_messages(controller):
    controller.mount()
    controller.skip_onboarding()

    assert controller.add_bookmark("   ", "react.dev") is False
    assert controller.status.text == "Title is required."

    assert controller.add_bookmark("Docs", "::::") is False
    assert controller.status.text == "Please enter a valid URL."

    controller.add_bookmark("Docs", "react.dev")
    assert controller.status is None


def test_enter_authenticated_opens_channel(controller):
    _signed_in(controller)

    assert controller.state is DashboardState.AUTHENTICATED_ACTIVE
    [channel] = FakeChannel.instances
    assert channel.user_id == "alice"
    assert channel.opened
    assert controller.realtime_label == "Connecting"
    assert controller.user_label == "alice@example.com"
    assert controller.user_initial == "A"


def test_enter_authenticated_reports_load_failure(controller, api):
    api.fail_with = NetworkError(None, "Failed to load bookmarks.")
    _signed_in(controller)

    assert controller.bookmarks == []
    assert controller.status.text == "Failed to load bookmarks."


def test_authenticated_add_goes_through_api(controller, api):
    _signed_in(controller)

    assert controller.add_bookmark("Docs", "react.dev") is True
    assert api.created == [("Docs", "https://react.dev/")]
    assert [item.id for item in controller.bookmarks] == ["srv-1"]


def test_failed_add_leaves_list_untouched(controller, api):
    _signed_in(controller)
    api.fail_with = NetworkError(None, "Failed to add bookmark.")

    assert controller.add_bookmark("Docs", "react.dev") is False
    assert controller.bookmarks == []
    assert controller.status.kind == "error"
    assert controller.status.text == "Failed to add bookmark."
    assert controller.is_submitting is False


def test_unauthorized_triggers_callback(storage, api):
    redirected = []
    controller = DashboardController(
        LocalStore(storage),
        api=api,
        channel_factory=FakeChannel,
        on_unauthorized=lambda: redirected.append(True),
    )
    _signed_in(controller)
    api.fail_with = UnauthorizedError(401, "Unauthorized")

    controller.delete_bookmark("srv-1")

    assert redirected == [True]
    assert "sign in" in controller.status.text


def test_authenticated_delete_not_found_keeps_list(controller, api):
    _signed_in(controller)
    controller.add_bookmark("Docs", "react.dev")

    assert controller.delete_bookmark("missing") is False
    assert controller.status.text == "Bookmark not found."
    assert [item.id for item in controller.bookmarks] == ["srv-1"]

    assert controller.delete_bookmark("srv-1") is True
    assert controller.bookmarks == []
    assert controller.status is None


def test_realtime_events_are_folded_on_pump(controller):
    _signed_in(controller)
    channel = FakeChannel.instances[0]
    remote = BookmarkRecord(
        id="srv-9",
        user_id="alice",
        title="From another tab",
        url="https://example.com/",
        created_at="2024-07-01T00:00:00.000Z",
    )
    channel.queued = [
        ("status", "SUBSCRIBED"),
        ("event", ChangeEvent("INSERT", new=remote.as_dict())),
        ("event", ChangeEvent("INSERT", new=remote.as_dict())),
    ]

    assert controller.pump_realtime() == 2
    assert controller.realtime_label == "Live"
    assert [item.id for item in controller.bookmarks] == ["srv-9"]

    channel.queued = [("event", ChangeEvent("DELETE", old={"id": "srv-9"}))]
    controller.pump_realtime()
    assert controller.bookmarks == []


def test_pending_sync_count_and_partial_sync(controller, storage, api):
    local = LocalStore(storage)
    local.write_bookmarks(
        [
            _local("local-1", "a", "https://a.com/"),
            _local("local-2", "B", "b.com"),
            _local("local-3", "C", "c.com"),
        ]
    )
    server = [
        BookmarkRecord(
            id="srv-a",
            user_id="alice",
            title="A",
            url="https://a.com",
            created_at="2024-05-01T00:00:00.000Z",
        )
    ]
    api.fail_titles = {"C"}
    _signed_in(controller, bookmarks=server)

    assert controller.pending_sync_count == 2
    assert controller.can_sync

    report = controller.sync_local_bookmarks()

    assert (report.attempted, report.succeeded, report.failed) == (2, 1, 1)
    assert [title for title, _ in api.created] == ["B", "C"]
    assert controller.status.kind == "error"
    assert "1 failed" in controller.status.text
    assert [item.title for item in local.read_bookmarks()] == ["a", "C"]
    assert controller.pending_sync_count == 1
    assert {item.title for item in controller.bookmarks} == {"A", "B"}


def test_full_sync_clears_local_storage(controller, storage, api):
    local = LocalStore(storage)
    local.write_bookmarks([_local("local-1", "B", "b.com"), _local("local-2", "b", "b.com")])
    _signed_in(controller, bookmarks=[])

    report = controller.sync_local_bookmarks()

    assert (report.attempted, report.succeeded, report.failed) == (1, 1, 0)
    assert controller.status.text == "Synced 1 local bookmark."
    assert storage.get_item("smart-bookmark-local-bookmarks") is None
    assert controller.pending_sync_count == 0


def test_local_entries_already_on_server_are_cleared(controller, storage):
    local = LocalStore(storage)
    local.write_bookmarks([_local("local-1", "docs", "react.dev")])
    server = [
        BookmarkRecord(
            id="srv-1",
            user_id="alice",
            title="Docs",
            url="https://react.dev/",
            created_at="2024-05-01T00:00:00.000Z",
        )
    ]

    _signed_in(controller, bookmarks=server)

    assert controller.pending_sync_count == 0
    assert local.read_bookmarks() == []


def test_sign_out_closes_channel_and_returns_to_guest(controller, storage, api):
    local = LocalStore(storage)
    local.mark_onboarding_complete()
    guest = [_local("local-1", "Docs", "https://react.dev/")]
    local.write_bookmarks(guest)
    _signed_in(controller, bookmarks=[])
    channel = FakeChannel.instances[0]
    assert controller.pending_sync_count == 1

    assert controller.sign_out() is True
    assert api.sign_out_calls == 1
    assert channel.closed
    assert controller.channel is None
    assert controller.state is DashboardState.GUEST_ACTIVE
    assert controller.user is None
    assert controller.unsynced == []
    assert controller.bookmarks == guest
    assert controller.realtime_label == "Disconnected"


def test_sign_out_failure_keeps_session(controller, api):
    _signed_in(controller)
    api.fail_with = NetworkError(None, "Failed to sign out.")

    assert controller.sign_out() is False
    assert controller.state is DashboardState.AUTHENTICATED_ACTIVE
    assert controller.status.text == "Failed to sign out."


class ScriptedApi:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def pull_changes(self, user_id, since=None, limit=None):
        self.calls.append(since)
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_polling_channel_subscribes_then_queues_events():
    insert = ChangeEvent("INSERT", new={"id": "x"})
    api = ScriptedApi([([], 5, False), ([insert], 6, False)])
    channel = PollingChannel(api, "alice")

    channel.poll_once()
    channel.poll_once()

    assert api.calls == [None, 5]
    assert channel.drain() == [("status", "SUBSCRIBED"), ("event", insert)]
    assert channel.drain() == []


def test_polling_channel_reports_network_trouble():
    api = ScriptedApi([([], 1, False), NetworkError(None, "down"), ([], 1, False)])
    channel = PollingChannel(api, "alice")

    channel.poll_once()
    channel.poll_once()
    channel.poll_once()

    statuses = [item for kind, item in channel.drain() if kind == "status"]
    assert statuses == ["SUBSCRIBED", "TIMED_OUT", "SUBSCRIBED"]


def test_unmount_closes_channel(controller):
    _signed_in(controller)
    channel = FakeChannel.instances[0]

    controller.unmount()

    assert channel.closed
    assert controller.channel is None
    assert controller.pump_realtime() == 0


def test_cancel_add_clears_stale_message(controller):
    controller.mount()
    controller.skip_onboarding()
    controller.add_bookmark("", "react.dev")

    controller.cancel_add()

    assert controller.status is None


def test_successful_guest_actions_clear_previous_error(controller):
    controller.mount()
    controller.skip_onboarding()

    assert controller.add_bookmark("", "react.dev") is False
    assert controller.status.text == "Title is required."
    assert controller.add_bookmark("Docs", "react.dev") is True
    assert controller.status is None

    assert controller.add_bookmark("Docs", "::::") is False
    assert controller.status is not None
    assert controller.delete_bookmark(controller.bookmarks[0].id) is True
    assert controller.status is None
    assert controller.bookmarks == []


def test_successful_authenticated_actions_clear_previous_error(controller, api):
    _signed_in(controller, bookmarks=[])

    assert controller.delete_bookmark("missing") is False
    assert controller.status.text == "Bookmark not found."
    assert controller.add_bookmark("Docs", "react.dev") is True
    assert controller.status is None

    assert controller.add_bookmark("", "react.dev") is False
    assert controller.status is not None
    assert controller.delete_bookmark("srv-1") is True
    assert controller.status is None
    assert controller.bookmarks == []
