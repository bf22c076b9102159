from __future__ import annotations

import logging
import queue
import threading

from smartmark.client.api import ApiError, NetworkError


STATUS_CONNECTING = "CONNECTING"
STATUS_SUBSCRIBED = "SUBSCRIBED"
STATUS_CHANNEL_ERROR = "CHANNEL_ERROR"
STATUS_TIMED_OUT = "TIMED_OUT"
STATUS_CLOSED = "CLOSED"

STATUS_LABELS = {
    STATUS_SUBSCRIBED: "Live",
    STATUS_CHANNEL_ERROR: "Channel error",
    STATUS_TIMED_OUT: "Timed out",
    STATUS_CLOSED: "Disconnected",
}

logger = logging.getLogger(__name__)


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, "Connecting")


class PollingChannel:
    """One change subscription for one user, fed by polling the change feed.

    The worker thread only enqueues; ``drain`` hands events and status changes
    to the owning thread, which applies them.
    """

    def __init__(self, api, user_id: str, poll_interval: float = 2.0):
        self.api = api
        self.user_id = user_id
        self.poll_interval = poll_interval
        self.status = STATUS_CLOSED
        self._inbox: queue.Queue = queue.Queue()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._cursor: int | None = None

    def open(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._set_status(STATUS_CONNECTING)
        self._thread = threading.Thread(
            target=self._run, name=f"bookmarks:{self.user_id}", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop.set()
        if thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval + 1)
        self._thread = None
        self._set_status(STATUS_CLOSED)

    def drain(self) -> list[tuple[str, object]]:
        items = []
        while True:
            try:
                items.append(self._inbox.get_nowait())
            except queue.Empty:
                return items

    def _set_status(self, status: str) -> None:
        if status == self.status:
            return
        logger.debug("Channel bookmarks:%s %s -> %s", self.user_id, self.status, status)
        self.status = status
        self._inbox.put(("status", status))

    def poll_once(self) -> None:
        try:
            if self._cursor is None:
                _, self._cursor, _ = self.api.pull_changes(self.user_id)
                self._set_status(STATUS_SUBSCRIBED)
                return

            has_more = True
            while has_more and not self._stop.is_set():
                events, self._cursor, has_more = self.api.pull_changes(
                    self.user_id, since=self._cursor
                )
                for event in events:
                    self._inbox.put(("event", event))
            self._set_status(STATUS_SUBSCRIBED)
        except NetworkError as exc:
            logger.warning("Channel bookmarks:%s timed out: %s", self.user_id, exc)
            self._set_status(STATUS_TIMED_OUT)
        except ApiError as exc:
            logger.warning("Channel bookmarks:%s failed: %s", self.user_id, exc)
            self._set_status(STATUS_CHANNEL_ERROR)

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.poll_interval)
