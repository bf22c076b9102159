from __future__ import annotations

import httpx

from smartmark.services.records import BookmarkRecord
from smartmark.services.reducer import ChangeEvent


class ApiError(Exception):
    def __init__(self, status: int | None, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class ValidationError(ApiError):
    pass


class UnauthorizedError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class NetworkError(ApiError):
    pass


_ERRORS_BY_STATUS = {
    400: ValidationError,
    401: UnauthorizedError,
    404: NotFoundError,
}


def _error_for(response: httpx.Response, fallback: str) -> ApiError:
    message = fallback
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        message = payload["error"]
    error_cls = _ERRORS_BY_STATUS.get(response.status_code, ApiError)
    return error_cls(response.status_code, message)


class BookmarkApiClient:
    """Thin HTTP client for ``/api/bookmarks`` and the realtime pull endpoint.

    ``http`` is an ``httpx.Client`` that already carries the session cookie.
    """

    def __init__(self, http: httpx.Client):
        self.http = http

    def _send(self, method: str, path: str, fallback: str, **kwargs) -> httpx.Response:
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(None, fallback) from exc
        if response.is_error:
            raise _error_for(response, fallback)
        return response

    def _json(self, response: httpx.Response, fallback: str) -> dict:
        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError(response.status_code, fallback) from exc
        if not isinstance(payload, dict):
            raise NetworkError(response.status_code, fallback)
        return payload

    def current_user(self) -> dict:
        fallback = "Failed to load session."
        payload = self._json(self._send("GET", "/auth/me", fallback), fallback)
        user = payload.get("user")
        if not isinstance(user, dict) or not user.get("id"):
            raise NetworkError(None, fallback)
        return user

    def sign_out(self) -> None:
        self._send("POST", "/auth/logout", "Failed to sign out.")

    def list_bookmarks(self) -> list[BookmarkRecord]:
        fallback = "Failed to load bookmarks."
        payload = self._json(self._send("GET", "/api/bookmarks", fallback), fallback)
        rows = payload.get("bookmarks")
        if not isinstance(rows, list):
            raise NetworkError(None, fallback)
        records = [BookmarkRecord.from_dict(row) for row in rows]
        return [record for record in records if record is not None]

    def create_bookmark(self, title: str, url: str) -> BookmarkRecord:
        fallback = "Failed to add bookmark."
        response = self._send(
            "POST", "/api/bookmarks", fallback, json={"title": title, "url": url}
        )
        record = BookmarkRecord.from_dict(self._json(response, fallback).get("bookmark"))
        if record is None:
            raise NetworkError(response.status_code, fallback)
        return record

    def delete_bookmark(self, bookmark_id: str) -> None:
        self._send("DELETE", f"/api/bookmarks/{bookmark_id}", "Failed to delete bookmark.")

    def pull_changes(
        self, user_id: str, since: int | None = None, limit: int | None = None
    ) -> tuple[list[ChangeEvent], int, bool]:
        fallback = "Failed to read bookmark changes."
        params: dict = {"user_id": user_id}
        if since is not None:
            params["since"] = since
        if limit is not None:
            params["limit"] = limit
        response = self._send("GET", "/api/realtime/bookmarks", fallback, params=params)
        payload = self._json(response, fallback)
        rows = payload.get("events")
        cursor = payload.get("cursor")
        if not isinstance(rows, list) or not isinstance(cursor, int):
            raise NetworkError(response.status_code, fallback)
        events = [ChangeEvent.from_payload(row) for row in rows if isinstance(row, dict)]
        return events, cursor, bool(payload.get("has_more"))
