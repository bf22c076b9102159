from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import quote, urlsplit, urlunsplit

from dateutil import parser as dt_parser


DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ftp": 21,
    "ws": 80,
    "wss": 443,
}

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*$")
_FORBIDDEN_HOST_CHARS = set(" \t\n\r#%/:<>?@[\\]^|\"`{}")

# Characters left untouched when percent-encoding; "%" keeps encoding stable.
_PATH_SAFE = "/%:@!$&'()*+,;=~-._"
_QUERY_SAFE = _PATH_SAFE + "?"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _clean_host(hostname: str) -> str | None:
    host = hostname.lower()
    if ":" in host:
        # IPv6 literal; urlsplit already validated the brackets.
        return f"[{host}]"
    if not host.isascii():
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError:
            return None
    if not host or any(ch in _FORBIDDEN_HOST_CHARS for ch in host):
        return None
    if any(ord(ch) < 0x21 or ord(ch) == 0x7F for ch in host):
        return None
    return host


_SINGLE_DOT = {".", "%2e"}
_DOUBLE_DOT = {"..", ".%2e", "%2e.", "%2e%2e"}


def _remove_dot_segments(path: str) -> str:
    if not path.startswith("/"):
        return path
    segments = path[1:].split("/")
    output: list[str] = []
    for index, segment in enumerate(segments):
        is_last = index == len(segments) - 1
        lowered = segment.lower()
        if lowered in _DOUBLE_DOT:
            if output:
                output.pop()
            if is_last:
                output.append("")
        elif lowered in _SINGLE_DOT:
            if is_last:
                output.append("")
        else:
            output.append(segment)
    return "/" + "/".join(output)


def _parse_absolute(value: str) -> str | None:
    try:
        parsed = urlsplit(value)
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if not scheme or not _SCHEME_RE.match(scheme):
        return None

    if scheme not in DEFAULT_PORTS:
        rest = value.split(":", 1)[1]
        return f"{scheme}:{rest}"

    if not parsed.hostname:
        return None
    host = _clean_host(parsed.hostname)
    if host is None:
        return None
    try:
        port = parsed.port
    except ValueError:
        return None

    userinfo, _, _ = parsed.netloc.rpartition("@")
    netloc = host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    if userinfo:
        netloc = f"{userinfo}@{netloc}"

    path = _remove_dot_segments(quote(parsed.path or "/", safe=_PATH_SAFE))
    query = quote(parsed.query, safe=_QUERY_SAFE)
    fragment = quote(parsed.fragment, safe=_QUERY_SAFE + "#")
    return urlunsplit((scheme, netloc, path, query, fragment))


def normalize_url(raw: str | None) -> str | None:
    """Return the canonical absolute form of ``raw`` or ``None`` when invalid.

    Input that does not parse as an absolute URL is retried with an
    ``https://`` prefix, so bare hostnames such as ``example.com`` resolve to
    ``https://example.com/``.
    """
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None
    return _parse_absolute(value) or _parse_absolute(f"https://{value}")


def isoformat_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string; unparsable values sort as the epoch."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = dt_parser.isoparse(str(value or ""))
        except (ValueError, OverflowError):
            return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
