"""Shared URL utilities — validate URLs and recover them from mixed prose."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_EMBEDDED_URL_RE = re.compile(r"https?://[^\s'\"`)]+")
_WRAPPERS = ("`", "'", '"')


def is_valid_url(url: str) -> bool:
    """True for an absolute http(s) URL with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _strip_wrapping(value: str) -> str:
    for ch in _WRAPPERS:
        if len(value) >= 2 and value.startswith(ch) and value.endswith(ch):
            return value[1:-1].strip()
    return value


def sanitize_url(value: str | None) -> str | None:
    """Recover a clean URL from a captured parameter.

    Handles values like ``"`登录页面 https://example.com/login`"`` where the
    author mixed prose and a URL. When no valid URL can be recovered the value
    is returned unchanged so later error messages show what was written.
    """
    if not value or not isinstance(value, str):
        return value
    candidate = _strip_wrapping(value.strip())
    match = _EMBEDDED_URL_RE.search(candidate)
    if match and is_valid_url(match.group(0)):
        return match.group(0)
    return value
