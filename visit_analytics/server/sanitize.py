from __future__ import annotations

import re
import secrets
import string
from typing import Iterable, List, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from .models import UNKNOWN_DOMAIN


MAX_URL_LENGTH = 2048
MAX_SESSION_ID_LENGTH = 64

BOT_RE = re.compile(
    r"bot|spider|crawl|slurp|facebook|whatsapp|preview|curl|wget|googlebot|bingbot|yandex|"
    r"baiduspider|sogou|360spider|bytespider|toutiao|sosospider|yisouspider|headlesschrome|"
    r"phantomjs|archiver|php|python|perl|go-http-client",
    re.IGNORECASE,
)

# Query keys that tend to carry credentials; never stored.
SENSITIVE_QUERY_KEYS = frozenset(
    {"token", "key", "password", "secret", "access_token", "auth", "authorization", "session_id"}
)

_SESSION_ID_RE = re.compile(r"[^a-zA-Z0-9-]")
_SESSION_ALPHABET = string.ascii_lowercase + string.digits


def is_bot(user_agent: Optional[str]) -> bool:
    return bool(BOT_RE.search(user_agent or ""))


def is_valid_url(value: Optional[str]) -> bool:
    value = (value or "").strip()
    if not value:
        return False
    try:
        u = urlparse(value)
    except ValueError:
        return False
    return bool(u.scheme and u.netloc)


def sanitize_url(value: str) -> str:
    """
    Strip credential-looking query params, normalise and cap the length.

    Scheme and host are lower-cased and an empty path becomes "/", so
    `https://A.com` and `https://a.com/` are stored as the same page.
    Input that cannot be parsed is only truncated.
    """
    try:
        u = urlparse(value)
    except ValueError:
        return value[:MAX_URL_LENGTH]
    userinfo, at, hostport = u.netloc.rpartition("@")
    u = u._replace(scheme=u.scheme.lower(), netloc=userinfo + at + hostport.lower())
    if u.netloc and not u.path:
        u = u._replace(path="/")
    if u.query:
        kept = [(k, v) for k, v in parse_qsl(u.query, keep_blank_values=True) if k not in SENSITIVE_QUERY_KEYS]
        u = u._replace(query=urlencode(kept))
    return urlunparse(u)[:MAX_URL_LENGTH]


def extract_domain(url: str) -> str:
    """Hostname of `url`, or the unknown-domain sentinel when there is none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return UNKNOWN_DOMAIN
    return host or UNKNOWN_DOMAIN


def new_session_id(length: int = 13) -> str:
    return "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(length))


def sanitize_session_id(raw: Optional[str]) -> str:
    cleaned = _SESSION_ID_RE.sub("", raw or "")[:MAX_SESSION_ID_LENGTH]
    return cleaned or new_session_id()


def parse_comma_separated(value: Union[str, Iterable[str], None]) -> List[str]:
    if not value:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    return [str(s).strip() for s in items if str(s).strip()]


def is_ignored_path(url: str, prefixes: Iterable[str]) -> bool:
    try:
        path = urlparse(url).path or "/"
    except ValueError:
        return False
    return any(path.startswith(p) for p in prefixes)
