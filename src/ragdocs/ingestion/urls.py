"""URL validation and normalisation for document identifiers."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit

from pydantic import BaseModel

from ragdocs.errors import InputError

LOCAL_DOMAIN = "local"

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_HTTP_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_DEFAULT_PORTS = {80, 443}


class ProcessedURL(BaseModel):
    original_url: str
    normalized_url: str
    domain: str
    path: str


def process_url(url: str) -> ProcessedURL:
    """Validate and normalise a web URL.

    Whitespace is trimmed, ``https://`` is assumed when no scheme is given,
    the host is lower-cased, default ports and a trailing path slash are
    dropped and query parameters are sorted.

    Raises
    ------
    InputError
        If the result is not a well-formed http(s) URL.
    """
    trimmed = url.strip()
    if not trimmed:
        raise InputError("URL must not be empty", url=url)
    if _SCHEME.match(trimmed) and not _HTTP_SCHEME.match(trimmed):
        raise InputError(f'Invalid URL "{url}": only http and https are supported', url=url)
    candidate = trimmed if _HTTP_SCHEME.match(trimmed) else f"https://{trimmed}"

    parts = urlsplit(candidate)
    try:
        port = parts.port
    except ValueError as exc:
        raise InputError(f'Invalid URL "{url}": {exc}', url=url) from exc

    host = (parts.hostname or "").lower()
    if parts.scheme.lower() not in ("http", "https") or not host or any(c.isspace() for c in candidate):
        raise InputError(f'Invalid URL "{url}"', url=url)

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port not in _DEFAULT_PORTS:
        netloc = f"{netloc}:{port}"

    path = parts.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]

    normalized = f"{parts.scheme.lower()}://{netloc}{path}"
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    if query:
        normalized += f"?{query}"
    if parts.fragment:
        normalized += f"#{parts.fragment}"

    return ProcessedURL(original_url=url, normalized_url=normalized, domain=host, path=path)


def is_valid_web_page(url: str) -> bool:
    """Return ``True`` for absolute http(s) URLs with a host."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.hostname)


def is_local_source(source: str) -> bool:
    """Return ``True`` for file paths and ``file://`` URIs."""
    stripped = source.strip()
    return stripped.lower().startswith("file://") or not _SCHEME.match(stripped)


def validate_document_url(url: str) -> str:
    """Check *url* can key a document and return it trimmed.

    Web URLs must be well formed; anything without a scheme is taken to
    be a local path.
    """
    trimmed = url.strip() if isinstance(url, str) else ""
    if not trimmed:
        raise InputError("Document URL must not be empty", url=url)
    if any(c.isspace() for c in trimmed):
        raise InputError(f'Invalid URL "{url}": contains whitespace', url=url)
    if is_local_source(trimmed) or is_valid_web_page(trimmed):
        return trimmed
    raise InputError(f'Invalid URL "{url}": unsupported scheme or missing host', url=url)


def extract_domain(url: str) -> str:
    """Return the lower-cased host of *url*, or ``"local"`` for files."""
    if is_local_source(url):
        return LOCAL_DOMAIN
    host = urlsplit(url.strip()).hostname
    if not host:
        raise InputError(f"Cannot extract domain from invalid URL: {url}", url=url)
    return host.lower()
