"""Content loaders: web pages, local files and caller-supplied text.

Every loader returns an :class:`~ragdocs.ingestion.models.ExtractedContent`
with normalised plain text; failures raise :class:`~ragdocs.errors.FetchError`.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import time
import unicodedata
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import TypeVar
from urllib.parse import urlsplit

import requests
from bs4 import BeautifulSoup
from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader

from ragdocs.config import settings
from ragdocs.errors import FetchError
from ragdocs.ingestion.models import ExtractedContent
from ragdocs.ingestion.urls import is_local_source, is_valid_web_page, process_url

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

USER_AGENT = "Mozilla/5.0 (compatible; RagDocsBot/1.0)"
DEFAULT_TITLE = "Untitled Document"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_CODE_HINT = re.compile(r"```|\bfunction\b|\bclass\b|\bconst\b|\blet\b|\bvar\b")
_INLINE_CODE = re.compile(r"`[^`\n]+`")
_BOILERPLATE_TAGS = ["script", "style", "nav", "footer", "header", "aside", "noscript", "iframe"]
_BOILERPLATE_SELECTORS = ".advertisement, .ads, #comments, .comments, .social-share, .related-posts"
_MAIN_SELECTORS = (
    "article",
    "main",
    ".main-content",
    "#main-content",
    ".post-content",
    ".article-content",
    ".entry-content",
)
_TEXT_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "li", "pre"]

_CONTENT_TYPES = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".html": "text/html",
    ".htm": "text/html",
    ".pdf": "application/pdf",
    ".docx": DOCX_CONTENT_TYPE,
}


# ── text helpers ──────────────────────────────────────────────────────────


def normalize_text(text: str) -> str:
    """Unicode NFC, collapse whitespace, strip control chars."""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"(?<=\S)[^\S\n]+", " ", text)  # collapse inner spaces (keep indent)
    text = re.sub(r"[^\S\n]+\n", "\n", text)  # trailing spaces
    text = re.sub(r"\n{3,}", "\n\n", text)  # max two consecutive newlines
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", text)  # ctrl chars
    return text.strip()


def detect_code(text: str) -> bool:
    """Heuristic: fenced blocks, inline code or common code keywords."""
    return bool(_CODE_HINT.search(text) or _INLINE_CODE.search(text))


def count_words(text: str) -> int:
    return len(text.split())


def _markdown_title(text: str) -> str | None:
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("# "):
            return line.lstrip("# ").strip() or None
    return None


def html_to_text(html: str) -> tuple[str, str, bool]:
    """Extract ``(title, text, has_code)`` from an HTML document.

    Boilerplate elements are removed and the main content container is
    preferred over the whole body.  ``<pre>`` blocks are emitted as fenced
    code so the chunker keeps them together.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    if not title:
        h1 = soup.find("h1")
        if h1:
            title = h1.get_text(strip=True)

    for tag in soup(_BOILERPLATE_TAGS):
        tag.decompose()
    for tag in soup.select(_BOILERPLATE_SELECTORS):
        tag.decompose()

    container = None
    for selector in _MAIN_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup

    has_code = container.find(["pre", "code"]) is not None

    parts: list[str] = []
    for element in container.find_all(_TEXT_TAGS):
        # Nested matches are already covered by their ancestor's text.
        if element.find_parent(_TEXT_TAGS) is not None:
            continue
        if element.name == "pre":
            code = element.get_text().strip("\n")
            parts.append(f"```\n{code}\n```")
        else:
            parts.append(element.get_text(" ", strip=True))
    if not parts:
        parts = [container.get_text("\n", strip=True)]

    text = normalize_text("\n".join(p for p in parts if p))
    return title or DEFAULT_TITLE, text, has_code or detect_code(text)


def _pdf_pages(path: str | Path) -> list[str]:
    return [normalize_text(doc.page_content) for doc in PyPDFLoader(str(path)).load()]


def _docx_text(path: str | Path) -> str:
    return normalize_text("\n\n".join(doc.page_content for doc in Docx2txtLoader(str(path)).load()))


def _from_docx(source: str, title: str, text: str, timestamp: datetime) -> ExtractedContent:
    if not text:
        raise FetchError("No extractable text in DOCX", source=source)
    return ExtractedContent(
        source=source,
        title=title,
        content=text,
        timestamp=timestamp,
        content_type=DOCX_CONTENT_TYPE,
        word_count=count_words(text),
        has_code=detect_code(text),
    )


def _extract_download(body: bytes, suffix: str, extract: Callable[[str], _T]) -> _T:
    fd, tmp = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(body)
        return extract(tmp)
    finally:
        os.unlink(tmp)


def _from_pages(source: str, title: str, pages: list[str], timestamp: datetime) -> ExtractedContent:
    content = "\n\n".join(pages)
    if not content.strip():
        raise FetchError("No extractable text in PDF", source=source)
    return ExtractedContent(
        source=source,
        title=title,
        content=content,
        timestamp=timestamp,
        content_type="application/pdf",
        word_count=count_words(content),
        has_code=False,
        pages=pages,
    )


# ── web ───────────────────────────────────────────────────────────────────


def fetch_url(
    url: str,
    *,
    timeout: float = settings.request_timeout,
    max_retries: int = settings.fetch_max_retries,
    retry_delay: float = settings.fetch_retry_delay,
    max_size: int = settings.max_file_size,
) -> ExtractedContent:
    """Download a web page or remote file and extract its text.

    Transient failures are retried up to *max_retries* times with a fixed
    *retry_delay*; a 404 fails immediately.

    Parameters
    ----------
    url:
        Absolute http(s) URL; normalised before fetching.
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Total number of attempts.
    retry_delay:
        Seconds to wait between attempts.
    max_size:
        Largest accepted response body in bytes.
    """
    processed = process_url(url)
    normalized = processed.normalized_url
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }

    last_exc: Exception | None = None
    for attempt in range(1, max_retries + 1):
        try:
            resp = requests.get(normalized, headers=headers, timeout=timeout)
            if resp.status_code == 404:
                raise FetchError("Page not found", source=normalized, details={"status": 404})
            resp.raise_for_status()
            break
        except requests.RequestException as exc:
            last_exc = exc
            if attempt < max_retries:
                logger.warning(
                    "Retry %d/%d for %s (wait %.1fs): %s", attempt, max_retries, normalized, retry_delay, exc
                )
                time.sleep(retry_delay)
    else:
        raise FetchError(
            f"Failed to fetch content after {max_retries} attempts: {last_exc}",
            source=normalized,
        ) from last_exc

    if len(resp.content) > max_size:
        raise FetchError(f"Response exceeds maximum size of {max_size} bytes", source=normalized)

    ctype = resp.headers.get("content-type", "").lower()
    file_name = Path(processed.path).name
    suffix = Path(file_name).suffix.lower()
    now = datetime.now(timezone.utc)

    if "pdf" in ctype or suffix == ".pdf":
        try:
            pages = _extract_download(resp.content, ".pdf", _pdf_pages)
        except Exception as exc:
            raise FetchError(f"Could not extract PDF text: {exc}", source=normalized) from exc
        return _from_pages(normalized, file_name or DEFAULT_TITLE, pages, now)

    if "wordprocessingml" in ctype or suffix == ".docx":
        try:
            text = _extract_download(resp.content, ".docx", _docx_text)
        except Exception as exc:
            raise FetchError(f"Could not extract DOCX text: {exc}", source=normalized) from exc
        return _from_docx(normalized, file_name or DEFAULT_TITLE, text, now)

    if "html" in ctype:
        title, text, has_code = html_to_text(resp.text)
        content_type = "text/html"
    elif "markdown" in ctype or suffix in (".md", ".mdx"):
        text = normalize_text(resp.text)
        title = _markdown_title(text) or file_name or DEFAULT_TITLE
        has_code = detect_code(text)
        content_type = "text/markdown"
    elif ctype.startswith("text/"):
        text = normalize_text(resp.text)
        title = file_name or DEFAULT_TITLE
        has_code = detect_code(text)
        content_type = "text/plain"
    else:
        raise FetchError(f"Unsupported content type: {ctype or 'unknown'}", source=normalized)

    if not text:
        raise FetchError("No extractable text", source=normalized)

    logger.info("Fetched %s (%d chars)", normalized, len(text))
    return ExtractedContent(
        source=normalized,
        title=title,
        content=text,
        timestamp=now,
        content_type=content_type,
        word_count=count_words(text),
        has_code=has_code,
    )


# ── local files ───────────────────────────────────────────────────────────


def load_file(
    path: str | Path,
    *,
    max_size: int = settings.max_file_size,
    supported_extensions: list[str] | None = None,
) -> ExtractedContent:
    """Load a local ``.txt``, ``.md``, ``.html``, ``.pdf`` or ``.docx`` file.

    PDFs are read page by page with LangChain's ``PyPDFLoader`` and keep
    their page texts in ``pages``; Word documents go through ``Docx2txtLoader``.
    """
    raw = str(path)
    if raw.lower().startswith("file://"):
        raw = raw[len("file://") :]
    fpath = Path(raw)
    source = str(path)
    extensions = supported_extensions or settings.supported_extensions

    suffix = fpath.suffix.lower()
    if suffix not in extensions:
        raise FetchError(f"Unsupported file type: {suffix or '(none)'}", source=source)
    if not fpath.is_file():
        raise FetchError("File not found", source=source)

    stat = fpath.stat()
    if stat.st_size > max_size:
        raise FetchError(f"File size exceeds maximum limit of {max_size} bytes", source=source)
    modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

    if suffix == ".pdf":
        try:
            pages = _pdf_pages(fpath)
        except Exception as exc:
            raise FetchError(f"Could not extract PDF text: {exc}", source=source) from exc
        return _from_pages(source, fpath.name, pages, modified)

    if suffix == ".docx":
        try:
            text = _docx_text(fpath)
        except Exception as exc:
            raise FetchError(f"Could not extract DOCX text: {exc}", source=source) from exc
        return _from_docx(source, fpath.name, text, modified)

    try:
        raw_text = fpath.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise FetchError("File encoding is not valid UTF-8", source=source) from exc

    extracted = load_text(source, raw_text, content_type=_CONTENT_TYPES.get(suffix, "text/plain"))
    return extracted.model_copy(update={"timestamp": modified})


def load_text(
    source: str,
    content: str,
    *,
    title: str | None = None,
    content_type: str | None = None,
) -> ExtractedContent:
    """Wrap caller-supplied *content* for *source* without fetching anything.

    The content type follows the source's extension unless given; HTML is
    reduced to text, Markdown keeps its first heading as title.
    """
    if not content or not content.strip():
        raise FetchError("Content must not be empty", source=source)

    if is_valid_web_page(source):
        name = PurePosixPath(urlsplit(source).path).name or (urlsplit(source).hostname or source)
    else:
        name = Path(source).name or source
    if content_type is None:
        content_type = _CONTENT_TYPES.get(Path(name).suffix.lower(), "text/plain")

    if content_type == "text/html":
        html_title, text, has_code = html_to_text(content)
        title = title or html_title
    else:
        text = normalize_text(content)
        has_code = detect_code(text)
        if content_type == "text/markdown":
            title = title or _markdown_title(text)
    if not text:
        raise FetchError("No extractable text", source=source)

    return ExtractedContent(
        source=source,
        title=title or name,
        content=text,
        content_type=content_type,
        word_count=count_words(text),
        has_code=has_code,
    )


def load_source(source: str, content: str | None = None) -> ExtractedContent:
    """Dispatch to the right loader for *source*.

    Supplied *content* is used as-is; otherwise web URLs are fetched and
    anything else is read as a local file.
    """
    if content is not None:
        return load_text(source, content)
    if is_valid_web_page(source):
        return fetch_url(source)
    if is_local_source(source):
        return load_file(source)
    raise FetchError(f"Unsupported source: {source}", source=source)
