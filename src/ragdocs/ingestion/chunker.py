"""Text chunking strategies.

Text is first cut into prose and fenced-code segments.  Code blocks that
fit (up to 1.5x the size budget) become a single chunk; everything else is
split on sentence / line boundaries and packed greedily into chunks, with a
few trailing words of each flushed chunk carried into the next one.

Every chunk records the character span it covers in the text handed to
:func:`chunk_text`, so callers can map a chunk back to its source.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Literal, NamedTuple

from pydantic import BaseModel

from ragdocs.errors import ConfigurationError, InputError

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```[\s\S]*?```")
CODE_BLOCK_TOLERANCE = 1.5
SECTION_SEPARATOR = "\n\n"

_PROSE_BOUNDARY = re.compile(r"(?<=[.?!])\s+|\n\s*")
_CODE_BOUNDARY = re.compile(r"\n+")
_WORD = re.compile(r"\S+")


class ChunkOptions(BaseModel):
    """Size budget for :func:`chunk_text`.

    Attributes
    ----------
    max_chunk_size:
        Character budget per chunk.
    min_chunk_size:
        A buffer shorter than this keeps growing instead of being flushed.
    overlap:
        Character budget carried into the next chunk, converted to
        ``overlap // 10`` words.
    overlap_words:
        Explicit number of words to carry over; wins over ``overlap``.
    respect_code_blocks:
        Keep fenced code blocks intact where they fit.
    """

    max_chunk_size: int = 1000
    min_chunk_size: int = 100
    overlap: int = 200
    overlap_words: int | None = None
    respect_code_blocks: bool = True

    @property
    def overlap_word_count(self) -> int:
        if self.overlap_words is not None:
            return self.overlap_words
        return self.overlap // 10


class Chunk(BaseModel):
    """A contiguous slice of a document, the unit that gets embedded."""

    content: str
    index: int
    start_position: int
    end_position: int
    is_code_block: bool = False
    page_number: int | None = None
    paragraph_index: int | None = None


class Segment(NamedTuple):
    content: str
    start: int
    is_code_block: bool


class _Word(NamedTuple):
    text: str
    start: int
    end: int


class _Piece(NamedTuple):
    """A block (or carried-over overlap) with absolute offsets."""

    text: str
    start: int
    end: int
    words: tuple[_Word, ...]


def validate_chunk_options(options: ChunkOptions) -> ChunkOptions:
    """Raise :class:`ConfigurationError` unless *options* are usable."""
    if options.max_chunk_size <= 0 or options.min_chunk_size <= 0:
        raise ConfigurationError(
            "chunk sizes must be positive numbers",
            {"max_chunk_size": options.max_chunk_size, "min_chunk_size": options.min_chunk_size},
        )
    if options.overlap < 0 or (options.overlap_words is not None and options.overlap_words < 0):
        raise ConfigurationError(
            "overlap must not be negative",
            {"overlap": options.overlap, "overlap_words": options.overlap_words},
        )
    if options.max_chunk_size <= options.min_chunk_size:
        raise ConfigurationError(
            f"max_chunk_size ({options.max_chunk_size}) must be greater than "
            f"min_chunk_size ({options.min_chunk_size})"
        )
    if options.overlap >= options.max_chunk_size:
        raise ConfigurationError(
            f"overlap ({options.overlap}) must be less than max_chunk_size ({options.max_chunk_size})"
        )
    return options


def separate_code_blocks(text: str) -> list[Segment]:
    """Partition *text* into alternating prose and fenced-code segments.

    Concatenating the ``content`` of the returned segments yields *text*.
    """
    segments: list[Segment] = []
    last = 0
    for match in CODE_FENCE.finditer(text):
        if match.start() > last:
            segments.append(Segment(text[last : match.start()], last, False))
        segments.append(Segment(match.group(0), match.start(), True))
        last = match.end()
    if last < len(text):
        segments.append(Segment(text[last:], last, False))
    return segments


def chunk_text(text: str, options: ChunkOptions | None = None) -> list[Chunk]:
    """Split *text* into overlapping, size-bounded chunks.

    Parameters
    ----------
    text:
        Plain text produced by a loader.
    options:
        Size budget; defaults to :class:`ChunkOptions` defaults.

    Returns
    -------
    list[Chunk]
        Chunks in document order with contiguous indices starting at 0.
    """
    opts = validate_chunk_options(options or ChunkOptions())
    if not text or not text.strip():
        raise InputError("Cannot chunk empty or whitespace-only text")

    chunks = _chunk(text, opts, start_index=0, offset=0)
    logger.debug("Chunked %d chars into %d chunks", len(text), len(chunks))
    return chunks


def chunk_sections(
    sections: Sequence[str],
    options: ChunkOptions | None = None,
    *,
    label: Literal["page", "paragraph"] = "page",
) -> list[Chunk]:
    """Chunk a paginated or paragraph-structured source section by section.

    Chunks never straddle two sections.  Indices stay contiguous across
    sections and positions refer to the sections joined with
    ``SECTION_SEPARATOR``.  With ``label="page"`` chunks carry a 1-based
    ``page_number``; with ``label="paragraph"`` a 0-based
    ``paragraph_index``.
    """
    opts = validate_chunk_options(options or ChunkOptions())
    if not any(section.strip() for section in sections):
        raise InputError("Cannot chunk a source without any text")

    chunks: list[Chunk] = []
    offset = 0
    for number, section in enumerate(sections):
        if section.strip():
            if label == "page":
                stamp = {"page_number": number + 1}
            else:
                stamp = {"paragraph_index": number}
            for chunk in _chunk(section, opts, start_index=len(chunks), offset=offset):
                chunks.append(chunk.model_copy(update=stamp))
        offset += len(section) + len(SECTION_SEPARATOR)
    return chunks


# -- internals ----------------------------------------------------------------


def _chunk(text: str, opts: ChunkOptions, *, start_index: int, offset: int) -> list[Chunk]:
    if opts.respect_code_blocks:
        segments = separate_code_blocks(text)
    else:
        segments = [Segment(text, 0, False)]

    chunks: list[Chunk] = []
    for segment in segments:
        if segment.is_code_block and len(segment.content) <= opts.max_chunk_size * CODE_BLOCK_TOLERANCE:
            chunks.append(
                Chunk(
                    content=segment.content,
                    index=start_index + len(chunks),
                    start_position=offset + segment.start,
                    end_position=offset + segment.start + len(segment.content),
                    is_code_block=True,
                )
            )
            continue

        chunks.extend(
            _chunk_segment(
                segment.content,
                opts,
                base=offset + segment.start,
                start_index=start_index + len(chunks),
                is_code_block=segment.is_code_block,
            )
        )
    return chunks


def _chunk_segment(
    text: str,
    opts: ChunkOptions,
    *,
    base: int,
    start_index: int,
    is_code_block: bool,
) -> list[Chunk]:
    # Code keeps its line structure; prose is re-flowed with single spaces.
    separator = "\n" if is_code_block else " "
    chunks: list[Chunk] = []
    buffer: list[_Piece] = []
    length = 0

    def flush() -> None:
        chunks.append(
            Chunk(
                content=separator.join(piece.text for piece in buffer),
                index=start_index + len(chunks),
                start_position=base + buffer[0].start,
                end_position=base + buffer[-1].end,
                is_code_block=is_code_block,
            )
        )

    for block in _split_blocks(text, is_code_block):
        if (
            buffer
            and length + len(separator) + len(block.text) > opts.max_chunk_size
            and length >= opts.min_chunk_size
        ):
            flush()
            seed = _overlap(buffer, opts.overlap_word_count)
            buffer = [seed, block] if seed else [block]
            length = sum(len(piece.text) for piece in buffer) + len(separator) * (len(buffer) - 1)
        else:
            length += len(block.text) + (len(separator) if buffer else 0)
            buffer.append(block)

    if buffer:
        flush()
    return chunks


def _split_blocks(text: str, is_code_block: bool) -> list[_Piece]:
    """Cut a segment into blocks on sentence / line boundaries."""
    boundary = _CODE_BOUNDARY if is_code_block else _PROSE_BOUNDARY
    blocks: list[_Piece] = []
    cursor = 0
    for match in boundary.finditer(text):
        _append_block(blocks, text, cursor, match.start(), is_code_block)
        cursor = match.end()
    _append_block(blocks, text, cursor, len(text), is_code_block)
    return blocks


def _append_block(blocks: list[_Piece], text: str, start: int, end: int, is_code_block: bool) -> None:
    raw = text[start:end]
    if not raw.strip():
        return
    # Indentation is meaningful inside code, so only trailing space goes.
    stripped = raw.rstrip() if is_code_block else raw.strip()
    lead = 0 if is_code_block else len(raw) - len(raw.lstrip())
    block_start = start + lead
    words = tuple(
        _Word(m.group(0), block_start + m.start(), block_start + m.end())
        for m in _WORD.finditer(stripped)
    )
    blocks.append(_Piece(stripped, block_start, block_start + len(stripped), words))


def _overlap(buffer: list[_Piece], count: int) -> _Piece | None:
    """Return the last *count* words of *buffer* as a single piece."""
    if count <= 0:
        return None
    words: list[_Word] = []
    for piece in reversed(buffer):
        for word in reversed(piece.words):
            words.append(word)
            if len(words) == count:
                break
        if len(words) == count:
            break
    if not words:
        return None
    words.reverse()
    return _Piece(" ".join(w.text for w in words), words[0].start, words[-1].end, tuple(words))
