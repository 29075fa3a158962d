"""Text chunking with overlapping windows and natural boundary preference.

Splits extracted PDF pages into :class:`~pdfchat.models.rag.DocumentChunk`
objects of at most ``chunk_size`` characters.  Consecutive chunks share
about ``overlap`` characters so a sentence that straddles a cut is still
retrievable from at least one chunk.

When a window has to be cut inside the text, the cut point is chosen from
the last ``boundary_tolerance`` characters of the window, preferring in
order:

1. a paragraph break (blank line),
2. a sentence end, using an abbreviation-aware check so "Dr." or "etc."
   do not count,
3. any whitespace,

and falling back to a hard cut at the size limit.

Pages are chunked independently so every chunk carries the exact page it
came from, while ``sequence_index`` numbers chunks across the whole
document.  The chunker holds no state between calls: the same pages and
settings always produce the same chunks, which is what lets a redelivered
job overwrite its earlier records one-for-one.
"""

from __future__ import annotations

import re

import structlog

from pdfchat.models.rag import DocumentChunk, PageText
from pdfchat.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Fig",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "e.g",
        "i.e",
        "inc",
        "ltd",
    }
)

_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?][\"')\]]?(?=\s)")
_SPACE_RUN_RE = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")


class TextChunker:
    """Splits page text into overlapping, bounded-size chunks.

    Parameters
    ----------
    chunk_size:
        Maximum number of characters per chunk (default 1000).
    overlap:
        Characters carried from the end of one chunk into the next
        (default 200).
    boundary_tolerance:
        How far before the size limit a natural break may be taken
        (default 150).
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        boundary_tolerance: int = 150,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(message=f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or boundary_tolerance < 0:
            raise ConfigurationError(message="overlap and boundary_tolerance cannot be negative")
        if overlap + boundary_tolerance >= chunk_size:
            raise ConfigurationError(
                message=(
                    f"overlap ({overlap}) + boundary_tolerance ({boundary_tolerance}) "
                    f"must be smaller than chunk_size ({chunk_size})"
                )
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._tolerance = boundary_tolerance

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, pages: list[PageText], source_document: str) -> list[DocumentChunk]:
        """Split *pages* into chunks numbered from 0 across the document.

        Pages with no text contribute no chunks.  Empty input returns an
        empty list.
        """
        chunks: list[DocumentChunk] = []
        for page in pages:
            for piece in self.split_text(page.text):
                chunks.append(
                    DocumentChunk(
                        text=piece,
                        source_document=source_document,
                        page_number=page.page_number,
                        sequence_index=len(chunks),
                        token_count=len(piece) // 4,
                    )
                )

        logger.debug(
            "chunking_complete",
            source_document=source_document,
            pages=len(pages),
            num_chunks=len(chunks),
        )
        return chunks

    def split_text(self, text: str) -> list[str]:
        """Split a single block of text into overlapping windows."""
        text = self._normalize(text)
        if not text:
            return []

        # Same length as ``text`` so indices line up.
        masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

        pieces: list[str] = []
        length = len(text)
        start = 0
        while start < length:
            hard_end = min(start + self._chunk_size, length)
            # The final window takes the remainder as-is; only interior cuts look for a break.
            end = hard_end if hard_end == length else self._find_break(masked, start, hard_end)

            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)
            if end >= length:
                break
            start = self._next_start(text, start, end)
        return pieces

    # ------------------------------------------------------------------
    # Boundary selection
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(text: str) -> str:
        """Unify line endings, squeeze horizontal whitespace and blank-line runs."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = _SPACE_RUN_RE.sub(" ", text)
        text = _BLANK_LINES_RE.sub("\n\n", text)
        return text.strip()

    def _find_break(self, masked: str, start: int, hard_end: int) -> int:
        """Return the cut position for the window ``[start, hard_end)``."""
        # start + 1 keeps the window non-empty when the tolerance exceeds it.
        window_start = max(start + 1, hard_end - self._tolerance)

        paragraph = masked.rfind("\n\n", window_start, hard_end)
        if paragraph != -1:
            return paragraph

        sentence_end = -1
        for match in _SENTENCE_END_RE.finditer(masked, window_start, min(hard_end + 1, len(masked))):
            # A closing quote or bracket may push the match one past hard_end.
            if match.end() <= hard_end:
                sentence_end = match.end()
        if sentence_end != -1:
            return sentence_end

        space = max(masked.rfind(" ", window_start, hard_end), masked.rfind("\n", window_start, hard_end))
        if space != -1:
            return space

        return hard_end

    def _next_start(self, text: str, start: int, end: int) -> int:
        """Return where the next window begins, ``overlap`` characters back from *end*.

        The start is moved forward to the beginning of a word, and is always
        past *start* so the loop advances.
        """
        candidate = max(end - self._overlap, start + 1)
        # Landing mid-word: skip to the next word so no chunk opens on a fragment.
        if candidate < end and not text[candidate - 1].isspace():
            match = re.search(r"\s", text[candidate:end])
            if match is not None:
                candidate += match.end()
        # Start on the first non-space character.
        while candidate < end and text[candidate].isspace():
            candidate += 1
        return candidate
