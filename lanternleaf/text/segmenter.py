"""Sentence segmentation for display.

Splits flat book text into display sentences on ``.``, ``!`` and ``?``,
treating configured abbreviations ("Mr.", "Dr.") and single-letter
initialisms ("U.S.", "e.g.") as non-terminal. Sentences that are too long to
read comfortably are broken into smaller chunks on commas, semicolons and
colons, then on word boundaries.
"""

import logging
import re
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

MAX_SENTENCE_CHARS = 220
MAX_SENTENCE_WORDS = 36

DEFAULT_ABBREVIATIONS = frozenset({
    "mr", "mrs", "ms", "dr", "prof", "sr", "jr", "st", "mt", "rev",
    "gen", "col", "capt", "lt", "sgt", "gov", "sen", "rep", "vs", "cf",
    "al", "approx", "dept", "fig", "figs", "vol", "vols", "pp", "ch",
    "sec", "inc", "ltd", "jan", "feb", "aug", "sept", "oct", "nov", "dec",
})

_TERMINALS = ".!?"
_CLOSERS = "\"')]}»”’"

# A soft break is the whitespace after a comma, semicolon or colon, or any
# whitespace run holding a line break. The separator is captured so chunks
# can remember whether a line break followed them.
_SOFT_BREAK_RE = re.compile(r"((?<=[,;:])\s+|\s*\n\s*)")


class SentenceSegmenter:
    """Abbreviation-aware splitter producing display sentences."""

    def __init__(
        self,
        abbreviations: Optional[Iterable[str]] = None,
        max_chars: int = MAX_SENTENCE_CHARS,
        max_words: int = MAX_SENTENCE_WORDS,
    ):
        source = DEFAULT_ABBREVIATIONS if abbreviations is None else abbreviations
        self.abbreviations = frozenset(
            token.strip().rstrip(".").lower() for token in source if token.strip()
        )
        self.max_chars = max(1, max_chars)
        self.max_words = max(1, max_words)

    def segment(self, text: str) -> list[str]:
        """Split ``text`` into display sentences.

        Whitespace inside each sentence is folded to single spaces (line
        breaks included) and empty spans are dropped. Sentences that were not
        cut at a line break can be joined with spaces and segmented again
        without change.
        """
        return [sentence for sentence, _ in self.segment_with_breaks(text)]

    def segment_with_breaks(self, text: str) -> list[tuple[str, bool]]:
        """Like :meth:`segment`, flagging sentences followed by a line break.

        Only chunks of an oversized sentence cut at a line break are flagged.
        Joining the sentences with a newline after flagged ones and a space
        elsewhere, then segmenting again, yields the same list.
        """
        sentences = []
        for span in self._iter_spans(text):
            if not span.strip():
                continue
            sentences.extend(self._chunk(span))
        return sentences

    def split_oversized(self, sentence: str) -> list[str]:
        """Break a sentence exceeding the size limits into readable chunks.

        Joining the returned chunks with single spaces gives back ``sentence``
        with its whitespace folded.
        """
        return [chunk for chunk, _ in self._chunk(sentence)]

    def _chunk(self, span: str) -> list[tuple[str, bool]]:
        folded = " ".join(span.split())
        if not self._exceeds(folded):
            return [(folded, False)]

        chunks: list[tuple[str, bool]] = []
        current = ""
        current_break = False
        for segment, line_break in _soft_segments(span):
            if self._exceeds(segment):
                if current:
                    chunks.append((current, current_break))
                    current = ""
                words = self._split_words(segment)
                chunks.extend((chunk, False) for chunk in words[:-1])
                chunks.append((words[-1], line_break))
                continue
            candidate = f"{current} {segment}" if current else segment
            if not self._exceeds(candidate):
                current = candidate
                current_break = line_break
                continue
            if current:
                chunks.append((current, current_break))
            current = segment
            current_break = line_break
        if current:
            chunks.append((current, current_break))

        if not chunks:
            return [(folded, False)]
        # The sentence end is never a break inside the sentence.
        chunks[-1] = (chunks[-1][0], False)
        logger.debug(
            "Frase lunga divisa in %d parti (%d caratteri, %d parole)",
            len(chunks), len(folded), len(folded.split()),
        )
        return chunks

    def _iter_spans(self, text: str) -> Iterator[str]:
        start = 0
        i = 0
        n = len(text)
        while i < n:
            if text[i] in _TERMINALS and self._ends_sentence(text, i):
                end = i + 1
                while end < n and (text[end] in _TERMINALS or text[end] in _CLOSERS):
                    end += 1
                yield text[start:end]
                start = i = end
                continue
            i += 1
        if start < n:
            yield text[start:]

    def _ends_sentence(self, text: str, i: int) -> bool:
        if text[i] != ".":
            return True

        prev_ch = text[i - 1] if i > 0 else ""
        next_ch = text[i + 1] if i + 1 < len(text) else ""
        if prev_ch.isdigit() and next_ch.isdigit():
            return False

        token_start = i
        while token_start > 0 and text[token_start - 1].isalpha():
            token_start -= 1
        token = text[token_start:i]
        if not token:
            return True
        if token.lower() in self.abbreviations:
            return False
        if len(token) == 1 and _is_initialism(text, token_start, i):
            return False
        return True

    def _exceeds(self, text: str) -> bool:
        return len(text) > self.max_chars or len(text.split()) > self.max_words

    def _split_words(self, segment: str) -> list[str]:
        chunks = []
        words: list[str] = []
        length = 0
        for word in segment.split(" "):
            if not word:
                continue
            candidate_len = len(word) if not words else length + 1 + len(word)
            if words and (candidate_len > self.max_chars or len(words) + 1 > self.max_words):
                chunks.append(" ".join(words))
                words = []
                candidate_len = len(word)
            words.append(word)
            length = candidate_len
        if words:
            chunks.append(" ".join(words))
        return chunks


def _is_initialism(text: str, token_start: int, dot_idx: int) -> bool:
    """Whether the single letter before ``dot_idx`` belongs to an "X.Y." run."""
    n = len(text)
    # Followed by another single letter and a dot: the "U" of "U.S."
    if dot_idx + 2 < n and text[dot_idx + 1].isalpha() and text[dot_idx + 2] == ".":
        return True
    # Preceded by a single letter and a dot: the "S" of "U.S."
    if token_start >= 2 and text[token_start - 1] == "." and text[token_start - 2].isalpha():
        return token_start < 3 or not text[token_start - 3].isalpha()
    return False


def _soft_segments(span: str) -> Iterator[tuple[str, bool]]:
    """Folded pieces of ``span`` between soft breaks, flagged when a line break follows."""
    parts = _SOFT_BREAK_RE.split(span)
    for i in range(0, len(parts), 2):
        segment = " ".join(parts[i].split())
        if not segment:
            continue
        separator = parts[i + 1] if i + 1 < len(parts) else ""
        yield segment, "\n" in separator
