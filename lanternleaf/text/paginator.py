"""Pagination of book text into pages of whole display sentences.

Pages use a fixed character budget derived from the lines-per-page setting,
not font metrics, so changing the text size never changes the page count.
"""

import logging
from typing import Optional

from lanternleaf.models import Page
from lanternleaf.text.segmenter import SentenceSegmenter

logger = logging.getLogger(__name__)

MIN_FONT_SIZE = 12
MAX_FONT_SIZE = 36
MIN_LINES_PER_PAGE = 8
MAX_LINES_PER_PAGE = 1000
CHARS_PER_LINE = 80


def clamp_lines_per_page(lines_per_page: int) -> int:
    return max(MIN_LINES_PER_PAGE, min(MAX_LINES_PER_PAGE, int(lines_per_page)))


def clamp_font_size(font_size: int) -> int:
    return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, int(font_size)))


def page_char_budget(lines_per_page: int) -> int:
    """Characters allowed on one page for the given lines-per-page setting."""
    return CHARS_PER_LINE * clamp_lines_per_page(lines_per_page)


def paginate(
    text: str,
    lines_per_page: int,
    segmenter: Optional[SentenceSegmenter] = None,
) -> list[Page]:
    """Pack the sentences of ``text`` into pages.

    A sentence is never split across pages and every page holds at least one
    sentence; a sentence longer than the budget gets a page of its own.
    Empty text yields a single empty page.
    """
    segmenter = segmenter or SentenceSegmenter()
    budget = page_char_budget(lines_per_page)
    sentences = segmenter.segment_with_breaks(text)

    pages: list[Page] = []
    current: list[str] = []
    breaks: set[int] = set()
    current_len = 0

    for sentence, line_break in sentences:
        separator = 1 if current else 0
        # A trailing line break counts as one more character.
        length = len(sentence) + (1 if line_break else 0)
        if current and current_len + separator + length > budget:
            pages.append(Page(index=len(pages), sentences=current, line_breaks=breaks))
            current = []
            breaks = set()
            current_len = 0
            separator = 0
        if line_break:
            breaks.add(len(current))
        current.append(sentence)
        current_len += separator + length

    if current:
        pages.append(Page(index=len(pages), sentences=current, line_breaks=breaks))
    if not pages:
        pages.append(Page(index=0, sentences=[]))

    logger.debug(
        "Impaginazione: %d frasi in %d pagine (budget %d caratteri)",
        len(sentences), len(pages), budget,
    )
    return pages
