"""Reader session: the state machine behind page turns, search and TTS cursor.

The session keeps two cursors over the current page, one over display
sentences and one over audio units, and translates between them through the
page's normalization plan. Which cursor is authoritative depends on
``text_only_mode``.
"""

import copy
import logging
import re
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from lanternleaf.commands import ReaderCommand, SettingsPatch, parse_command
from lanternleaf.loader import load_text
from lanternleaf.models import (
    Bookmark,
    Page,
    PageNormalization,
    PlaybackState,
    ReaderSettings,
    ReaderSnapshot,
    ReaderStats,
    SessionEvent,
    TtsView,
)
from lanternleaf.text.normalizer import TextNormalizer
from lanternleaf.text.paginator import clamp_font_size, clamp_lines_per_page, paginate
from lanternleaf.text.segmenter import SentenceSegmenter

logger = logging.getLogger(__name__)

BASE_WPM = 170.0
FLOOR_WPM = 40.0


class ReaderSession:
    """Reading state for one book.

    Commands are applied one at a time through :meth:`apply_command`; every
    command is total (out-of-range input is clamped or ignored) and produces
    a fresh :class:`ReaderSnapshot`. Not thread-safe.
    """

    def __init__(
        self,
        full_text: str,
        settings: Optional[ReaderSettings] = None,
        bookmark: Optional[Bookmark] = None,
        *,
        source_path: Union[str, Path, None] = None,
        normalizer: Optional[TextNormalizer] = None,
        segmenter: Optional[SentenceSegmenter] = None,
    ):
        self.source_path = str(source_path) if source_path else ""
        self.source_name = Path(source_path).name if source_path else "book"
        self.full_text = full_text
        self.settings = clamp_settings(settings or ReaderSettings())
        self.normalizer = normalizer or TextNormalizer()
        self.segmenter = segmenter or SentenceSegmenter()

        self.pages: list[Page] = []
        self.page_word_counts: list[int] = []
        self.page_sentence_counts: list[int] = []
        self.current_page = 0
        self.highlighted_display_idx: Optional[int] = None
        self.highlighted_audio_idx: Optional[int] = None
        self.text_only_mode = False
        self.search_query = ""
        self.search_matches: list[int] = []
        self.selected_search_match: Optional[int] = None
        self.tts_state = PlaybackState.IDLE
        self.scroll_y = 0.0

        self._plan_page: Optional[int] = None
        self._plan: Optional[PageNormalization] = None

        self._repaginate()
        if bookmark is not None:
            self._restore_bookmark(bookmark)
        else:
            self._place_cursor(0, 0)

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        settings: Optional[ReaderSettings] = None,
        bookmark: Optional[Bookmark] = None,
        **kwargs: Any,
    ) -> "ReaderSession":
        """Open a session over a text file.

        Raises:
            LoadError: If the file could not be read.
        """
        text = load_text(path)
        session = cls(text, settings, bookmark, source_path=path, **kwargs)
        logger.info(
            "Sessione aperta: %s (%d pagine, %d frasi)",
            session.source_name, len(session.pages), sum(session.page_sentence_counts),
        )
        return session

    # --- Command dispatch ---

    def apply_command(self, command: Union[ReaderCommand, dict, str]) -> SessionEvent:
        """Apply one command and return its action name with the new snapshot."""
        command = parse_command(command)
        logger.debug("Comando: %s", command.type)
        _COMMAND_HANDLERS[command.type](self, command)
        return SessionEvent(action=command.action, snapshot=self.snapshot())

    # --- Navigation ---

    def next_page(self) -> None:
        if self.current_page + 1 >= len(self.pages):
            return
        self._enter_page(self.current_page + 1)

    def prev_page(self) -> None:
        if self.current_page == 0:
            return
        self._enter_page(self.current_page - 1)

    def set_page(self, page: int) -> None:
        self._enter_page(max(0, min(page, len(self.pages) - 1)))

    def sentence_click(self, sentence_idx: int) -> None:
        if sentence_idx < 0:
            return
        if self.text_only_mode:
            if sentence_idx >= len(self._current_plan().audio_sentences):
                return
            self.highlighted_audio_idx = sentence_idx
            self.highlighted_display_idx = self._audio_to_display(sentence_idx)
            return

        if sentence_idx >= self._display_count():
            return
        self.highlighted_display_idx = sentence_idx
        self.highlighted_audio_idx = self._display_to_audio(sentence_idx)

    def next_sentence(self) -> None:
        count = len(self.current_sentences())
        if count == 0:
            return
        current = min(self.highlighted_idx or 0, count - 1)
        self.sentence_click(min(current + 1, count - 1))

    def prev_sentence(self) -> None:
        count = len(self.current_sentences())
        if count == 0:
            return
        current = min(self.highlighted_idx or 0, count - 1)
        self.sentence_click(max(current - 1, 0))

    def toggle_text_only(self) -> None:
        self.text_only_mode = not self.text_only_mode
        if self.text_only_mode:
            display_idx = self.highlighted_display_idx or 0
            self.highlighted_audio_idx = self._display_to_audio(display_idx)
        elif self.highlighted_audio_idx is not None:
            self.highlighted_display_idx = self._audio_to_display(self.highlighted_audio_idx)
        self._update_search_matches()

    # --- Settings ---

    def apply_settings_patch(self, patch: SettingsPatch) -> None:
        """Apply the fields present in ``patch``, clamping each to its range.

        A change of font size or lines per page repaginates and keeps the
        cursor on the same sentence of the book.
        """
        s = self.settings
        anchor = self._global_display_idx()
        repaginate = False

        if patch.theme is not None:
            s.theme = patch.theme
        if patch.day_highlight is not None:
            s.day_highlight = patch.day_highlight.to_color()
        if patch.night_highlight is not None:
            s.night_highlight = patch.night_highlight.to_color()
        if patch.font_family is not None:
            s.font_family = patch.font_family
        if patch.font_weight is not None:
            s.font_weight = patch.font_weight
        if patch.font_size is not None:
            font_size = clamp_font_size(patch.font_size)
            if font_size != s.font_size:
                s.font_size = font_size
                repaginate = True
        if patch.lines_per_page is not None:
            lines = clamp_lines_per_page(patch.lines_per_page)
            if lines != s.lines_per_page:
                s.lines_per_page = lines
                repaginate = True
        if patch.margin_horizontal is not None:
            s.margin_horizontal = _clamp(patch.margin_horizontal, 0, 600)
        if patch.margin_vertical is not None:
            s.margin_vertical = _clamp(patch.margin_vertical, 0, 240)
        if patch.line_spacing is not None:
            s.line_spacing = _clamp(patch.line_spacing, 0.8, 3.0)
        if patch.word_spacing is not None:
            s.word_spacing = _clamp(patch.word_spacing, 0, 24)
        if patch.letter_spacing is not None:
            s.letter_spacing = _clamp(patch.letter_spacing, 0, 24)
        if patch.pause_after_sentence is not None:
            s.pause_after_sentence = _round_pause(patch.pause_after_sentence)
        if patch.auto_scroll_tts is not None:
            s.auto_scroll_tts = patch.auto_scroll_tts
        if patch.center_spoken_sentence is not None:
            s.center_spoken_sentence = patch.center_spoken_sentence
        if patch.tts_speed is not None:
            s.tts_speed = _clamp(patch.tts_speed, 0.25, 4.0)
        if patch.tts_volume is not None:
            s.tts_volume = _clamp(patch.tts_volume, 0.0, 2.0)

        if repaginate:
            self._repaginate()
            self._place_cursor(*self._locate_global_idx(anchor))

    # --- Search ---

    def set_search_query(self, query: str) -> None:
        self.search_query = query
        self._update_search_matches()
        self._apply_selected_match()

    def search_next(self) -> None:
        if not self.search_matches:
            self.selected_search_match = None
            return
        if self.selected_search_match is None:
            self.selected_search_match = 0
        else:
            self.selected_search_match = (self.selected_search_match + 1) % len(self.search_matches)
        self._apply_selected_match()

    def search_prev(self) -> None:
        if not self.search_matches:
            self.selected_search_match = None
            return
        if not self.selected_search_match:
            self.selected_search_match = len(self.search_matches) - 1
        else:
            self.selected_search_match -= 1
        self._apply_selected_match()

    # --- Speech cursor ---

    def tts_play(self) -> None:
        if not self.current_sentences():
            self.tts_state = PlaybackState.IDLE
            return
        if self.highlighted_idx is None:
            self.sentence_click(0)
        self.tts_state = PlaybackState.PLAYING

    def tts_pause(self) -> None:
        if self.tts_state == PlaybackState.PLAYING:
            self.tts_state = PlaybackState.PAUSED

    def tts_toggle_play_pause(self) -> None:
        if self.tts_state == PlaybackState.PLAYING:
            self.tts_pause()
        else:
            self.tts_play()

    def tts_play_from_page_start(self) -> None:
        if not self.current_sentences():
            self.tts_state = PlaybackState.IDLE
            return
        self.sentence_click(0)
        self.tts_state = PlaybackState.PLAYING

    def tts_play_from_highlight(self) -> None:
        if self.highlighted_idx is None:
            self.tts_play_from_page_start()
            return
        self.tts_state = PlaybackState.PLAYING

    def tts_seek_next(self) -> None:
        if self._move_highlight(1):
            return
        # End of book: stop advancing instead of wrapping to the start.
        if self.tts_state == PlaybackState.PLAYING:
            self.tts_state = PlaybackState.PAUSED

    def tts_seek_prev(self) -> None:
        self._move_highlight(-1)

    def tts_repeat_sentence(self) -> None:
        if self.highlighted_idx is None:
            self.tts_play_from_page_start()

    def tts_stop(self) -> None:
        self.tts_state = PlaybackState.IDLE

    # --- Views ---

    @property
    def highlighted_idx(self) -> Optional[int]:
        """Cursor in the active coordinate space."""
        if self.text_only_mode:
            return self.highlighted_audio_idx
        return self.highlighted_display_idx

    def current_sentences(self) -> list[str]:
        if self.text_only_mode:
            return list(self._current_plan().audio_sentences)
        return list(self.pages[self.current_page].sentences)

    def snapshot(self) -> ReaderSnapshot:
        stats = self.stats()
        return ReaderSnapshot(
            source_path=self.source_path,
            source_name=self.source_name,
            current_page=self.current_page,
            total_pages=len(self.pages),
            text_only_mode=self.text_only_mode,
            page_text=self.pages[self.current_page].text,
            sentences=self.current_sentences(),
            highlighted_sentence_idx=self.highlighted_idx,
            search_query=self.search_query,
            search_matches=list(self.search_matches),
            selected_search_match=self.selected_search_match,
            settings=copy.deepcopy(self.settings),
            tts=self._tts_view(stats.tts_progress_pct),
            stats=stats,
        )

    def stats(self) -> ReaderStats:
        page = self.current_page
        page_words = self.page_word_counts[page]
        page_sentences = self.page_sentence_counts[page]
        words_before = sum(self.page_word_counts[:page])
        sentences_before = sum(self.page_sentence_counts[:page])
        total_words = max(sum(self.page_word_counts), 1)

        if self.text_only_mode:
            count = len(self._current_plan().audio_sentences)
            idx = self.highlighted_audio_idx or 0
        else:
            count = page_sentences
            idx = self.highlighted_display_idx or 0
        fraction = (min(idx, max(count - 1, 0)) + 1) / count if count else 0.0

        words_to_current = words_before + _round_half_up(page_words * fraction)
        sentences_to_current = sentences_before + min(
            _round_half_up(page_sentences * fraction), page_sentences
        )

        wpm = max(BASE_WPM * self.settings.tts_speed, FLOOR_WPM)
        page_secs = page_words / wpm * 60.0
        book_secs = total_words / wpm * 60.0
        book_progress = _clamp(words_to_current / total_words, 0.0, 1.0)

        return ReaderStats(
            page_index=page + 1,
            total_pages=len(self.pages),
            tts_progress_pct=fraction * 100.0,
            page_time_remaining_secs=page_secs * (1.0 - fraction),
            book_time_remaining_secs=book_secs * (1.0 - book_progress),
            page_word_count=page_words,
            page_sentence_count=page_sentences,
            page_start_percent=words_before / total_words * 100.0,
            page_end_percent=(words_before + page_words) / total_words * 100.0,
            words_read_up_to_page_start=words_before,
            sentences_read_up_to_page_start=sentences_before,
            words_read_up_to_page_end=words_before + page_words,
            sentences_read_up_to_page_end=sentences_before + page_sentences,
            words_read_up_to_current_position=words_to_current,
            sentences_read_up_to_current_position=sentences_to_current,
        )

    def to_bookmark(self) -> Bookmark:
        idx = self.highlighted_display_idx
        sentences = self.pages[self.current_page].sentences
        text = sentences[idx] if idx is not None and idx < len(sentences) else None
        return Bookmark(
            page=self.current_page,
            sentence_idx=idx,
            sentence_text=text,
            scroll_y=self.scroll_y,
        )

    def iter_audio_units(self, page_index: Optional[int] = None) -> Iterator[tuple[int, int, int, str]]:
        """Yield ``(page, audio_idx, display_idx, text)`` in reading order.

        Covers the whole book, or only ``page_index`` when given. Leaves the
        session state, its plan cache included, untouched.
        """
        pages = self.pages if page_index is None else self.pages[page_index:page_index + 1]
        for page in pages:
            if page.index == self._plan_page and self._plan is not None:
                plan = self._plan
            else:
                plan = self.normalizer.plan_page(page.sentences)
            for audio_idx, text in enumerate(plan.audio_sentences):
                yield page.index, audio_idx, plan.audio_to_display[audio_idx], text

    # --- Internals ---

    def _tts_view(self, progress_pct: float) -> TtsView:
        count = len(self.current_sentences())
        idx = self.highlighted_idx
        before = self._adjacent_speakable_page(-1) is not None
        after = self._adjacent_speakable_page(1) is not None
        if idx is None:
            can_prev = before
            can_next = count > 0 or after
        else:
            can_prev = idx > 0 or before
            can_next = idx + 1 < count or after
        return TtsView(
            state=self.tts_state,
            current_sentence_idx=idx,
            sentence_count=count,
            can_seek_prev=can_prev,
            can_seek_next=can_next,
            progress_pct=_round_half_up(progress_pct * 1000) / 1000,
        )

    def _repaginate(self) -> None:
        self.pages = paginate(self.full_text, self.settings.lines_per_page, self.segmenter)
        self.page_word_counts = [page.word_count for page in self.pages]
        self.page_sentence_counts = [page.sentence_count for page in self.pages]
        self.current_page = min(self.current_page, len(self.pages) - 1)
        self._invalidate_plan()
        logger.debug(
            "Ripaginazione: %d pagine con %d righe per pagina",
            len(self.pages), self.settings.lines_per_page,
        )

    def _enter_page(self, page: int) -> None:
        self.current_page = page
        self.highlighted_display_idx = 0 if self._display_count() else None
        self.highlighted_audio_idx = None
        self._invalidate_plan()
        if self.text_only_mode and self.highlighted_display_idx is not None:
            self.highlighted_audio_idx = self._display_to_audio(self.highlighted_display_idx)
        self._update_search_matches()

    def _place_cursor(self, page: int, display_idx: int) -> None:
        """Move to ``page`` with the display cursor on ``display_idx``."""
        self._enter_page(page)
        if self.highlighted_display_idx is None:
            return
        self.highlighted_display_idx = min(display_idx, self._display_count() - 1)
        if self.text_only_mode:
            self.highlighted_audio_idx = self._display_to_audio(self.highlighted_display_idx)

    def _restore_bookmark(self, bookmark: Bookmark) -> None:
        global_idx = self._bookmark_global_idx(bookmark)
        if global_idx is None:
            self._place_cursor(max(0, min(bookmark.page, len(self.pages) - 1)), 0)
        else:
            self._place_cursor(*self._locate_global_idx(global_idx))
        self.scroll_y = bookmark.scroll_y
        logger.info(
            "Segnalibro ripristinato: pagina %d, frase %s",
            self.current_page + 1, self.highlighted_display_idx,
        )

    def _bookmark_global_idx(self, bookmark: Bookmark) -> Optional[int]:
        """Resolve a bookmark to a global sentence index.

        The saved sentence text wins over the saved index, searched on the
        bookmarked page first and then on pages at growing distance.
        """
        page = max(0, min(bookmark.page, len(self.pages) - 1))
        if bookmark.sentence_text:
            wanted = " ".join(bookmark.sentence_text.split())
            for candidate in _pages_by_distance(page, len(self.pages)):
                sentences = self.pages[candidate].sentences
                if wanted in sentences:
                    return self._sentences_before(candidate) + sentences.index(wanted)
            logger.debug("Testo del segnalibro non trovato, uso l'indice salvato")

        if bookmark.sentence_idx is None:
            return None
        count = self.page_sentence_counts[page]
        local = max(0, min(bookmark.sentence_idx, count - 1)) if count else 0
        return self._sentences_before(page) + local

    def _global_display_idx(self) -> int:
        return self._sentences_before(self.current_page) + (self.highlighted_display_idx or 0)

    def _sentences_before(self, page: int) -> int:
        return sum(self.page_sentence_counts[:page])

    def _locate_global_idx(self, global_idx: int) -> tuple[int, int]:
        """Walk the page sentence counts down to ``(page, local index)``."""
        remaining = global_idx
        for page, count in enumerate(self.page_sentence_counts):
            if count == 0:
                continue
            if remaining < count:
                return page, remaining
            remaining -= count
        last = len(self.page_sentence_counts) - 1
        return last, max(self.page_sentence_counts[last] - 1, 0)

    def _display_count(self) -> int:
        return self.page_sentence_counts[self.current_page]

    def _current_plan(self) -> PageNormalization:
        if self._plan is None or self._plan_page != self.current_page:
            self._plan = self.normalizer.plan_page(self.pages[self.current_page].sentences)
            self._plan_page = self.current_page
        return self._plan

    def _invalidate_plan(self) -> None:
        self._plan_page = None
        self._plan = None

    def _display_to_audio(self, display_idx: int) -> Optional[int]:
        """Nearest audio unit for a display sentence, looking forward first."""
        mapping = self._current_plan().display_to_audio
        if not mapping:
            return None
        start = max(0, min(display_idx, len(mapping) - 1))
        for mapped in mapping[start:]:
            if mapped is not None:
                return mapped
        for mapped in reversed(mapping[:start + 1]):
            if mapped is not None:
                return mapped
        return None

    def _audio_to_display(self, audio_idx: int) -> Optional[int]:
        mapping = self._current_plan().audio_to_display
        if 0 <= audio_idx < len(mapping):
            return mapping[audio_idx]
        return None

    def _move_highlight(self, delta: int) -> bool:
        """Step the cursor by one unit, crossing into the nearest speakable page.

        The page only changes once a target page has been found.
        """
        count = len(self.current_sentences())
        if count:
            current = min(self.highlighted_idx or 0, count - 1)
            target = current + delta
            if 0 <= target < count:
                self.sentence_click(target)
                return True

        page = self._adjacent_speakable_page(delta)
        if page is None:
            return False
        self._enter_page(page)
        self.sentence_click(0 if delta > 0 else len(self.current_sentences()) - 1)
        return True

    def _adjacent_speakable_page(self, direction: int) -> Optional[int]:
        step = 1 if direction > 0 else -1
        page = self.current_page + step
        while 0 <= page < len(self.pages):
            if self._is_speakable(page):
                return page
            page += step
        return None

    def _is_speakable(self, page: int) -> bool:
        """Whether ``page`` has units in the active space: audio units in text-only mode."""
        if not self.page_sentence_counts[page]:
            return False
        if not self.text_only_mode:
            return True
        if page == self.current_page:
            return bool(self._current_plan().audio_sentences)
        return bool(self.normalizer.plan_page(self.pages[page].sentences).audio_sentences)

    def _update_search_matches(self) -> None:
        self.search_matches = []
        self.selected_search_match = None
        query = self.search_query.strip()
        if not query:
            return

        try:
            pattern = re.compile(query)
        except re.error:
            # Not a valid regex: plain case-insensitive substring search.
            pattern = re.compile(re.escape(query), re.IGNORECASE)

        self.search_matches = [
            idx for idx, sentence in enumerate(self.current_sentences())
            if pattern.search(sentence)
        ]
        if self.search_matches:
            self.selected_search_match = 0

    def _apply_selected_match(self) -> None:
        if self.selected_search_match is None:
            return
        if self.selected_search_match < len(self.search_matches):
            self.sentence_click(self.search_matches[self.selected_search_match])


_COMMAND_HANDLERS: dict[str, Callable[[ReaderSession, Any], None]] = {
    "get_snapshot": lambda session, cmd: None,
    "next_page": lambda session, cmd: session.next_page(),
    "prev_page": lambda session, cmd: session.prev_page(),
    "set_page": lambda session, cmd: session.set_page(cmd.page),
    "sentence_click": lambda session, cmd: session.sentence_click(cmd.sentence_idx),
    "next_sentence": lambda session, cmd: session.next_sentence(),
    "prev_sentence": lambda session, cmd: session.prev_sentence(),
    "toggle_text_only": lambda session, cmd: session.toggle_text_only(),
    "apply_settings": lambda session, cmd: session.apply_settings_patch(cmd.patch),
    "search_set_query": lambda session, cmd: session.set_search_query(cmd.query),
    "search_next": lambda session, cmd: session.search_next(),
    "search_prev": lambda session, cmd: session.search_prev(),
    "tts_play": lambda session, cmd: session.tts_play(),
    "tts_pause": lambda session, cmd: session.tts_pause(),
    "tts_toggle_play_pause": lambda session, cmd: session.tts_toggle_play_pause(),
    "tts_play_from_page_start": lambda session, cmd: session.tts_play_from_page_start(),
    "tts_play_from_highlight": lambda session, cmd: session.tts_play_from_highlight(),
    "tts_seek_next": lambda session, cmd: session.tts_seek_next(),
    "tts_seek_prev": lambda session, cmd: session.tts_seek_prev(),
    "tts_repeat_sentence": lambda session, cmd: session.tts_repeat_sentence(),
    "tts_stop": lambda session, cmd: session.tts_stop(),
}


def clamp_settings(settings: ReaderSettings) -> ReaderSettings:
    """Return a copy of ``settings`` with every field inside its range."""
    s = copy.deepcopy(settings)
    s.font_size = clamp_font_size(s.font_size)
    s.lines_per_page = clamp_lines_per_page(s.lines_per_page)
    s.margin_horizontal = _clamp(s.margin_horizontal, 0, 600)
    s.margin_vertical = _clamp(s.margin_vertical, 0, 240)
    s.line_spacing = _clamp(s.line_spacing, 0.8, 3.0)
    s.word_spacing = _clamp(s.word_spacing, 0, 24)
    s.letter_spacing = _clamp(s.letter_spacing, 0, 24)
    s.pause_after_sentence = _round_pause(s.pause_after_sentence)
    s.tts_speed = _clamp(s.tts_speed, 0.25, 4.0)
    s.tts_volume = _clamp(s.tts_volume, 0.0, 2.0)
    s.day_highlight = s.day_highlight.clamped()
    s.night_highlight = s.night_highlight.clamped()
    return s


def _clamp(value, low, high):
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def _round_pause(value: float) -> float:
    return _round_half_up(_clamp(value, 0.0, 3.0) * 100) / 100


def _pages_by_distance(origin: int, total: int) -> Iterator[int]:
    yield origin
    for distance in range(1, total):
        if origin + distance < total:
            yield origin + distance
        if origin - distance >= 0:
            yield origin - distance
