"""Data models for the lanternleaf reading engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class PlaybackState(str, Enum):
    """Speech playback state. Orthogonal to the reading cursor."""
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


class ThemeMode(str, Enum):
    DAY = "day"
    NIGHT = "night"


class FontFamily(str, Enum):
    SANS = "sans"
    SERIF = "serif"
    MONOSPACE = "monospace"
    LEXEND = "lexend"
    FIRA_CODE = "fira-code"
    ATKINSON_HYPERLEGIBLE = "atkinson-hyperlegible"
    NOTO_SANS = "noto-sans"


class FontWeight(str, Enum):
    LIGHT = "light"
    NORMAL = "normal"
    BOLD = "bold"


@dataclass
class Page:
    """A slice of the book holding whole display sentences.

    ``line_breaks`` holds the indices of sentences that a line break follows
    in ``text``; other sentences are separated by a single space.
    """
    index: int
    sentences: list[str] = field(default_factory=list)
    line_breaks: set[int] = field(default_factory=set)

    @property
    def text(self) -> str:
        parts = []
        for i, sentence in enumerate(self.sentences):
            if i:
                parts.append("\n" if i - 1 in self.line_breaks else " ")
            parts.append(sentence)
        if self.sentences and len(self.sentences) - 1 in self.line_breaks:
            parts.append("\n")
        return "".join(parts)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def sentence_count(self) -> int:
        return len(self.sentences)


@dataclass
class PageNormalization:
    """TTS-ready units for one page plus the display/audio index mapping.

    ``display_to_audio[i]`` is the first audio unit produced by display
    sentence ``i`` (``None`` when the sentence was dropped), and
    ``audio_to_display[j]`` is the display sentence audio unit ``j`` came from.
    """
    audio_sentences: list[str] = field(default_factory=list)
    display_to_audio: list[Optional[int]] = field(default_factory=list)
    audio_to_display: list[int] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "PageNormalization":
        return cls()


@dataclass
class HighlightColor:
    r: float
    g: float
    b: float
    a: float

    def clamped(self) -> "HighlightColor":
        return HighlightColor(
            r=_clamp(self.r, 0.0, 1.0),
            g=_clamp(self.g, 0.0, 1.0),
            b=_clamp(self.b, 0.0, 1.0),
            a=_clamp(self.a, 0.0, 1.0),
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class ReaderSettings:
    """Typography, layout and speech settings owned by a reader session."""
    theme: ThemeMode = ThemeMode.NIGHT
    font_family: FontFamily = FontFamily.SANS
    font_weight: FontWeight = FontWeight.NORMAL
    day_highlight: HighlightColor = field(
        default_factory=lambda: HighlightColor(r=0.2, g=0.4, b=0.7, a=0.15)
    )
    night_highlight: HighlightColor = field(
        default_factory=lambda: HighlightColor(r=0.8, g=0.8, b=0.5, a=0.2)
    )
    font_size: int = 22
    line_spacing: float = 1.2
    word_spacing: int = 0
    letter_spacing: int = 0
    margin_horizontal: int = 100
    margin_vertical: int = 12
    lines_per_page: int = 700
    pause_after_sentence: float = 0.06
    auto_scroll_tts: bool = False
    center_spoken_sentence: bool = True
    tts_speed: float = 2.5
    tts_volume: float = 1.0


@dataclass
class Bookmark:
    """The persisted reading position of one source."""
    page: int
    sentence_idx: Optional[int] = None
    sentence_text: Optional[str] = None
    scroll_y: float = 0.0


@dataclass
class TtsView:
    state: PlaybackState
    current_sentence_idx: Optional[int]
    sentence_count: int
    can_seek_prev: bool
    can_seek_next: bool
    progress_pct: float


@dataclass
class ReaderStats:
    page_index: int
    total_pages: int
    tts_progress_pct: float
    page_time_remaining_secs: float
    book_time_remaining_secs: float
    page_word_count: int
    page_sentence_count: int
    page_start_percent: float
    page_end_percent: float
    words_read_up_to_page_start: int
    sentences_read_up_to_page_start: int
    words_read_up_to_page_end: int
    sentences_read_up_to_page_end: int
    words_read_up_to_current_position: int
    sentences_read_up_to_current_position: int


@dataclass
class ReaderSnapshot:
    """Read-only view of a session after a command has been applied."""
    source_path: str
    source_name: str
    current_page: int
    total_pages: int
    text_only_mode: bool
    page_text: str
    sentences: list[str]
    highlighted_sentence_idx: Optional[int]
    search_query: str
    search_matches: list[int]
    selected_search_match: Optional[int]
    settings: ReaderSettings
    tts: TtsView
    stats: ReaderStats


@dataclass
class SessionEvent:
    """Result of one command: the action name and the resulting snapshot."""
    action: str
    snapshot: ReaderSnapshot
