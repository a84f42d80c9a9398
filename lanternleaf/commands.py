"""Reader command API: one pydantic model per command, discriminated by ``type``."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from lanternleaf.models import FontFamily, FontWeight, HighlightColor, ThemeMode


class HighlightPatch(BaseModel):
    r: float
    g: float
    b: float
    a: float

    def to_color(self) -> HighlightColor:
        return HighlightColor(r=self.r, g=self.g, b=self.b, a=self.a).clamped()


class SettingsPatch(BaseModel):
    """Partial settings update. Absent fields are left untouched.

    Values are not range-checked here; the session clamps them.
    """
    theme: Optional[ThemeMode] = None
    day_highlight: Optional[HighlightPatch] = None
    night_highlight: Optional[HighlightPatch] = None
    font_family: Optional[FontFamily] = None
    font_weight: Optional[FontWeight] = None
    font_size: Optional[int] = None
    line_spacing: Optional[float] = None
    word_spacing: Optional[int] = None
    letter_spacing: Optional[int] = None
    margin_horizontal: Optional[int] = None
    margin_vertical: Optional[int] = None
    lines_per_page: Optional[int] = None
    pause_after_sentence: Optional[float] = None
    auto_scroll_tts: Optional[bool] = None
    center_spoken_sentence: Optional[bool] = None
    tts_speed: Optional[float] = None
    tts_volume: Optional[float] = None


class ReaderCommand(BaseModel):
    type: str

    @property
    def action(self) -> str:
        """Name reported alongside the snapshot this command produces."""
        return f"reader_{self.type}"


class GetSnapshot(ReaderCommand):
    type: Literal["get_snapshot"] = "get_snapshot"


class NextPage(ReaderCommand):
    type: Literal["next_page"] = "next_page"


class PrevPage(ReaderCommand):
    type: Literal["prev_page"] = "prev_page"


class SetPage(ReaderCommand):
    type: Literal["set_page"] = "set_page"
    page: int


class SentenceClick(ReaderCommand):
    type: Literal["sentence_click"] = "sentence_click"
    sentence_idx: int


class NextSentence(ReaderCommand):
    type: Literal["next_sentence"] = "next_sentence"


class PrevSentence(ReaderCommand):
    type: Literal["prev_sentence"] = "prev_sentence"


class ToggleTextOnly(ReaderCommand):
    type: Literal["toggle_text_only"] = "toggle_text_only"


class ApplySettings(ReaderCommand):
    type: Literal["apply_settings"] = "apply_settings"
    patch: SettingsPatch = Field(default_factory=SettingsPatch)


class SearchSetQuery(ReaderCommand):
    type: Literal["search_set_query"] = "search_set_query"
    query: str = ""


class SearchNext(ReaderCommand):
    type: Literal["search_next"] = "search_next"


class SearchPrev(ReaderCommand):
    type: Literal["search_prev"] = "search_prev"


class TtsPlay(ReaderCommand):
    type: Literal["tts_play"] = "tts_play"


class TtsPause(ReaderCommand):
    type: Literal["tts_pause"] = "tts_pause"


class TtsTogglePlayPause(ReaderCommand):
    type: Literal["tts_toggle_play_pause"] = "tts_toggle_play_pause"


class TtsPlayFromPageStart(ReaderCommand):
    type: Literal["tts_play_from_page_start"] = "tts_play_from_page_start"


class TtsPlayFromHighlight(ReaderCommand):
    type: Literal["tts_play_from_highlight"] = "tts_play_from_highlight"


class TtsSeekNext(ReaderCommand):
    type: Literal["tts_seek_next"] = "tts_seek_next"


class TtsSeekPrev(ReaderCommand):
    type: Literal["tts_seek_prev"] = "tts_seek_prev"


class TtsRepeatSentence(ReaderCommand):
    type: Literal["tts_repeat_sentence"] = "tts_repeat_sentence"


class TtsStop(ReaderCommand):
    type: Literal["tts_stop"] = "tts_stop"


Command = Annotated[
    Union[
        GetSnapshot, NextPage, PrevPage, SetPage, SentenceClick,
        NextSentence, PrevSentence, ToggleTextOnly, ApplySettings,
        SearchSetQuery, SearchNext, SearchPrev,
        TtsPlay, TtsPause, TtsTogglePlayPause, TtsPlayFromPageStart,
        TtsPlayFromHighlight, TtsSeekNext, TtsSeekPrev, TtsRepeatSentence, TtsStop,
    ],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER = TypeAdapter(Command)

COMMAND_TYPES = [
    cls.model_fields["type"].default
    for cls in ReaderCommand.__subclasses__()
]


def parse_command(value: Union[str, dict[str, Any], ReaderCommand]) -> ReaderCommand:
    """Build a command from a dict, a JSON object string or a bare type name.

    Raises:
        pydantic.ValidationError: If the payload does not match a command.
        ValueError: If a bare name is not a known command type.
    """
    if isinstance(value, ReaderCommand):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            return _COMMAND_ADAPTER.validate_json(text)
        if text not in COMMAND_TYPES:
            available = ", ".join(COMMAND_TYPES)
            raise ValueError(f"Comando sconosciuto '{text}'. Disponibili: {available}")
        return _COMMAND_ADAPTER.validate_python({"type": text})
    return _COMMAND_ADAPTER.validate_python(value)
