"""Text normalization for TTS.

Turns the display sentences of a page into speakable audio units and records
how the two lists line up, so a cursor can move between them.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from lanternleaf.config import (
    ABBREVIATIONS_CONFIG_ENV,
    DEFAULT_ABBREVIATIONS_PATH,
    DEFAULT_NORMALIZER_PATH,
    NORMALIZER_CONFIG_ENV,
    known_fields,
    read_toml,
    resolve_path,
)
from lanternleaf.models import PageNormalization
from lanternleaf.text.pronunciation import (
    DEFAULT_LETTER_SOUNDS,
    apply_acronym_expansion,
    apply_word_map,
    apply_year_pronunciation,
)

logger = logging.getLogger(__name__)

SENTENCE_MARKER = "\n<<__LANTERNLEAF_SENTENCE_BOUNDARY__>>\n"

_RE_INLINE_CODE = re.compile(r"`([^`]+)`")
_RE_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_RE_NUMERIC_BRACKET_CITE = re.compile(r"\[\s*\d+(?:\s*,\s*\d+)*\s*\]")
_RE_PARENTHETICAL_NUMERIC = re.compile(r"\(\s*\d+(?:\s*,\s*\d+)*\s*\)")
_RE_SUPERSCRIPT_CITE = re.compile(r"[⁰¹²³⁴⁵⁶⁷⁸⁹]+")
_RE_WORD_SUFFIX_FOOTNOTE = re.compile(r"(?P<prefix>[^\W\d_])\d{1,3}\b")
_RE_SQUARE_BRACKET_BLOCK = re.compile(r"\[[^\]]*\]")
_RE_CURLY_BRACKET_BLOCK = re.compile(r"\{[^}]*\}")
_RE_HORIZONTAL_WS = re.compile(r"[ \t\u00A0]+")
_RE_SPACE_BEFORE_PUNCT = re.compile(r"[ \t\u00A0]+([,.;:!?])")
_RE_CHUNK_BREAK = re.compile(r"(?<=[,;:.!?])\s+|\n")
_RE_DOLLAR_GROUP = re.compile(r"\$(?:\$|\{(\w+)\}|(\d+))")
_RE_BACKSLASH_GROUP = re.compile(r"(?<!\\)\\(?:g<(\w+)>|(\d+))")

_UNICODE_PUNCTUATION = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": " - ",
    "—": " - ",
    "…": "...",
}
_BOUNDARY_NOISE = " \t\r\n\u00A0\"'‘’“”«»"


class NormalizationMode(str, Enum):
    PAGE = "page"
    SENTENCE = "sentence"


class YearMode(str, Enum):
    AMERICAN = "american"
    NONE = "none"


@dataclass
class AbbreviationRule:
    """Regex expansion rule; ``replace`` may use ``$1`` or ``\\1`` groups."""
    pattern: str
    replace: str
    case_sensitive: bool = False


@dataclass
class AbbreviationConfig:
    case: dict[str, str] = field(default_factory=dict)
    nocase: dict[str, str] = field(default_factory=dict)
    regex: list[AbbreviationRule] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AbbreviationConfig":
        """Parse an ``[abbreviations]`` table.

        Plain string keys at the top level are treated as case-insensitive
        entries, as older abbreviation files wrote them.
        """
        config = cls(
            case={str(k): str(v) for k, v in data.get("case", {}).items()},
            nocase={str(k): str(v) for k, v in data.get("nocase", {}).items()},
            regex=[
                AbbreviationRule(**known_fields(AbbreviationRule, rule, "abbreviations.regex"))
                for rule in data.get("regex", [])
            ],
        )
        for key, value in data.items():
            if key not in ("case", "nocase", "regex") and isinstance(value, str):
                config.nocase[key] = value
        return config

    def extend(self, other: "AbbreviationConfig") -> None:
        self.case.update(other.case)
        self.nocase.update(other.nocase)
        self.regex.extend(other.regex)


def default_abbreviations() -> AbbreviationConfig:
    return AbbreviationConfig(nocase={
        "Mr.": "Mister",
        "Ms.": "Miss",
        "Mrs.": "Misses",
        "Mass.": "Massachusetts",
        "St.": "Saint",
    })


@dataclass
class AcronymConfig:
    enabled: bool = True
    tokens: list[str] = field(default_factory=lambda: [
        "CSS", "HTML", "HTTP", "HTTPS", "URL", "API", "CPU", "GPU",
        "JSON", "SQL", "XML", "TTS", "XTTS", "LLM",
    ])
    letter_separator: str = " "
    digit_separator: str = " point "
    letter_sounds: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_LETTER_SOUNDS))


@dataclass
class PronunciationConfig:
    year_mode: YearMode = YearMode.AMERICAN
    number_separator: str = " "
    insert_and: bool = False
    enable_brand_map: bool = True
    brand_map: dict[str, str] = field(default_factory=lambda: {
        "MySQL": "My S Q L",
        "SQLite": "S Q Lite",
        "PostCSS": "Post C S S",
    })
    custom_pronunciations: dict[str, str] = field(default_factory=dict)


@dataclass
class NormalizerConfig:
    enabled: bool = True
    mode: NormalizationMode = NormalizationMode.PAGE
    collapse_whitespace: bool = True
    remove_space_before_punctuation: bool = True
    strip_inline_code: bool = True
    strip_markdown_links: bool = True
    drop_numeric_bracket_citations: bool = True
    drop_parenthetical_numeric_citations: bool = True
    drop_superscript_citations: bool = True
    drop_word_suffix_numeric_footnotes: bool = False
    drop_square_bracket_text: bool = True
    drop_curly_brace_text: bool = True
    chunk_long_sentences: bool = True
    max_audio_chars_per_chunk: int = 180
    max_audio_words_per_chunk: int = 32
    min_sentence_chars: int = 2
    require_alphanumeric: bool = True
    replacements: dict[str, str] = field(default_factory=lambda: {"#": " "})
    drop_tokens: list[str] = field(default_factory=list)
    abbreviations: AbbreviationConfig = field(default_factory=default_abbreviations)
    acronyms: AcronymConfig = field(default_factory=AcronymConfig)
    pronunciation: PronunciationConfig = field(default_factory=PronunciationConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NormalizerConfig":
        """Build a config from a ``[normalization]`` table.

        Nested tables replace the matching defaults field by field.

        Raises:
            ValueError: If an enum value is unknown.
        """
        values = known_fields(cls, data, "normalization")
        if "mode" in values:
            values["mode"] = NormalizationMode(values["mode"])
        if "abbreviations" in values:
            values["abbreviations"] = AbbreviationConfig.from_mapping(values["abbreviations"])
        if "acronyms" in values:
            acronyms = known_fields(AcronymConfig, values["acronyms"], "normalization.acronyms")
            if "letter_sounds" in acronyms:
                acronyms["letter_sounds"] = {
                    **DEFAULT_LETTER_SOUNDS,
                    **{k.upper(): v for k, v in acronyms["letter_sounds"].items()},
                }
            values["acronyms"] = AcronymConfig(**acronyms)
        if "pronunciation" in values:
            pron = known_fields(
                PronunciationConfig, values["pronunciation"], "normalization.pronunciation"
            )
            if "year_mode" in pron:
                pron["year_mode"] = YearMode(pron["year_mode"])
            values["pronunciation"] = PronunciationConfig(**pron)
        return cls(**values)


class TextNormalizer:
    """Plans the audio units of a page from its display sentences."""

    def __init__(self, config: Optional[NormalizerConfig] = None):
        self.config = config or NormalizerConfig()
        self._abbreviation_rules = self._compile_abbreviations(self.config.abbreviations)

    @classmethod
    def load(cls, path: Path) -> "TextNormalizer":
        """Load the ``[normalization]`` table of a TOML file.

        The abbreviations file (env var, ``conf/abbreviations.toml`` or an
        ``abbreviations.toml`` next to ``path``) is merged in. Unreadable or
        invalid files fall back to defaults.
        """
        path = Path(path)
        data = read_toml(path)
        config = NormalizerConfig()
        if data is None:
            logger.warning("Normalizzatore: uso la configurazione di default (%s)", path)
        else:
            try:
                config = NormalizerConfig.from_mapping(data.get("normalization", {}))
                logger.info("Configurazione normalizzatore caricata da %s", path)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Configurazione normalizzatore non valida in %s: %s", path, e)
                config = NormalizerConfig()

        external = _load_external_abbreviations(path)
        if external is not None:
            config.abbreviations.extend(external)
        return cls(config)

    @classmethod
    def load_default(cls) -> "TextNormalizer":
        path = resolve_path(NORMALIZER_CONFIG_ENV, DEFAULT_NORMALIZER_PATH)
        if not path.exists():
            logger.debug("Nessun file normalizzatore in %s, uso i default", path)
            config = NormalizerConfig()
            external = _load_external_abbreviations(path)
            if external is not None:
                config.abbreviations.extend(external)
            return cls(config)
        return cls.load(path)

    def plan_page(self, display_sentences: list[str]) -> PageNormalization:
        """Normalize one page and build the display/audio index mapping."""
        if not display_sentences:
            return PageNormalization.empty()

        if not self.config.enabled:
            count = len(display_sentences)
            return PageNormalization(
                audio_sentences=list(display_sentences),
                display_to_audio=list(range(count)),
                audio_to_display=list(range(count)),
            )

        if self.config.mode == NormalizationMode.PAGE:
            cleaned_sentences = self._normalize_page_mode(display_sentences)
        else:
            cleaned_sentences = [self.clean_text(s) for s in display_sentences]

        plan = PageNormalization(display_to_audio=[None] * len(display_sentences))
        for display_idx, cleaned in enumerate(cleaned_sentences):
            kept = self._finalize_sentence(cleaned)
            if kept is None:
                continue
            chunks = self._chunk_for_tts(kept)
            if not chunks:
                continue
            plan.display_to_audio[display_idx] = len(plan.audio_sentences)
            for chunk in chunks:
                plan.audio_to_display.append(display_idx)
                plan.audio_sentences.append(chunk)
        return plan

    def clean_text(self, text: str) -> str:
        """Run the cleanup pipeline over one sentence."""
        return self._clean(text).strip()

    def _clean(self, text: str) -> str:
        cfg = self.config
        out = _fold_unicode_punctuation(text).replace('"', "")

        if cfg.strip_markdown_links:
            out = _RE_MARKDOWN_LINK.sub(r"\1", out)
        if cfg.strip_inline_code:
            out = _RE_INLINE_CODE.sub(r"\1", out)
        if cfg.drop_numeric_bracket_citations:
            out = _RE_NUMERIC_BRACKET_CITE.sub(" ", out)
        if cfg.drop_parenthetical_numeric_citations:
            out = _RE_PARENTHETICAL_NUMERIC.sub(" ", out)
        if cfg.drop_superscript_citations:
            out = _RE_SUPERSCRIPT_CITE.sub(" ", out)
        if cfg.drop_word_suffix_numeric_footnotes:
            out = _RE_WORD_SUFFIX_FOOTNOTE.sub(r"\g<prefix>", out)
        if cfg.drop_square_bracket_text:
            out = _RE_SQUARE_BRACKET_BLOCK.sub(" ", out)
        if cfg.drop_curly_brace_text:
            out = _RE_CURLY_BRACKET_BLOCK.sub(" ", out)

        for pattern, replace in self._abbreviation_rules:
            out = pattern.sub(replace, out)

        for source in sorted(cfg.replacements, key=len, reverse=True):
            if source:
                out = out.replace(source, cfg.replacements[source])
        for token in cfg.drop_tokens:
            if token:
                out = out.replace(token, " ")

        pron = cfg.pronunciation
        if pron.enable_brand_map and pron.brand_map:
            out = apply_word_map(out, pron.brand_map)
        if pron.custom_pronunciations:
            out = apply_word_map(out, pron.custom_pronunciations)
        if pron.year_mode != YearMode.NONE:
            out = apply_year_pronunciation(out, pron.number_separator, pron.insert_and)

        acr = cfg.acronyms
        if acr.enabled and acr.tokens:
            out = apply_acronym_expansion(
                out, acr.tokens, acr.letter_sounds, acr.letter_separator, acr.digit_separator
            )

        if cfg.collapse_whitespace:
            out = _RE_HORIZONTAL_WS.sub(" ", out)
        if cfg.remove_space_before_punctuation:
            out = _RE_SPACE_BEFORE_PUNCT.sub(r"\1", out)
        return out

    def _normalize_page_mode(self, display_sentences: list[str]) -> list[str]:
        joined = SENTENCE_MARKER.join(display_sentences)
        parts = self._clean(joined).split(SENTENCE_MARKER)
        if len(parts) == len(display_sentences):
            return parts
        logger.debug(
            "Marcatore di frase alterato (attese %d parti, trovate %d): normalizzo frase per frase",
            len(display_sentences), len(parts),
        )
        return [self.clean_text(s) for s in display_sentences]

    def _finalize_sentence(self, sentence: str) -> Optional[str]:
        trimmed = sentence.strip(_BOUNDARY_NOISE)
        if not trimmed:
            return None
        if self.config.require_alphanumeric and not any(ch.isalnum() for ch in trimmed):
            return None
        if len(trimmed) < max(1, self.config.min_sentence_chars):
            return None
        return trimmed

    def _chunk_for_tts(self, sentence: str) -> list[str]:
        cleaned = sentence.strip(_BOUNDARY_NOISE)
        if not cleaned:
            return []
        if not self.config.chunk_long_sentences:
            return [cleaned]

        max_chars = max(40, self.config.max_audio_chars_per_chunk)
        max_words = max(8, self.config.max_audio_words_per_chunk)
        if not _exceeds(cleaned, max_chars, max_words):
            return [cleaned]

        chunks: list[str] = []
        current = ""
        for segment in _split_for_chunking(cleaned):
            segment = segment.strip(_BOUNDARY_NOISE)
            if not segment:
                continue
            if _exceeds(segment, max_chars, max_words):
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(_split_by_words(segment, max_chars, max_words))
                continue
            candidate = f"{current} {segment}" if current else segment
            if not _exceeds(candidate, max_chars, max_words):
                current = candidate
                continue
            if current:
                chunks.append(current)
            current = segment
        if current:
            chunks.append(current)
        if not chunks:
            chunks.append(cleaned)

        logger.debug(
            "Frase normalizzata divisa in %d blocchi audio (%d caratteri)",
            len(chunks), len(cleaned),
        )
        return chunks

    @staticmethod
    def _compile_abbreviations(
        config: AbbreviationConfig,
    ) -> list[tuple[re.Pattern, Callable[[re.Match], str]]]:
        rules = []
        for rule in config.regex:
            if not rule.pattern.strip():
                continue
            flags = 0 if rule.case_sensitive else re.IGNORECASE
            try:
                compiled = re.compile(rule.pattern, flags)
                template = _translate_template(rule.replace, compiled)
            except re.error as e:
                logger.warning("Regola abbreviazione ignorata (%r): %s", rule.pattern, e)
                continue
            rules.append((compiled, lambda m, t=template: m.expand(t)))

        for entries, flags in ((config.case, 0), (config.nocase, re.IGNORECASE)):
            for token in sorted(entries, key=lambda t: len(t.strip()), reverse=True):
                trimmed = token.strip()
                if not trimmed:
                    continue
                if trimmed.endswith("."):
                    pattern = rf"\b{re.escape(trimmed[:-1])}\."
                else:
                    pattern = rf"\b{re.escape(trimmed)}\b"
                replacement = entries[token]
                rules.append((re.compile(pattern, flags), lambda _m, r=replacement: r))
        return rules


def _load_external_abbreviations(normalizer_path: Path) -> Optional[AbbreviationConfig]:
    path = resolve_path(ABBREVIATIONS_CONFIG_ENV, DEFAULT_ABBREVIATIONS_PATH)
    if not path.exists():
        sibling = normalizer_path.parent / "abbreviations.toml"
        if not sibling.exists():
            return None
        path = sibling

    data = read_toml(path)
    if data is None:
        return None
    try:
        config = AbbreviationConfig.from_mapping(data.get("abbreviations", {}))
    except (TypeError, AttributeError) as e:
        logger.warning("File abbreviazioni non valido in %s: %s", path, e)
        return None
    logger.info(
        "Caricate %d abbreviazioni da %s",
        len(config.case) + len(config.nocase) + len(config.regex), path,
    )
    return config


def _translate_template(template: str, pattern: re.Pattern) -> str:
    """Rewrite ``$1``/``${name}`` references as ``\\g<...>`` for ``Match.expand``.

    ``$$`` is a literal dollar sign; backslash references pass through.

    Raises:
        re.error: If the template references a group the pattern lacks.
    """
    pieces = []
    pos = 0
    for m in _RE_DOLLAR_GROUP.finditer(template):
        pieces.append(template[pos:m.start()])
        if m.group(0) == "$$":
            pieces.append("$")
        else:
            group = m.group(1) or m.group(2)
            if group.isdigit():
                if int(group) > pattern.groups:
                    raise re.error(f"gruppo inesistente ${group}")
            elif group not in pattern.groupindex:
                raise re.error(f"gruppo inesistente ${{{group}}}")
            pieces.append(f"\\g<{group}>")
        pos = m.end()
    pieces.append(template[pos:])
    translated = "".join(pieces)
    for ref in _RE_BACKSLASH_GROUP.finditer(translated):
        group = ref.group(1) or ref.group(2)
        if group.isdigit() and int(group) > pattern.groups:
            raise re.error(f"gruppo inesistente \\{group}")
        if not group.isdigit() and group not in pattern.groupindex:
            raise re.error(f"gruppo inesistente \\g<{group}>")
    return translated


def _fold_unicode_punctuation(text: str) -> str:
    return "".join(_UNICODE_PUNCTUATION.get(ch, ch) for ch in text)


def _exceeds(text: str, max_chars: int, max_words: int) -> bool:
    return len(text) > max_chars or len(text.split()) > max_words


def _split_for_chunking(text: str) -> list[str]:
    segments = []
    for part in _RE_CHUNK_BREAK.split(text):
        segment = " ".join(part.split()).strip(_BOUNDARY_NOISE)
        if segment:
            segments.append(segment)
    return segments or [text.strip()]


def _split_by_words(segment: str, max_chars: int, max_words: int) -> list[str]:
    chunks = []
    words: list[str] = []
    length = 0
    for word in segment.split():
        candidate_len = len(word) if not words else length + 1 + len(word)
        if words and (candidate_len > max_chars or len(words) + 1 > max_words):
            chunks.append(" ".join(words))
            words = []
            candidate_len = len(word)
        words.append(word)
        length = candidate_len
    if words:
        chunks.append(" ".join(words))
    return chunks
