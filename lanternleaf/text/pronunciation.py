"""Spoken-form rewrites: years, acronyms and whole-word pronunciation maps."""

import re
from typing import Mapping

_ONES = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
]
_TEENS = [
    "ten", "eleven", "twelve", "thirteen", "fourteen",
    "fifteen", "sixteen", "seventeen", "eighteen", "nineteen",
]
_TENS = [
    "", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety",
]

_YEAR_RE = re.compile(r"\b(1\d{3}|20\d{2})\b")

DEFAULT_LETTER_SOUNDS = {
    "A": "ay", "B": "bee", "C": "see", "D": "dee", "E": "ee", "F": "eff",
    "G": "jee", "H": "aitch", "I": "eye", "J": "jay", "K": "kay", "L": "el",
    "M": "em", "N": "en", "O": "oh", "P": "pee", "Q": "cue", "R": "ar",
    "S": "ess", "T": "tee", "U": "you", "V": "vee", "W": "double you",
    "X": "ex", "Y": "why", "Z": "zee",
    "0": "zero", "1": "one", "2": "two", "3": "three", "4": "four",
    "5": "five", "6": "six", "7": "seven", "8": "eight", "9": "nine",
}


def two_digit_words(value: int) -> str:
    """Spell 0-99 in English ("seven", "fourteen", "eighty four")."""
    if value < 10:
        return _ONES[value]
    if value < 20:
        return _TEENS[value - 10]
    words = _TENS[value // 10]
    if value % 10:
        words = f"{words} {_ONES[value % 10]}"
    return words


def year_to_words(year: int, separator: str = " ", insert_and: bool = False) -> str:
    """Spell a year the way it is read aloud in American English.

    1984 -> "nineteen eighty four", 1905 -> "nineteen oh five",
    1900 -> "nineteen hundred", 2000 -> "two thousand",
    2007 -> "two thousand seven", 2024 -> "twenty twenty four".
    Years outside 1000-2099 are returned as digits.
    """
    if year < 1000 or year > 2099:
        return str(year)

    high, low = divmod(year, 100)
    if year % 1000 == 0:
        parts = [_ONES[year // 1000], "thousand"]
    elif year % 1000 < 10:
        # 1001-1009, 2001-2009
        parts = [_ONES[year // 1000], "thousand"]
        if insert_and:
            parts.append("and")
        parts.append(_ONES[year % 1000])
    elif low == 0:
        parts = [two_digit_words(high), "hundred"]
    elif low < 10:
        parts = [two_digit_words(high), "oh", _ONES[low]]
    else:
        parts = [two_digit_words(high), two_digit_words(low)]
    return separator.join(parts)


def apply_year_pronunciation(text: str, separator: str = " ", insert_and: bool = False) -> str:
    return _YEAR_RE.sub(
        lambda m: year_to_words(int(m.group(1)), separator, insert_and),
        text,
    )


def apply_word_map(text: str, mapping: Mapping[str, str]) -> str:
    """Replace whole words case-insensitively, longest entries first."""
    out = text
    for token in sorted(mapping, key=len, reverse=True):
        if not token:
            continue
        pattern = re.compile(rf"\b{re.escape(token)}\b", re.IGNORECASE)
        replacement = mapping[token]
        out = pattern.sub(lambda _m: replacement, out)
    return out


def apply_acronym_expansion(
    text: str,
    tokens: list[str],
    letter_sounds: Mapping[str, str],
    letter_separator: str = " ",
    digit_separator: str = " point ",
) -> str:
    """Spell configured acronyms letter by letter.

    A numeric suffix is kept and read digit by digit, dotted groups joined
    by ``digit_separator``: "HTTP2" -> "aitch tee tee pee two",
    "HTML5.1" -> "aitch tee em el five point one".
    """
    out = text
    for token in tokens:
        if not token:
            continue
        pattern = re.compile(
            rf"\b{re.escape(token)}(?P<digits>\d+(?:\.\d+)*)?\b",
            re.IGNORECASE,
        )
        out = pattern.sub(
            lambda m: _spell_acronym(m, letter_sounds, letter_separator, digit_separator),
            out,
        )
    return out


def _spell_acronym(
    match: re.Match,
    letter_sounds: Mapping[str, str],
    letter_separator: str,
    digit_separator: str,
) -> str:
    letters = [
        letter_sounds.get(ch.upper(), ch.upper())
        for ch in match.group(0)
        if ch.isascii() and ch.isalpha()
    ]
    spelled = letter_separator.join(letters)

    digits = match.group("digits")
    if digits:
        groups = [
            letter_separator.join(letter_sounds.get(d, d) for d in group if d.isdigit())
            for group in digits.split(".")
        ]
        spoken = digit_separator.join(group for group in groups if group)
        if spoken:
            spelled = f"{spelled} {spoken}" if spelled else spoken

    return spelled or match.group(0)
