"""Tests for TTS text normalization."""

import pytest

from lanternleaf.text.normalizer import (
    AbbreviationConfig,
    AbbreviationRule,
    NormalizationMode,
    NormalizerConfig,
    TextNormalizer,
    YearMode,
)
from lanternleaf.text.pronunciation import year_to_words


def _audio(sentences, config=None):
    return TextNormalizer(config).plan_page(sentences).audio_sentences


def _assert_mapping_invariants(display, plan):
    assert len(plan.display_to_audio) == len(display)
    assert len(plan.audio_to_display) == len(plan.audio_sentences)
    for mapped in plan.display_to_audio:
        if mapped is not None:
            assert mapped < len(plan.audio_sentences)
    for i, display_idx in enumerate(plan.audio_to_display):
        assert display_idx < len(display)
        if i:
            assert display_idx >= plan.audio_to_display[i - 1]
    for i, mapped in enumerate(plan.display_to_audio):
        if mapped is not None:
            assert plan.audio_to_display[mapped] == i


class TestCleanup:
    def test_abbreviation_and_superscript(self):
        assert _audio(["Mr. Hale wrote this²."]) == ["Mister Hale wrote this."]

    def test_unicode_punctuation_is_folded(self):
        assert _audio(["“Quote”—and ‘apostrophe’ … done."]) == ["Quote - and 'apostrophe'... done."]

    def test_years_are_spoken(self):
        assert _audio(["It was 1984 then."]) == ["It was nineteen eighty four then."]

    def test_acronym_with_numeric_suffix(self):
        assert _audio(["Use HTTP2 now."]) == ["Use aitch tee tee pee two now."]
        assert _audio(["Read the HTML5.1 notes."]) == ["Read the aitch tee em el five point one notes."]

    def test_brand_map(self):
        assert _audio(["I like MySQL."]) == ["I like My S Q L."]

    def test_markup_and_citations(self):
        sentences = ["See [the docs](http://example.com) and `code` here [12] or (3, 4) too."]
        assert _audio(sentences) == ["See the docs and code here or too."]

    def test_asides_are_dropped(self):
        assert _audio(["Keep this [editor note] and {meta} only."]) == ["Keep this and only."]

    def test_literal_replacements_and_drop_tokens(self):
        """Replacement strings are literal text, backslashes included."""
        config = NormalizerConfig(replacements={"&": " and ", "x": r"\1"}, drop_tokens=["@@"])
        assert _audio(["Salt & pepper @@ box."], config) == [r"Salt and pepper bo\1."]

    def test_year_mode_none(self):
        config = NormalizerConfig()
        config.pronunciation.year_mode = YearMode.NONE
        assert _audio(["It was 1984 then."], config) == ["It was 1984 then."]


class TestAbbreviations:
    def test_regex_rule_with_dollar_group(self):
        config = NormalizerConfig(abbreviations=AbbreviationConfig(regex=[
            AbbreviationRule(pattern=r"\bch\.\s*(\d+)", replace="chapter $1"),
        ]))
        assert _audio(["See ch. 5 now."], config) == ["See chapter 5 now."]

    def test_invalid_regex_rules_are_skipped(self):
        """Broken patterns and references to missing groups are skipped, not raised."""
        config = NormalizerConfig(abbreviations=AbbreviationConfig(
            regex=[
                AbbreviationRule(pattern="(", replace="x"),
                AbbreviationRule(pattern=r"\bfoo\b", replace="$2"),
            ],
            nocase={"Dr.": "Doctor"},
        ))
        assert _audio(["Dr. foo arrived."], config) == ["Doctor foo arrived."]

    def test_case_sensitive_entries(self):
        config = NormalizerConfig(abbreviations=AbbreviationConfig(case={"No.": "Number"}))
        assert _audio(["No. 5 is here. no. 6 is not."], config) == ["Number 5 is here. no. 6 is not."]

    def test_from_mapping_merges_legacy_keys(self):
        config = AbbreviationConfig.from_mapping({
            "Dr.": "Doctor",
            "case": {"No.": "Number"},
            "regex": [{"pattern": "a", "replace": "b", "case_sensitive": True}],
        })
        assert config.nocase == {"Dr.": "Doctor"}
        assert config.case == {"No.": "Number"}
        assert config.regex == [AbbreviationRule(pattern="a", replace="b", case_sensitive=True)]


class TestPlanPage:
    def test_dropped_sentence_maps_to_none(self):
        display = ["[1].", "Real sentence one.", "Real sentence two."]
        plan = TextNormalizer().plan_page(display)
        assert plan.audio_sentences == ["Real sentence one.", "Real sentence two."]
        assert plan.display_to_audio == [None, 0, 1]
        assert plan.audio_to_display == [1, 2]

    def test_too_short_sentence_is_dropped(self):
        plan = TextNormalizer().plan_page(["A", "Fine."])
        assert plan.display_to_audio == [None, 0]

    def test_long_sentence_is_chunked_onto_one_display_sentence(self):
        sentence = (
            "The Cat only grinned when it saw Alice, and it looked good-natured, "
            "she thought, but it still had very long claws and a great many teeth, "
            "so she felt that it ought to be treated with respect, and she began, "
            "rather timidly, as she did not at all know whether it would like the name."
        )
        plan = TextNormalizer().plan_page([sentence])
        assert len(plan.audio_sentences) > 1
        assert plan.audio_to_display == [0] * len(plan.audio_sentences)
        assert plan.display_to_audio == [0]
        for chunk in plan.audio_sentences:
            assert len(chunk) <= 180
            assert len(chunk.split()) <= 32

    def test_empty_page(self):
        plan = TextNormalizer().plan_page([])
        assert plan.audio_sentences == []
        assert plan.display_to_audio == []
        assert plan.audio_to_display == []

    def test_disabled_normalizer_is_identity(self):
        display = ["Mr. X¹.", "[1]."]
        plan = TextNormalizer(NormalizerConfig(enabled=False)).plan_page(display)
        assert plan.audio_sentences == display
        assert plan.display_to_audio == [0, 1]
        assert plan.audio_to_display == [0, 1]

    def test_page_and_sentence_modes_agree(self):
        display = ["Mr. Hale came in 1905.", "[2].", "He used SQL², oddly.", "“Fine,” he said."]
        page_plan = TextNormalizer().plan_page(display)
        sentence_plan = TextNormalizer(NormalizerConfig(mode=NormalizationMode.SENTENCE)).plan_page(display)
        assert page_plan == sentence_plan
        _assert_mapping_invariants(display, page_plan)

    def test_corrupted_marker_falls_back_to_sentence_mode(self):
        """A replacement that eats the sentence marker degrades to per-sentence cleanup."""
        display = ["First one here.", "Second one here."]
        config = NormalizerConfig(replacements={"<<": ""})
        plan = TextNormalizer(config).plan_page(display)
        assert plan.audio_sentences == display
        assert plan.display_to_audio == [0, 1]

    @pytest.mark.parametrize("display", [
        ["...", "Hello there.", "[3]", "`x`", "Another one, with a clause."],
        ["“”", "—", "Ok."],
        ["A long " + "word, " * 60 + "end.", "", "Tail."],
    ])
    def test_mapping_invariants(self, display):
        _assert_mapping_invariants(display, TextNormalizer().plan_page(display))


class TestLoad:
    def test_load_reads_normalization_table_and_sibling_abbreviations(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("LANTERNLEAF_ABBREVIATIONS_CONFIG_PATH", raising=False)
        conf = tmp_path / "settings"
        conf.mkdir()
        (conf / "normalizer.toml").write_text(
            '[normalization]\nmode = "sentence"\nunknown_key = 1\n'
            '[normalization.pronunciation]\nyear_mode = "none"\n',
            encoding="utf-8",
        )
        (conf / "abbreviations.toml").write_text(
            '[abbreviations]\n"Dr." = "Doctor"\n', encoding="utf-8"
        )
        normalizer = TextNormalizer.load(conf / "normalizer.toml")
        assert normalizer.config.mode == NormalizationMode.SENTENCE
        assert normalizer.config.abbreviations.nocase["Dr."] == "Doctor"
        assert normalizer.config.abbreviations.nocase["Mr."] == "Mister"
        assert normalizer.plan_page(["Dr. Who in 1984."]).audio_sentences == ["Doctor Who in 1984."]

    def test_invalid_file_falls_back_to_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "normalizer.toml"
        path.write_text("[normalization\nbroken", encoding="utf-8")
        normalizer = TextNormalizer.load(path)
        assert normalizer.config == NormalizerConfig()

    def test_bad_enum_falls_back_to_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "normalizer.toml"
        path.write_text('[normalization]\nmode = "paragraph"\n', encoding="utf-8")
        assert TextNormalizer.load(path).config.mode == NormalizationMode.PAGE

    def test_load_default_uses_env_var(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "custom.toml"
        path.write_text("[normalization]\nenabled = false\n", encoding="utf-8")
        monkeypatch.setenv("LANTERNLEAF_NORMALIZER_CONFIG_PATH", str(path))
        assert TextNormalizer.load_default().config.enabled is False


class TestYears:
    @pytest.mark.parametrize("year,words", [
        (1984, "nineteen eighty four"),
        (1905, "nineteen oh five"),
        (1900, "nineteen hundred"),
        (2000, "two thousand"),
        (2007, "two thousand seven"),
        (2024, "twenty twenty four"),
        (1010, "ten ten"),
    ])
    def test_year_to_words(self, year, words):
        assert year_to_words(year) == words
