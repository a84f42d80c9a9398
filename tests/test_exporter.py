"""Tests for the audio unit exporter."""

import json
from unittest.mock import MagicMock

from lanternleaf.exporter import AudioExporter
from lanternleaf.models import ReaderSettings
from lanternleaf.session import ReaderSession
from lanternleaf.text.segmenter import SentenceSegmenter


def _two_page_session() -> ReaderSession:
    first = "[1]. " + " ".join(["alpha"] * 105) + "."
    second = "Closing words here."
    return ReaderSession(
        f"{first} {second}",
        ReaderSettings(lines_per_page=8),
        segmenter=SentenceSegmenter(max_chars=700, max_words=200),
    )


class TestAudioExporter:
    def test_writes_json_lines_in_reading_order(self, tmp_path):
        session = _two_page_session()
        assert len(session.pages) == 2
        out = tmp_path / "out" / "units.jsonl"

        count = AudioExporter(session).export(out)

        records = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
        assert count == len(records)
        assert all(r["page"] == 0 and r["display_idx"] == 1 for r in records[:-1])
        assert [r["audio_idx"] for r in records[:-1]] == list(range(len(records) - 1))
        assert records[-1] == {"page": 1, "audio_idx": 0, "display_idx": 0, "text": "Closing words here."}
        assert list(out.parent.iterdir()) == [out]

    def test_reports_progress_per_page(self, tmp_path):
        session = _two_page_session()
        on_progress = MagicMock()
        count = AudioExporter(session).export(tmp_path / "units.jsonl", on_progress=on_progress)
        calls = [c.args for c in on_progress.call_args_list]
        assert [c[:2] for c in calls] == [(1, 2), (2, 2)]
        assert sum(c[2] for c in calls) == count

    def test_does_not_move_the_reader(self, tmp_path):
        session = _two_page_session()
        session.apply_command("next_page")
        before = session.snapshot()
        AudioExporter(session).export(tmp_path / "units.jsonl")
        assert session.snapshot() == before
