"""Tests for bookmark persistence."""

import hashlib
import json

from lanternleaf.bookmarks import bookmark_path, load_bookmark, save_bookmark
from lanternleaf.models import Bookmark


class TestBookmarks:
    def test_round_trip(self, tmp_path):
        bookmark = Bookmark(page=3, sentence_idx=2, sentence_text="Hello there.", scroll_y=10.5)
        save_bookmark("/books/a.txt", bookmark, tmp_path)
        assert load_bookmark("/books/a.txt", tmp_path) == bookmark

    def test_path_is_hashed_per_source(self, tmp_path):
        digest = hashlib.sha256("/books/a.txt".encode("utf-8")).hexdigest()
        assert bookmark_path("/books/a.txt", tmp_path) == tmp_path / digest / "bookmark.json"

    def test_missing_bookmark(self, tmp_path):
        assert load_bookmark("/books/none.txt", tmp_path) is None

    def test_corrupt_bookmark(self, tmp_path):
        path = bookmark_path("/books/a.txt", tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        assert load_bookmark("/books/a.txt", tmp_path) is None

    def test_bookmark_without_page_is_ignored(self, tmp_path):
        path = bookmark_path("/books/a.txt", tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"sentence_idx": 1}), encoding="utf-8")
        assert load_bookmark("/books/a.txt", tmp_path) is None

    def test_optional_fields_default(self, tmp_path):
        path = bookmark_path("/books/a.txt", tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"page": 4}), encoding="utf-8")
        assert load_bookmark("/books/a.txt", tmp_path) == Bookmark(page=4)

    def test_save_failure_is_not_raised(self, tmp_path):
        """A cache dir that cannot be written only logs an error."""
        blocker = tmp_path / "cache"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        save_bookmark("/books/a.txt", Bookmark(page=1), blocker)
        assert load_bookmark("/books/a.txt", blocker) is None

    def test_env_var_sets_default_cache_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LANTERNLEAF_CACHE_DIR", str(tmp_path))
        save_bookmark("/books/b.txt", Bookmark(page=2))
        assert bookmark_path("/books/b.txt").parent.parent == tmp_path
        assert load_bookmark("/books/b.txt") == Bookmark(page=2)
