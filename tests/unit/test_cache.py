"""Tests for ContentCache - fingerprinting and persistence."""

import hashlib
import json
import logging

import pytest

from memsnap.cache import (
    CACHE_VERSION,
    ContentCache,
    fingerprint,
    load_cache,
    persist_cache,
)


def test_fingerprint_is_sha256_hex():
    """fingerprint is the SHA-256 hex digest of the bytes."""
    assert fingerprint(b"A") == hashlib.sha256(b"A").hexdigest()
    assert len(fingerprint(b"")) == 64


def test_fingerprint_is_deterministic():
    """Equal content always gives equal fingerprints."""
    data = bytes(range(256)) * 10
    assert fingerprint(data) == fingerprint(bytes(data))


def test_fingerprint_differs_for_different_content():
    """Different content gives different fingerprints."""
    assert fingerprint(b"A") != fingerprint(b"A2")
    assert fingerprint(b"") != fingerprint(b"\x00")


class TestContentCache:
    """Tests for the in-memory mapping."""

    def test_get_missing_returns_none(self):
        """Unknown virtual paths have no fingerprint."""
        assert ContentCache().get("/index.js") is None

    def test_set_upserts(self):
        """set inserts and then replaces."""
        cache = ContentCache()
        cache.set("/index.js", "h1")
        cache.set("/index.js", "h2")
        assert cache.get("/index.js") == "h2"
        assert len(cache) == 1

    def test_discard(self):
        """discard removes an entry and ignores unknown paths."""
        cache = ContentCache([("/a.js", "h")])
        cache.discard("/a.js")
        cache.discard("/never.js")
        assert "/a.js" not in cache

    def test_to_pairs_sorted(self):
        """to_pairs is sorted by virtual path."""
        cache = ContentCache([("/z.js", "1"), ("/a.js", "2")])
        assert cache.to_pairs() == [("/a.js", "2"), ("/z.js", "1")]

    def test_instances_are_isolated(self):
        """Two caches never share state."""
        first = ContentCache()
        second = ContentCache()
        first.set("/a.js", "h")
        assert "/a.js" not in second


class TestLoadCache:
    """Tests for load_cache recovery behavior."""

    def test_missing_file_gives_empty_cache(self, tmp_path):
        """A cache file that does not exist loads as empty."""
        assert len(load_cache(tmp_path / "writeCache.json")) == 0

    def test_invalid_json_gives_empty_cache(self, tmp_path, caplog):
        """Corrupt JSON is logged and treated as empty."""
        path = tmp_path / "writeCache.json"
        path.write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="memsnap.cache"):
            cache = load_cache(path)

        assert len(cache) == 0
        assert "rebuilding from scratch" in caplog.text

    def test_unversioned_pair_list_gives_empty_cache(self, tmp_path):
        """A bare pair list without a version header is not trusted."""
        path = tmp_path / "writeCache.json"
        path.write_text(json.dumps([["/index.js", fingerprint(b"A")]]))
        assert len(load_cache(path)) == 0

    def test_unknown_version_gives_empty_cache(self, tmp_path):
        """A cache from another schema version is ignored."""
        path = tmp_path / "writeCache.json"
        path.write_text(json.dumps({"version": CACHE_VERSION + 1, "algorithm": "sha256", "entries": []}))
        assert len(load_cache(path)) == 0

    def test_unknown_algorithm_gives_empty_cache(self, tmp_path):
        """Fingerprints from another algorithm are ignored."""
        path = tmp_path / "writeCache.json"
        path.write_text(json.dumps({"version": CACHE_VERSION, "algorithm": "md5", "entries": [["/a", "b"]]}))
        assert len(load_cache(path)) == 0

    def test_directory_in_place_of_file_gives_empty_cache(self, tmp_path):
        """An unreadable cache path is recovered as empty."""
        path = tmp_path / "writeCache.json"
        path.mkdir()
        assert len(load_cache(path)) == 0


class TestPersistCache:
    """Tests for persist_cache."""

    def test_persist_then_load(self, tmp_path):
        """Persisted entries load back unchanged."""
        path = tmp_path / "cache" / "writeCache.json"
        cache = ContentCache([("/index.js", fingerprint(b"A")), ("/mods/x.js", fingerprint(b"B"))])

        assert persist_cache(cache, path) is True
        assert load_cache(path) == cache

    def test_document_shape(self, tmp_path):
        """The file holds a version header and a sorted pair list."""
        path = tmp_path / "writeCache.json"
        persist_cache(ContentCache([("/b", "2"), ("/a", "1")]), path)

        data = json.loads(path.read_text())
        assert data["version"] == CACHE_VERSION
        assert data["algorithm"] == "sha256"
        assert data["entries"] == [["/a", "1"], ["/b", "2"]]

    def test_persist_failure_is_logged_not_raised(self, tmp_path, caplog):
        """An unwritable location returns False and logs."""
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        with caplog.at_level(logging.WARNING, logger="memsnap.cache"):
            ok = persist_cache(ContentCache([("/a", "1")]), blocker / "writeCache.json")

        assert ok is False
        assert "cannot persist write cache" in caplog.text

    def test_no_temp_files_left_behind(self, tmp_path):
        """Only the cache file remains after persisting."""
        persist_cache(ContentCache([("/a", "1")]), tmp_path / "writeCache.json")
        assert [p.name for p in tmp_path.iterdir()] == ["writeCache.json"]

    def test_artifact_digest_round_trip(self, tmp_path):
        """The fingerprint of the described artifact survives persistence."""
        path = tmp_path / "writeCache.json"
        persist_cache(ContentCache([("/a", "1")], artifact_digest=fingerprint(b"artifact")), path)

        assert json.loads(path.read_text())["artifact_digest"] == fingerprint(b"artifact")
        assert load_cache(path).artifact_digest == fingerprint(b"artifact")

    def test_artifact_digest_defaults_to_none(self, tmp_path):
        """A cache that describes no emitted artifact persists a null digest."""
        path = tmp_path / "writeCache.json"
        persist_cache(ContentCache([("/a", "1")]), path)
        assert load_cache(path).artifact_digest is None
