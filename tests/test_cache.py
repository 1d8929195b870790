"""Tests for skillsync.cache module."""

import json

import pytest

from conftest import make_descriptor
from skillsync.cache import CATALOG_KEY, SkillCache, VersionedStore, snapshot_filename


class TestVersionedStore:
    """Tests for VersionedStore."""

    def test_empty(self):
        store = VersionedStore()
        assert store.get("k") is None
        assert "k" not in store
        assert store.version("k") == 0

    def test_replace_bumps_version(self):
        store = VersionedStore()
        assert store.replace("k", 1) == 1
        assert store.replace("k", 2) == 2
        assert store.get("k") == 2
        assert store.version("other") == 0

    def test_invalidate(self):
        store = VersionedStore()
        store.replace("k", 1)
        assert store.invalidate("k") == 2
        assert "k" not in store

    def test_snapshot_is_read_only_and_stable(self):
        """Test a held snapshot does not change on later writes."""
        store = VersionedStore()
        store.replace("a", 1)
        snapshot = store.snapshot()
        store.replace("a", 2)
        assert snapshot["a"] == 1
        with pytest.raises(TypeError):
            snapshot["a"] = 3


class TestSkillCache:
    """Tests for the in-memory catalog."""

    def test_empty(self, cache):
        assert cache.is_empty()
        assert cache.entries() == []
        assert cache.get("x") is None

    def test_replace_all(self, cache, store):
        a = make_descriptor("acme-skills", "pdf")
        b = make_descriptor("other-repo", "pdf")
        version = cache.replace_all([a, b])
        assert version == store.version(CATALOG_KEY)
        assert cache.entries() == [a, b]
        assert cache.get(a.id) == a
        assert len(cache) == 2

    def test_same_folder_in_two_repositories(self, cache):
        """Test ids are qualified so same-named folders do not collide."""
        a = make_descriptor("acme-skills", "pdf")
        b = make_descriptor("other-repo", "pdf")
        cache.replace_all([a, b])
        assert a.id != b.id
        assert len(cache) == 2

    def test_duplicate_ids_keep_first(self, cache):
        first = make_descriptor(name="first")
        second = make_descriptor(name="second")
        cache.replace_all([first, second])
        assert cache.entries() == [first]

    def test_entries_idempotent(self, cache):
        cache.replace_all([make_descriptor()])
        assert cache.entries() == cache.entries()

    def test_contribution(self, cache):
        a = make_descriptor("acme-skills", "pdf")
        b = make_descriptor("acme-skills", "docx")
        c = make_descriptor("other-repo", "pdf")
        cache.replace_all([a, b, c])
        assert cache.contribution("acme-skills") == [a, b]

    def test_clear(self, cache):
        cache.replace_all([make_descriptor()])
        cache.save_snapshot("acme-skills", [make_descriptor()])
        cache.clear()
        assert cache.is_empty()
        assert cache.load_snapshot("acme-skills") is None


class TestSnapshots:
    """Tests for on-disk snapshots."""

    def test_filename_is_safe(self):
        assert snapshot_filename("a/b:c") == "a_b_c.json"

    def test_save_and_load(self, cache):
        descriptors = [make_descriptor(path="pdf"), make_descriptor(path="docx")]
        path = cache.save_snapshot("acme-skills", descriptors)
        assert json.loads(path.read_text())["reference"] == "acme-skills"
        assert cache.load_snapshot("acme-skills") == descriptors

    def test_missing_snapshot(self, cache):
        assert cache.load_snapshot("nope") is None

    def test_corrupt_snapshot_ignored(self, cache):
        cache.snapshot_dir.mkdir(parents=True)
        cache.snapshot_path("acme-skills").write_text("{not json")
        assert cache.load_snapshot("acme-skills") is None

    def test_clear_snapshot(self, cache):
        cache.save_snapshot("acme-skills", [])
        assert cache.clear_snapshot("acme-skills") is True
        assert cache.clear_snapshot("acme-skills") is False

    def test_clear_snapshots(self, cache):
        assert cache.clear_snapshots() == 0
        cache.save_snapshot("a", [])
        cache.save_snapshot("b", [])
        assert cache.clear_snapshots() == 2

    def test_shared_store(self, store, tmp_path):
        """Test two caches on one store see the same catalog."""
        first = SkillCache(store, tmp_path / "one")
        second = SkillCache(store, tmp_path / "two")
        first.replace_all([make_descriptor()])
        assert len(second) == 1
