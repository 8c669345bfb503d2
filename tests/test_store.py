"""Unit tests for the cache store."""

import json
from unittest.mock import patch

import pytest

from depcache.cache.errors import CacheIOError
from depcache.cache.store import CacheManifest, CacheStore


@pytest.fixture
def store(cache_root):
    """Create store over a not-yet-existing cache root."""
    return CacheStore(cache_root)


class TestManifest:
    """Test manifest persistence."""

    def test_missing_manifest_is_not_an_error(self, store):
        """Test first-ever build has no manifest."""
        assert store.load_manifest() is None

    def test_store_and_load(self, store):
        """Test directories and signature round-trip exactly."""
        manifest = CacheManifest(
            directories=["node_modules", ".cache/yarn"],
            signature="node=v8.1.0; npm=5.0.3",
        )
        store.store_manifest(manifest)

        loaded = store.load_manifest()
        assert loaded.directories == ["node_modules", ".cache/yarn"]
        assert loaded.signature == "node=v8.1.0; npm=5.0.3"
        assert loaded.saved_at is not None

    def test_overwrites_previous(self, store):
        """Test every store replaces the previous manifest."""
        store.store_manifest(CacheManifest(directories=["a", "b"], signature="one"))
        store.store_manifest(CacheManifest(directories=["a"], signature="two"))

        loaded = store.load_manifest()
        assert loaded.directories == ["a"]
        assert loaded.signature == "two"

    def test_no_temp_file_left(self, store):
        """Test the temporary file is renamed into place."""
        store.store_manifest(CacheManifest(directories=["a"], signature="s"))
        names = [p.name for p in store.cache_root.iterdir()]
        assert names == [".depcache_manifest.json"]

    def test_failed_write_keeps_previous_manifest(self, store):
        """Test a failed write never replaces the existing manifest."""
        store.store_manifest(CacheManifest(directories=["a"], signature="old"))

        with patch("depcache.cache.store.os.replace", side_effect=OSError("boom")):
            with pytest.raises(CacheIOError):
                store.store_manifest(CacheManifest(directories=["b"], signature="new"))

        assert store.load_manifest().signature == "old"
        assert not store.manifest_path.with_suffix(".json.tmp").exists()

    def test_corrupt_manifest_raises(self, store):
        """Test an unreadable manifest is an I/O error."""
        store.cache_root.mkdir(parents=True)
        store.manifest_path.write_text("{broken")
        with pytest.raises(CacheIOError):
            store.load_manifest()

    def test_manifest_missing_fields_raises(self, store):
        """Test a manifest without a signature is rejected."""
        store.cache_root.mkdir(parents=True)
        store.manifest_path.write_text(json.dumps({"directories": []}))
        with pytest.raises(CacheIOError):
            store.load_manifest()


class TestDirectories:
    """Test stored directory lookup, pruning and clearing."""

    def test_path_for(self, store):
        """Test stored paths live under the cache root."""
        path = store.path_for(".cache/yarn")
        assert path == store.cache_root / "directories" / ".cache" / "yarn"

    def test_has_directory(self, store, write_tree):
        assert store.has_directory("node_modules") is False
        write_tree(store.path_for("node_modules"), {"x": "1"})
        assert store.has_directory("node_modules") is True

    def test_prune_removes_unlisted(self, store, write_tree):
        """Test stored directories not in keep are removed."""
        for name in ("a", "b", "c"):
            write_tree(store.path_for(name), {"f": name})

        removed = store.prune(["a", "c"])

        assert removed == ["b"]
        assert store.has_directory("a")
        assert not store.has_directory("b")
        assert store.has_directory("c")

    def test_prune_keeps_nested_paths(self, store, write_tree):
        """Test ancestors of kept nested paths are walked, not removed."""
        write_tree(store.path_for(".cache/yarn"), {"f": "1"})
        write_tree(store.path_for(".cache/other"), {"f": "2"})

        removed = store.prune([".cache/yarn"])

        assert removed == [".cache/other"]
        assert store.has_directory(".cache/yarn")

    def test_prune_removes_leftover_staging(self, store, write_tree):
        """Test interrupted copies are cleaned up without being reported."""
        write_tree(store.path_for("a"), {"f": "1"})
        write_tree(store.path_for(".a.depcache-staging"), {"f": "partial"})

        assert store.prune(["a"]) == []
        assert not store.path_for(".a.depcache-staging").exists()

    def test_prune_empty_store(self, store):
        assert store.prune(["a"]) == []

    def test_remove_directory(self, store, write_tree):
        write_tree(store.path_for("a"), {"f": "1"})
        store.remove_directory("a")
        assert not store.has_directory("a")

    def test_clear_keeps_lock_dir(self, store, write_tree):
        """Test clear discards content and manifest but not locks."""
        write_tree(store.path_for("a"), {"f": "1"})
        store.store_manifest(CacheManifest(directories=["a"], signature="s"))
        store.lock_dir.mkdir(parents=True)

        store.clear()

        assert store.load_manifest() is None
        assert not store.has_directory("a")
        assert store.lock_dir.exists()

    def test_clear_missing_root(self, store):
        store.clear()
        assert not store.cache_root.exists()
