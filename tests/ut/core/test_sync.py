"""远端索引同步测试 - 增量优先，全量回退"""

from __future__ import annotations

import json

import pytest

from depot.core import wire
from depot.core.exceptions import RemoteSyncError, ValidationError
from depot.core.index import RepositoryIndex

REMOTE = "http://repo.example.com"


def _local(fetcher, spec_factory, *pairs: tuple[str, str], threshold: int = 1000) -> RepositoryIndex:
    return RepositoryIndex(
        (spec_factory(n, v) for n, v in pairs),
        fetcher=fetcher,
        bulk_threshold=threshold,
    )


class TestIncrementalSync:
    def test_removes_stale_and_adds_missing(self, fake_fetcher, spec_factory) -> None:
        x, y = spec_factory("x", "1.0"), spec_factory("y", "2.0", summary="remote copy")
        fake_fetcher.publish(REMOTE, [x, y])
        local_y = spec_factory("y", "2.0", summary="local copy")
        idx = RepositoryIndex([local_y, spec_factory("z", "3.0")], fetcher=fake_fetcher)

        assert idx.update(REMOTE) is idx
        assert sorted(idx.full_names()) == ["x-1.0", "y-2.0"]
        assert idx.specification("y-2.0").summary == "local copy"
        assert idx.sync_errors == {}
        assert fake_fetcher.requested("index.json") == []
        assert fake_fetcher.requested("quick/y-2.0") == []

    def test_compact_encoding_preferred(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        _local(fake_fetcher, spec_factory).update(REMOTE)
        assert fake_fetcher.requested("quick/x-1.0") == [f"{REMOTE}/quick/x-1.0.json.rz"]

    def test_text_encoding_fallback(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        fake_fetcher.drop(REMOTE, "quick/x-1.0.json.rz")
        idx = _local(fake_fetcher, spec_factory).update(REMOTE)
        assert idx.full_names() == ["x-1.0"]
        assert fake_fetcher.requested("quick/x-1.0") == [
            f"{REMOTE}/quick/x-1.0.json.rz",
            f"{REMOTE}/quick/x-1.0.yml.rz",
        ]

    def test_per_entry_failure_is_recorded(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0"), spec_factory("w", "1.0")])
        fake_fetcher.drop(REMOTE, "quick/w-1.0.json.rz")
        fake_fetcher.put(REMOTE, "quick/w-1.0.yml.rz", b"garbage")

        idx = _local(fake_fetcher, spec_factory).update(REMOTE)
        assert idx.full_names() == ["x-1.0"]
        assert list(idx.sync_errors) == ["w-1.0"]
        assert fake_fetcher.requested("index.json") == []

    def test_malformed_dependencies_entry_is_recorded(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0"), spec_factory("w", "1.0")])
        bad = {"name": "w", "version": "1.0", "dependencies": True}
        fake_fetcher.put(REMOTE, "quick/w-1.0.json.rz", wire.deflate(json.dumps(bad).encode()))
        fake_fetcher.drop(REMOTE, "quick/w-1.0.yml.rz")

        idx = _local(fake_fetcher, spec_factory).update(REMOTE)
        assert idx.full_names() == ["x-1.0"]
        assert list(idx.sync_errors) == ["w-1.0"]

    def test_missing_at_threshold_stays_incremental(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0"), spec_factory("y", "1.0")])
        _local(fake_fetcher, spec_factory, threshold=2).update(REMOTE)
        assert fake_fetcher.requested("index.json") == []


class TestBulkSync:
    def test_too_many_missing_uses_bulk(self, fake_fetcher, spec_factory) -> None:
        x, y = spec_factory("x", "1.0"), spec_factory("y", "2.0", summary="remote copy")
        fake_fetcher.publish(REMOTE, [x, y])
        idx = RepositoryIndex(
            [spec_factory("y", "2.0", summary="local copy"), spec_factory("z", "3.0")],
            fetcher=fake_fetcher,
            bulk_threshold=0,
        )
        idx.update(REMOTE)
        assert sorted(idx.full_names()) == ["x-1.0", "y-2.0"]
        # 全量替换: y 来自远端快照
        assert idx.specification("y-2.0").summary == "remote copy"
        assert fake_fetcher.requested("index.json.Z") == [f"{REMOTE}/index.json.Z"]
        assert fake_fetcher.requested("quick/x-1.0") == []

    def test_quick_index_missing_falls_back_to_bulk(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        fake_fetcher.drop(REMOTE, wire.QUICK_INDEX_PATH)
        idx = _local(fake_fetcher, spec_factory, ("z", "3.0")).update(REMOTE)
        assert idx.full_names() == ["x-1.0"]

    def test_bulk_encodings_in_priority_order(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        fake_fetcher.drop(REMOTE, wire.QUICK_INDEX_PATH)
        for path in ("index.json.Z", "index.json", "index.yml.Z"):
            fake_fetcher.drop(REMOTE, path)

        idx = _local(fake_fetcher, spec_factory).update(REMOTE)
        assert idx.full_names() == ["x-1.0"]
        assert [u for u in fake_fetcher.requests if "quick/" not in u] == [
            f"{REMOTE}/index.json.Z",
            f"{REMOTE}/index.json",
            f"{REMOTE}/index.yml.Z",
            f"{REMOTE}/index.yml",
        ]

    def test_corrupt_bulk_falls_through(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        fake_fetcher.drop(REMOTE, wire.QUICK_INDEX_PATH)
        fake_fetcher.put(REMOTE, "index.json.Z", b"not zlib")
        assert _local(fake_fetcher, spec_factory).update(REMOTE).full_names() == ["x-1.0"]

    def test_malformed_bulk_entry_falls_through(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        fake_fetcher.drop(REMOTE, wire.QUICK_INDEX_PATH)
        bad = [{"name": "x", "version": "1.0", "dependencies": 5}]
        fake_fetcher.put(REMOTE, "index.json.Z", wire.deflate(json.dumps(bad).encode()))
        assert _local(fake_fetcher, spec_factory).update(REMOTE).full_names() == ["x-1.0"]
        assert fake_fetcher.requested("index.json")[-1] == f"{REMOTE}/index.json"

    def test_quick_index_not_utf8_falls_back_to_bulk(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.publish(REMOTE, [spec_factory("x", "1.0")])
        fake_fetcher.put(REMOTE, wire.QUICK_INDEX_PATH, wire.deflate(b"x-1.0\n\xff\xfe-1.0"))
        idx = _local(fake_fetcher, spec_factory, ("x", "1.0")).update(REMOTE)
        assert idx.full_names() == ["x-1.0"]
        assert fake_fetcher.requested("index.json.Z") == [f"{REMOTE}/index.json.Z"]

    def test_all_encodings_fail(self, fake_fetcher, spec_factory) -> None:
        idx = _local(fake_fetcher, spec_factory, ("z", "3.0"))
        with pytest.raises(RemoteSyncError, match="拉取远端索引失败"):
            idx.update(REMOTE)
        # 同步失败时本地索引保持原状
        assert idx.full_names() == ["z-3.0"]

    def test_failed_bulk_after_quick_index_keeps_state(self, fake_fetcher, spec_factory) -> None:
        fake_fetcher.put(REMOTE, wire.QUICK_INDEX_PATH, wire.encode_quick_index(["x-1.0"]))
        idx = _local(fake_fetcher, spec_factory, ("z", "3.0"), threshold=0)
        with pytest.raises(RemoteSyncError):
            idx.update(REMOTE)
        assert idx.full_names() == ["z-3.0"]


def test_update_requires_fetcher(spec_factory) -> None:
    with pytest.raises(ValidationError, match="未配置 fetcher"):
        RepositoryIndex([spec_factory("a", "1")]).update(REMOTE)
