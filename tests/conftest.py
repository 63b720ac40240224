"""共享测试工具: 内存传输层与包描述 / 归档构造"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from depot.core import wire
from depot.core.archive import build_archive
from depot.core.exceptions import NotFoundError
from depot.core.layout import archive_name
from depot.core.models import PackageSpec
from depot.core.platform import normalize
from depot.core.version import Version, parse_dependencies
from depot.utils.net import join_url


class FakeFetcher:
    """按 URI 返回预置字节的传输层，记录所有请求"""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = dict(files or {})
        self.requests: list[str] = []

    def fetch(self, uri: str) -> bytes:
        self.requests.append(uri)
        if uri not in self.files:
            raise NotFoundError(f"远端不存在: {uri}")
        return self.files[uri]

    def publish(self, base: str, specs: Iterable[PackageSpec]) -> None:
        for rel, data in wire.publish(specs).items():
            self.files[join_url(base, rel)] = data

    def put(self, base: str, rel: str, data: bytes) -> None:
        self.files[join_url(base, rel)] = data

    def drop(self, base: str, rel: str) -> None:
        self.files.pop(join_url(base, rel), None)

    def requested(self, fragment: str) -> list[str]:
        return [u for u in self.requests if fragment in u]


def make_spec(
    name: str,
    version: str,
    deps: Any = None,
    platform: str | None = None,
    files: Iterable[str] = (),
    summary: str = "",
) -> PackageSpec:
    return PackageSpec(
        name=name,
        version=Version.parse(version),
        platform=normalize(platform),
        summary=summary,
        dependencies=parse_dependencies(deps),
        files=tuple(files),
    )


def default_files(spec: PackageSpec) -> dict[str, bytes]:
    return {f"lib/{spec.name}.py": f"# {spec.full_name}\n".encode()}


def write_archive(
    directory: Path, spec: PackageSpec, files: dict[str, Any] | None = None,
) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / archive_name(spec.full_name)
    path.write_bytes(build_archive(spec, files if files is not None else default_files(spec)))
    return path


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def spec_factory() -> Callable[..., PackageSpec]:
    return make_spec


@pytest.fixture
def archive_factory() -> Callable[..., Path]:
    return write_archive


@pytest.fixture
def archive_bytes() -> Callable[..., bytes]:
    def _build(spec: PackageSpec, files: dict[str, Any] | None = None) -> bytes:
        return build_archive(spec, files if files is not None else default_files(spec))
    return _build
