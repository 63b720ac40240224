"""包描述索引

RepositoryIndex 把 full_name 映射到 PackageSpec，是某一时刻的只读视图:
每次操作新建（扫描本地目录或从远端同步），用完即弃。

远端同步（update）采用 "增量优先，全量回退":
  1. 拉取快速索引；失败则直接走全量
  2. 删除快速索引中已不存在的本地条目
  3. 缺失条目数 <= bulk_threshold 时逐个拉取（紧凑编码优先，文本编码其次），
     单条失败只记录不中断
  4. 否则拉取全量索引（4 种编码按优先级尝试），整体替换本地索引

同步在工作副本上进行，只有成功时才提交；RemoteSyncError 不会改动现有条目。
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from depot.core import wire
from depot.core.exceptions import DepotError, RemoteSyncError, ValidationError
from depot.core.layout import Layout
from depot.core.models import PackageSpec
from depot.core.protocols import Fetcher
from depot.core.spec_loader import scan_specifications
from depot.core.version import Dependency, Requirement
from depot.utils.net import join_url
from depot.utils.yaml_io import dump_yaml

logger = logging.getLogger(__name__)

DEFAULT_BULK_THRESHOLD = 1000
MATCH_ALL = re.compile("")


class RepositoryIndex:
    """full_name → PackageSpec 的索引"""

    def __init__(
        self,
        specs: Iterable[PackageSpec] | None = None,
        *,
        fetcher: Fetcher | None = None,
        bulk_threshold: int = DEFAULT_BULK_THRESHOLD,
        allow_code: bool = False,
    ) -> None:
        self._specs: dict[str, PackageSpec] = {}
        for spec in specs or ():
            self.add_spec(spec)
        self.fetcher = fetcher
        self.bulk_threshold = bulk_threshold
        self.allow_code = allow_code
        # 最近一次增量同步中失败的条目: {full_name: 错误信息}
        self.sync_errors: dict[str, str] = {}

    # ------------------------------------------------------------------
    # 构造
    # ------------------------------------------------------------------

    @classmethod
    def from_directories(
        cls, directories: str | Path | Iterable[str | Path], **kwargs: Any,
    ) -> RepositoryIndex:
        return cls(**kwargs).load_from_directory(directories)

    @classmethod
    def from_installed(cls, root: str | Path, **kwargs: Any) -> RepositoryIndex:
        """加载安装根目录下 specifications/ 中的全部包描述"""
        return cls.from_directories([Layout(root).spec_dir], **kwargs)

    def load_from_directory(
        self, directories: str | Path | Iterable[str | Path],
    ) -> RepositoryIndex:
        """扫描目录重建索引；无法解析的文件告警后跳过"""
        if isinstance(directories, (str, Path)):
            directories = [directories]
        self._specs.clear()
        for spec in scan_specifications(directories, allow_code=self.allow_code):
            self.add_spec(spec)
        logger.info("已加载 %d 个包描述", len(self._specs))
        return self

    # ------------------------------------------------------------------
    # 基本操作
    # ------------------------------------------------------------------

    def add_spec(self, spec: PackageSpec) -> None:
        self._specs[spec.full_name] = spec

    def remove_spec(self, full_name: str) -> PackageSpec | None:
        return self._specs.pop(full_name, None)

    def specification(self, full_name: str) -> PackageSpec | None:
        return self._specs.get(full_name)

    def full_names(self) -> list[str]:
        return list(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[PackageSpec]:
        return iter(list(self._specs.values()))

    def __contains__(self, item: object) -> bool:
        if isinstance(item, PackageSpec):
            item = item.full_name
        return item in self._specs

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositoryIndex):
            return NotImplemented
        return self._specs.keys() == other._specs.keys()

    __hash__ = None  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def search(
        self,
        name_pattern: str | re.Pattern[str] | Dependency,
        requirement: Requirement | str | None = None,
    ) -> list[PackageSpec]:
        """按包名和版本约束查找，结果按版本升序（同版本按 full_name）

        name_pattern:
            str        精确匹配包名
            re.Pattern 对包名做 search
            Dependency 使用其包名和约束（忽略 requirement 参数）
        """
        if isinstance(name_pattern, Dependency):
            req = name_pattern.requirement
            name = name_pattern.name
            matcher = lambda n: n == name  # noqa: E731
        else:
            req = Requirement.create(requirement)
            if isinstance(name_pattern, re.Pattern):
                matcher = lambda n: name_pattern.search(n) is not None  # noqa: E731
            else:
                matcher = lambda n: n == name_pattern  # noqa: E731

        found = [
            s for s in self._specs.values()
            if matcher(s.name) and req.satisfied_by(s.version)
        ]
        return sorted(found, key=PackageSpec.sort_key)

    def find_name(
        self, name: str, requirement: Requirement | str | None = None,
    ) -> list[PackageSpec]:
        return self.search(name, requirement)

    def latest_per_name(self) -> dict[str, PackageSpec]:
        """每个包名的最高版本"""
        latest: dict[str, PackageSpec] = {}
        for spec in self._specs.values():
            current = latest.get(spec.name)
            if current is None or spec.version > current.version:
                latest[spec.name] = spec
        return latest

    def dependents_of(self, spec: PackageSpec) -> list[tuple[PackageSpec, Dependency]]:
        """反向依赖: 声明了可被 spec 满足的依赖的包"""
        result = []
        for other in sorted(self._specs.values(), key=PackageSpec.sort_key):
            for dep in other.dependencies:
                if dep.matches(spec.name, spec.version):
                    result.append((other, dep))
        return result

    def signature(self) -> str:
        """内容指纹，用于判断两个快照是否不同（不用于安全目的）"""
        return hashlib.sha256(",".join(sorted(self._specs)).encode("utf-8")).hexdigest()

    def spec_signature(self, full_name: str) -> str:
        spec = self._specs.get(full_name)
        if spec is None:
            raise KeyError(full_name)
        return hashlib.sha256(dump_yaml(spec.to_dict()).encode("utf-8")).hexdigest()

    def outdated(self, remote: RepositoryIndex) -> list[str]:
        """本地最新版本低于远端最高版本的包名"""
        remote_specs = remote.search(MATCH_ALL)
        result = []
        for name, local in sorted(self.latest_per_name().items()):
            versions = [s.version for s in remote_specs if s.name == name]
            if versions and max(versions) > local.version:
                result.append(name)
        return result

    # ------------------------------------------------------------------
    # 远端同步
    # ------------------------------------------------------------------

    def update(self, remote_uri: str) -> RepositoryIndex:
        """与远端仓库同步，原地修改并返回自身

        Raises:
            RemoteSyncError: 需要全量同步且 4 种编码全部失败
        """
        if self.fetcher is None:
            raise ValidationError("RepositoryIndex 未配置 fetcher，无法同步")

        self.sync_errors = {}
        working = dict(self._specs)
        missing: list[str] = []
        use_incremental = False

        try:
            published = self._fetch_quick_index(remote_uri)
        except DepotError as e:
            logger.info("快速索引不可用，回退全量拉取 (%s): %s", remote_uri, e)
        else:
            keep = set(published)
            for full_name in [k for k in working if k not in keep]:
                del working[full_name]
            missing = [n for n in published if n not in working]
            if missing:
                logger.info("缺失 %d 个包描述: %s", len(missing), remote_uri)
            use_incremental = len(missing) <= self.bulk_threshold

        if use_incremental:
            self._update_with_missing(remote_uri, missing, working)
            self._specs = working
        else:
            specs = self._fetch_bulk_index(remote_uri)
            self._specs = {s.full_name: s for s in specs}
        return self

    def _fetch_quick_index(self, remote_uri: str) -> list[str]:
        data = self.fetcher.fetch(join_url(remote_uri, wire.QUICK_INDEX_PATH))
        return wire.decode_quick_index(data)

    def _fetch_single_spec(self, remote_uri: str, full_name: str) -> PackageSpec:
        last_error: DepotError | None = None
        for encoding in wire.SINGLE_SPEC_ENCODINGS:
            uri = join_url(remote_uri, wire.quick_spec_path(full_name, encoding))
            try:
                return wire.decode_spec(self.fetcher.fetch(uri), encoding)
            except DepotError as e:
                last_error = e
        assert last_error is not None
        raise last_error

    def _update_with_missing(
        self, remote_uri: str, missing: list[str], working: dict[str, PackageSpec],
    ) -> None:
        added = 0
        for full_name in missing:
            try:
                spec = self._fetch_single_spec(remote_uri, full_name)
            except DepotError as e:
                logger.warning("下载包描述失败 %s (%s): %s", full_name, remote_uri, e)
                self.sync_errors[full_name] = str(e)
                continue
            working[spec.full_name] = spec
            added += 1
        logger.info("增量更新完成: %s 新增 %d, 失败 %d", remote_uri, added, len(self.sync_errors))

    def _fetch_bulk_index(self, remote_uri: str) -> list[PackageSpec]:
        logger.info("全量更新索引: %s", remote_uri)
        errors: list[str] = []
        for path, encoding, compressed in wire.BULK_ENCODINGS:
            uri = join_url(remote_uri, path)
            try:
                return wire.decode_bulk(self.fetcher.fetch(uri), encoding, compressed)
            except DepotError as e:
                logger.debug("无法拉取 %s: %s", uri, e)
                errors.append(f"{path}: {e}")
        raise RemoteSyncError(
            f"拉取远端索引失败 {remote_uri}: " + "; ".join(errors)
        )
