"""依赖解析与安装编排

一次解析请求的流程:
  1. find_candidates: 从本地工作目录的归档和远端索引中收集满足约束的候选，
     按 (版本, 来源) 升序排列，本地优先，最优候选在最后
  2. resolve: 选出根候选，广度优先展开依赖，交给 DependencyGraph 排序
  3. install_plan: 按顺序下载并交给安装器

注意: 展开依赖时会把每个依赖的 *全部* 未见过且平台兼容的候选加入工作集，
而不仅是最优的一个，所以同一个包名的多个版本可能同时进入安装计划。
"""

from __future__ import annotations

import logging
import shutil
from collections import deque
from collections.abc import Iterable, Mapping
from pathlib import Path

from depot.core import wire
from depot.core.archive import read_spec
from depot.core.exceptions import (
    ArchiveError,
    FetchError,
    InstallConflictError,
    PackageNotFoundError,
    UnsupportedSourceError,
    ValidationError,
)
from depot.core.graph import DependencyGraph
from depot.core.index import RepositoryIndex
from depot.core.layout import ARCHIVE_EXT, Layout, archive_name
from depot.core.models import InstallPlan, PackageSource, PackageSpec
from depot.core.platform import is_compatible, runtime_platforms
from depot.core.protocols import Fetcher, PackageInstaller
from depot.core.transport import HttpFetcher
from depot.core.version import Dependency, Requirement
from depot.utils.net import is_remote, join_url, local_path_of, url_scheme
from depot.utils.yaml_io import atomic_write_bytes

logger = logging.getLogger(__name__)

LOCAL_DOMAIN = "local"
REMOTE_DOMAIN = "remote"
BOTH_DOMAIN = "both"

Candidate = tuple[PackageSpec, PackageSource]


class Resolver:
    """一次解析 / 安装请求的状态"""

    def __init__(
        self,
        home: str | Path,
        *,
        domain: str = BOTH_DOMAIN,
        work_dir: str | Path = ".",
        remotes: Mapping[str, RepositoryIndex] | None = None,
        platforms: Iterable[str] | None = None,
        installed: RepositoryIndex | None = None,
        fetcher: Fetcher | None = None,
        installer: PackageInstaller | None = None,
    ) -> None:
        if domain not in (LOCAL_DOMAIN, REMOTE_DOMAIN, BOTH_DOMAIN):
            raise ValidationError(f"无效的 domain: {domain}")
        self.layout = Layout(home)
        self.domain = domain
        self.work_dir = Path(work_dir)
        self.remotes = dict(remotes or {})
        self.platforms = runtime_platforms(platforms)
        self.installed = installed if installed is not None else RepositoryIndex()
        self.fetcher = fetcher or HttpFetcher()
        self.installer = installer

    # ------------------------------------------------------------------
    # 候选
    # ------------------------------------------------------------------

    def _local_candidates(self, dep: Dependency) -> list[Candidate]:
        found = []
        for path in sorted(self.work_dir.glob(f"{dep.name}-[0-9]*{ARCHIVE_EXT}")):
            try:
                spec = read_spec(path.read_bytes(), loaded_from=str(path))
            except (ArchiveError, OSError) as e:
                logger.warning("跳过无法读取的归档 %s: %s", path, e)
                continue
            if dep.matches(spec.name, spec.version):
                found.append((spec, PackageSource.local(path)))
        return found

    def _remote_candidates(self, dep: Dependency) -> list[Candidate]:
        found = []
        for uri, index in self.remotes.items():
            found.extend((spec, PackageSource.remote(uri)) for spec in index.search(dep))
        return found

    def find_candidates(self, dep: Dependency) -> list[Candidate]:
        """满足 dep 的全部候选，按 (版本, 本地优先) 升序，最优在最后"""
        candidates: list[Candidate] = []
        if self.domain in (LOCAL_DOMAIN, BOTH_DOMAIN):
            candidates.extend(self._local_candidates(dep))
        if self.domain in (REMOTE_DOMAIN, BOTH_DOMAIN):
            candidates.extend(self._remote_candidates(dep))
        return sorted(candidates, key=lambda c: (c[0].version, c[1].rank))

    def _installable(self, candidates: list[Candidate]) -> list[Candidate]:
        return [c for c in candidates if is_compatible(c[0].platform, self.platforms)]

    # ------------------------------------------------------------------
    # 解析
    # ------------------------------------------------------------------

    def _root_candidate(self, root_name: str, requirement: Requirement) -> Candidate:
        path = Path(root_name)
        if root_name.endswith(ARCHIVE_EXT) and path.is_file():
            return read_spec(path.read_bytes(), loaded_from=str(path)), PackageSource.local(path)

        dep = Dependency(root_name, requirement)
        candidates = self._installable(self.find_candidates(dep))
        if not candidates:
            where = {
                LOCAL_DOMAIN: "本地",
                REMOTE_DOMAIN: "远端仓库",
                BOTH_DOMAIN: "本地或远端仓库",
            }[self.domain]
            raise PackageNotFoundError(f"在{where}中找不到 {dep}", requirement=requirement)
        return candidates[-1]

    def resolve(
        self,
        root_name: str,
        root_requirement: Requirement | str | None = None,
        ignore_dependencies: bool = False,
    ) -> InstallPlan:
        """计算根请求的安装计划

        Raises:
            PackageNotFoundError: 没有满足根约束的候选
            InstallConflictError: 某个依赖在工作集和已安装包中都无法满足
        """
        requirement = Requirement.create(root_requirement)
        root_spec, root_source = self._root_candidate(root_name, requirement)
        logger.info("选中: %s (%s)", root_spec.full_name, root_source.locator)

        if ignore_dependencies:
            plan = InstallPlan()
            plan.append(root_spec, root_source)
            return plan

        selected: dict[str, Candidate] = {root_spec.full_name: (root_spec, root_source)}
        queue = deque([root_spec])
        while queue:
            spec = queue.popleft()
            for dep in spec.dependencies:
                for cand in reversed(self._installable(self.find_candidates(dep))):
                    if cand[0].full_name in selected:
                        continue
                    selected[cand[0].full_name] = cand
                    queue.append(cand[0])

        graph = DependencyGraph(spec for spec, _ in selected.values())
        if not graph.ok():
            for spec, dep in graph.unmet_dependencies():
                if not self.installed.search(dep):
                    raise InstallConflictError(f"{spec.full_name} requires {dep}")

        plan = InstallPlan()
        for spec in graph.dependency_order():
            plan.append(spec, selected[spec.full_name][1])
        logger.info("安装计划: %s", ", ".join(plan.full_names))
        return plan

    # ------------------------------------------------------------------
    # 下载与安装
    # ------------------------------------------------------------------

    def download(
        self, spec: PackageSpec, source: PackageSource, dest_dir: str | Path | None = None,
    ) -> Path:
        """把候选归档放进缓存目录，返回本地路径

        本地来源复制到缓存，没有写权限时直接使用原路径；
        http/https 来源在缓存未命中时拉取 <uri>/gems/<full_name>.pkg。
        """
        cache_dir = Path(dest_dir) if dest_dir is not None else self.layout.cache_dir
        cached = cache_dir / archive_name(spec.full_name)
        scheme = url_scheme(source.locator)

        if scheme in ("", "file"):
            origin = Path(local_path_of(source.locator))
            if not origin.is_file():
                raise FetchError(f"本地归档不存在: {origin}")
            if cached.exists() and cached.resolve() == origin.resolve():
                return cached
            try:
                cache_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(origin, cached)
            except PermissionError as e:
                logger.warning("无法写入缓存 %s，直接使用原路径: %s", cache_dir, e)
                return origin
            return cached

        if is_remote(source.locator):
            if cached.is_file():
                logger.info("缓存命中: %s", cached)
                return cached
            uri = join_url(source.locator, wire.archive_path(spec.full_name))
            logger.info("下载: %s", uri)
            atomic_write_bytes(cached, self.fetcher.fetch(uri))
            return cached

        raise UnsupportedSourceError(f"不支持的来源协议 '{scheme}': {source.locator}")

    def install_plan(
        self, plan: InstallPlan, already_installed: Iterable[str] | None = None,
    ) -> list[PackageSpec]:
        """按顺序安装；已安装的条目跳过，最后一项（显式请求的包）总是安装

        任何一项失败都会中止后续条目，已安装的不回滚。
        """
        if self.installer is None:
            raise ValidationError("Resolver 未配置安装器")
        names = set(already_installed) if already_installed is not None \
            else set(self.installed.full_names())
        last = plan.last

        installed: list[PackageSpec] = []
        for spec, source in plan:
            if spec.full_name in names and spec.full_name != last.full_name:
                logger.info("已安装，跳过: %s", spec.full_name)
                continue
            path = self.download(spec, source)
            installed.append(self.installer.install(path))
            names.add(spec.full_name)
        return installed

    def fetch_plan(self, plan: InstallPlan, target_dir: str | Path) -> list[Path]:
        """只下载不安装，归档放到 target_dir"""
        target = Path(target_dir)
        return [self.download(spec, source, dest_dir=target) for spec, source in plan]
