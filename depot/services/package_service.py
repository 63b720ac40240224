"""包服务 - 按顶层操作组装配置、传输层、索引、解析器、安装器和校验器

每个操作都新建所需的索引，用完即弃；远端索引在
<home>/source_cache/ 下保留一份快照，下次同步时走增量协议。
"""

from __future__ import annotations

import logging
import re
import stat
from pathlib import Path
from typing import Any

from depot.core import wire
from depot.core.archive import build_archive
from depot.core.auditor import AuditFinding, IntegrityAuditor, verify_archive_file
from depot.core.config import Config
from depot.core.exceptions import DepotError, ValidationError
from depot.core.index import RepositoryIndex
from depot.core.installer import Installer
from depot.core.layout import Layout, archive_name
from depot.core.models import PackageSpec
from depot.core.protocols import Fetcher
from depot.core.resolver import LOCAL_DOMAIN, Resolver
from depot.core.spec_loader import load_specification
from depot.core.transport import HttpFetcher
from depot.core.version import Requirement
from depot.utils.yaml_io import atomic_write_bytes

logger = logging.getLogger(__name__)


class PackageService:
    """depot 的顶层操作"""

    def __init__(self, config: Config, fetcher: Fetcher | None = None) -> None:
        self.config = config
        self.layout = Layout(config.home_dir)
        self.fetcher = fetcher or HttpFetcher(timeout=config.fetch_timeout)

    # ---- 索引 ----

    def installed_index(self) -> RepositoryIndex:
        return RepositoryIndex.from_installed(
            self.config.home_dir, allow_code=self.config.allow_code_specs,
        )

    def _load_source_cache(self, uri: str) -> RepositoryIndex:
        index = RepositoryIndex(
            fetcher=self.fetcher, bulk_threshold=self.config.bulk_threshold,
        )
        path = self.layout.source_cache_path(uri)
        if path.is_file():
            try:
                for spec in wire.decode_bulk(path.read_bytes(), wire.TEXT, False):
                    index.add_spec(spec)
            except DepotError as e:
                logger.warning("远端索引快照损坏，重新同步 %s: %s", path, e)
        return index

    def _save_source_cache(self, uri: str, index: RepositoryIndex) -> None:
        path = self.layout.source_cache_path(uri)
        atomic_write_bytes(path, wire.encode_bulk(
            sorted(index, key=lambda s: s.full_name), wire.TEXT, False,
        ))

    def remote_index(self, uri: str) -> RepositoryIndex:
        """同步单个远端仓库的索引"""
        index = self._load_source_cache(uri).update(uri)
        for full_name, error in index.sync_errors.items():
            logger.warning("同步跳过 %s: %s", full_name, error)
        self._save_source_cache(uri, index)
        return index

    def remote_indexes(self) -> dict[str, RepositoryIndex]:
        if self.config.domain == LOCAL_DOMAIN:
            return {}
        return {uri: self.remote_index(uri) for uri in self.config.sources}

    def _merged_remote(self) -> RepositoryIndex:
        merged = RepositoryIndex()
        for index in self.remote_indexes().values():
            for spec in index:
                merged.add_spec(spec)
        return merged

    def _resolver(self, installed: RepositoryIndex, ignore_dependencies: bool) -> Resolver:
        installer = Installer(
            self.config.home_dir,
            installed=installed,
            ignore_dependencies=ignore_dependencies,
        )
        return Resolver(
            self.config.home_dir,
            domain=self.config.domain,
            work_dir=self.config.work_dir,
            remotes=self.remote_indexes(),
            platforms=self.config.platforms,
            installed=installed,
            fetcher=self.fetcher,
            installer=installer,
        )

    # ---- 操作 ----

    def install(
        self,
        name: str,
        requirement: str | None = None,
        ignore_dependencies: bool | None = None,
    ) -> list[PackageSpec]:
        """解析并安装，返回实际安装的包"""
        ignore = self.config.ignore_dependencies if ignore_dependencies is None \
            else ignore_dependencies
        installed = self.installed_index()
        resolver = self._resolver(installed, ignore)
        plan = resolver.resolve(name, requirement, ignore_dependencies=ignore)
        return resolver.install_plan(plan, installed.full_names())

    def fetch(
        self,
        name: str,
        requirement: str | None = None,
        target_dir: str | Path = ".",
        with_dependencies: bool = False,
    ) -> list[Path]:
        """只下载归档到 target_dir"""
        installed = self.installed_index()
        resolver = self._resolver(installed, not with_dependencies)
        plan = resolver.resolve(name, requirement, ignore_dependencies=not with_dependencies)
        return resolver.fetch_plan(plan, target_dir)

    def query(
        self,
        pattern: str = "",
        requirement: str | None = None,
        remote: bool = False,
    ) -> list[PackageSpec]:
        """按包名正则查找已安装（或远端）的包"""
        index = self._merged_remote() if remote else self.installed_index()
        return index.search(_compile(pattern), Requirement.create(requirement))

    def dependency(
        self,
        pattern: str = "",
        requirement: str | None = None,
        reverse: bool = False,
    ) -> list[tuple[PackageSpec, list[Any]]]:
        """已安装包的依赖；reverse=True 时列出依赖它的包"""
        installed = self.installed_index()
        rows: list[tuple[PackageSpec, list[Any]]] = []
        for spec in installed.search(_compile(pattern), Requirement.create(requirement)):
            if reverse:
                rows.append((spec, installed.dependents_of(spec)))
            else:
                rows.append((spec, list(spec.dependencies)))
        return rows

    def outdated(self) -> list[str]:
        return self.installed_index().outdated(self._merged_remote())

    def verify(self, path: str | Path) -> None:
        verify_archive_file(path)
        logger.info("校验通过: %s", path)

    def audit(self) -> dict[str, list[AuditFinding]]:
        return IntegrityAuditor(self.config.home_dir).audit_repository(self.installed_index())

    def build(self, spec_file: str | Path, output_dir: str | Path = ".") -> Path:
        """按包描述文件的 files 清单打包，文件路径相对包描述所在目录"""
        spec_path = Path(spec_file)
        spec = load_specification(spec_path, allow_code=self.config.allow_code_specs)
        base = spec_path.parent
        files: dict[str, tuple[bytes, int]] = {}
        missing = []
        for rel in spec.files:
            src = base / rel
            if not src.is_file():
                missing.append(rel)
                continue
            files[rel] = (src.read_bytes(), stat.S_IMODE(src.stat().st_mode))
        if missing:
            raise ValidationError(f"打包文件不存在: {spec.full_name}", details=missing)

        dest = Path(output_dir) / archive_name(spec.full_name)
        atomic_write_bytes(dest, build_archive(spec, files))
        logger.info("已生成归档: %s", dest)
        return dest


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValidationError(f"无效的包名正则 '{pattern}': {e}") from e


