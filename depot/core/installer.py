"""归档安装器

把一个本地归档安装到安装根目录:
  1. 校验 CHECKSUM，失败则什么都不写
  2. 读取内嵌包描述，检查依赖已安装
  3. 解包到 gems/<full_name>/，保留文件权限
  4. 写 specifications/<full_name>.yml，归档放入 cache/
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path, PurePosixPath

from depot.core.archive import ArchiveEntry, list_entries, read_spec
from depot.core.auditor import verify_archive_file
from depot.core.exceptions import InstallConflictError, InstallError
from depot.core.index import RepositoryIndex
from depot.core.layout import Layout
from depot.core.models import PackageSpec
from depot.core.spec_loader import write_specification
from depot.core.version import Dependency
from depot.utils.yaml_io import atomic_write_bytes

logger = logging.getLogger(__name__)


class Installer:
    """PackageInstaller 的文件系统实现"""

    def __init__(
        self,
        home: str | Path,
        *,
        installed: RepositoryIndex | None = None,
        ignore_dependencies: bool = False,
    ) -> None:
        self.layout = Layout(home)
        self.installed = installed if installed is not None \
            else RepositoryIndex.from_installed(home)
        self.ignore_dependencies = ignore_dependencies

    def ensure_dependency(self, spec: PackageSpec, dep: Dependency) -> None:
        if not self.installed.search(dep):
            raise InstallConflictError(f"{spec.name} requires {dep}")

    def install(self, archive_path: Path) -> PackageSpec:
        path = Path(archive_path)
        data = verify_archive_file(path)
        spec = read_spec(data, loaded_from=str(path))

        if not self.ignore_dependencies:
            for dep in spec.dependencies:
                self.ensure_dependency(spec, dep)

        self.layout.ensure()
        self._extract(list_entries(data), self.layout.package_dir(spec.full_name))
        spec_path = write_specification(spec, self.layout.spec_dir)

        cached = self.layout.archive_path(spec.full_name)
        if not (cached.exists() and cached.resolve() == path.resolve()):
            shutil.copyfile(path, cached)

        installed = spec.with_origin(str(spec_path))
        self.installed.add_spec(installed)
        logger.info("已安装: %s", spec.full_name)
        return installed

    @staticmethod
    def _extract(entries: list[ArchiveEntry], target: Path) -> None:
        for entry in entries:
            rel = PurePosixPath(entry.path)
            if rel.is_absolute() or ".." in rel.parts or not entry.path:
                raise InstallError(f"归档包含非法路径: {entry.path!r}")
        for entry in entries:
            dest = target.joinpath(*PurePosixPath(entry.path).parts)
            atomic_write_bytes(dest, entry.content)
            os.chmod(dest, entry.mode & 0o777)
