"""安装根目录布局

    <root>/specifications/<full_name>.yml   包描述
    <root>/cache/<full_name>.pkg            归档缓存
    <root>/gems/<full_name>/                解包后的文件
    <root>/source_cache/<digest>.yml        远端索引的本地快照
"""

from __future__ import annotations

import hashlib
from pathlib import Path

SPEC_DIR = "specifications"
CACHE_DIR = "cache"
PACKAGES_DIR = "gems"
SOURCE_CACHE_DIR = "source_cache"

SPEC_EXT = ".yml"
CODE_SPEC_EXT = ".pyspec"
ARCHIVE_EXT = ".pkg"


class Layout:
    """某个安装根目录下的路径计算，不做任何 IO"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @property
    def spec_dir(self) -> Path:
        return self.root / SPEC_DIR

    @property
    def cache_dir(self) -> Path:
        return self.root / CACHE_DIR

    @property
    def packages_dir(self) -> Path:
        return self.root / PACKAGES_DIR

    def spec_path(self, full_name: str) -> Path:
        return self.spec_dir / f"{full_name}{SPEC_EXT}"

    def archive_path(self, full_name: str) -> Path:
        return self.cache_dir / archive_name(full_name)

    def package_dir(self, full_name: str) -> Path:
        return self.packages_dir / full_name

    @property
    def source_cache_dir(self) -> Path:
        return self.root / SOURCE_CACHE_DIR

    def source_cache_path(self, uri: str) -> Path:
        digest = hashlib.sha256(uri.encode("utf-8")).hexdigest()[:16]
        return self.source_cache_dir / f"{digest}{SPEC_EXT}"

    def ensure(self) -> None:
        for d in (self.spec_dir, self.cache_dir, self.packages_dir):
            d.mkdir(parents=True, exist_ok=True)


def archive_name(full_name: str) -> str:
    return f"{full_name}{ARCHIVE_EXT}"
