"""核心数据模型

- PackageSpec: 解析后的包描述，加载后不可变，以 full_name 判等
- PackageSource: 候选来源（本地 / 远端），只用于排序，不参与身份
- InstallPlan: 依赖在前的安装序列，每个 full_name 至多出现一次
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from depot.core.exceptions import ParseError
from depot.core.platform import ANY
from depot.core.platform import normalize as normalize_platform
from depot.core.version import Dependency, Version, parse_dependencies

LOCAL = "local"
REMOTE = "remote"


def _str_tuple(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ParseError(f"字段 {key} 必须是列表: {value!r}")
    return tuple(str(v) for v in value)


@dataclass(frozen=True, eq=False)
class PackageSpec:
    """单个包版本的描述"""

    name: str
    version: Version
    platform: str = ANY
    summary: str = ""
    dependencies: tuple[Dependency, ...] = ()
    files: tuple[str, ...] = ()
    executables: tuple[str, ...] = ()
    require_paths: tuple[str, ...] = ("lib",)
    loaded_from: str = ""

    @property
    def full_name(self) -> str:
        base = f"{self.name}-{self.version}"
        if self.platform != ANY:
            return f"{base}-{self.platform}"
        return base

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageSpec):
            return NotImplemented
        return self.full_name == other.full_name

    def __hash__(self) -> int:
        return hash(self.full_name)

    def __repr__(self) -> str:
        return f"<PackageSpec {self.full_name}>"

    def sort_key(self) -> tuple[Version, str]:
        """搜索结果排序键: 版本升序，同版本按 full_name"""
        return (self.version, self.full_name)

    def with_origin(self, loaded_from: str) -> PackageSpec:
        return replace(self, loaded_from=loaded_from)

    @classmethod
    def from_dict(cls, data: Any, *, loaded_from: str = "") -> PackageSpec:
        """从声明式字典构造，字段缺失或类型错误抛 ParseError"""
        if not isinstance(data, dict):
            raise ParseError(f"包描述必须是字典: {type(data).__name__}")
        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ParseError("包描述缺少 name")
        if data.get("version") is None:
            raise ParseError(f"包描述缺少 version: {name}")
        return cls(
            name=name,
            version=Version.parse(data["version"]),
            platform=normalize_platform(data.get("platform")),
            summary=str(data.get("summary") or ""),
            dependencies=parse_dependencies(data.get("dependencies")),
            files=_str_tuple(data.get("files"), "files"),
            executables=_str_tuple(data.get("executables"), "executables"),
            require_paths=_str_tuple(data.get("require_paths", ["lib"]), "require_paths"),
            loaded_from=loaded_from,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": str(self.version),
            "platform": self.platform,
            "summary": self.summary,
            "dependencies": [
                {"name": d.name, "requirement": str(d.requirement)}
                for d in self.dependencies
            ],
            "files": list(self.files),
            "executables": list(self.executables),
            "require_paths": list(self.require_paths),
        }


@dataclass(frozen=True)
class PackageSource:
    """候选来源: locality + 定位符（文件路径、file: URI 或远端基址）"""

    locality: str
    locator: str

    @classmethod
    def local(cls, path: Any) -> PackageSource:
        return cls(LOCAL, str(path))

    @classmethod
    def remote(cls, uri: str) -> PackageSource:
        return cls(REMOTE, uri)

    @property
    def is_local(self) -> bool:
        return self.locality == LOCAL

    @property
    def rank(self) -> int:
        """本地优先: local=1 > remote=0"""
        return 1 if self.is_local else 0


@dataclass
class InstallPlan:
    """依赖在前、被依赖者在后的安装序列"""

    entries: list[tuple[PackageSpec, PackageSource]] = field(default_factory=list)

    def append(self, spec: PackageSpec, source: PackageSource) -> bool:
        """追加条目；full_name 已存在时忽略并返回 False"""
        if any(s.full_name == spec.full_name for s, _ in self.entries):
            return False
        self.entries.append((spec, source))
        return True

    def __iter__(self) -> Iterator[tuple[PackageSpec, PackageSource]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def specs(self) -> list[PackageSpec]:
        return [s for s, _ in self.entries]

    @property
    def full_names(self) -> list[str]:
        return [s.full_name for s, _ in self.entries]

    @property
    def last(self) -> PackageSpec | None:
        return self.entries[-1][0] if self.entries else None

    def source_for(self, spec: PackageSpec) -> PackageSource | None:
        for s, src in self.entries:
            if s.full_name == spec.full_name:
                return src
        return None
