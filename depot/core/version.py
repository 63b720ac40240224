"""版本号与版本约束

- Version: 非负整数段序列，逐段数值比较，短的一方补零
- Requirement: 若干 (操作符, 版本) 的合取
- Dependency: 包名 + Requirement

~> 为悲观约束: "~> 1.2.3" 等价于 ">= 1.2.3, < 1.3"。
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from itertools import zip_longest
from typing import Any

from depot.core.exceptions import ParseError

_VERSION_RE = re.compile(r"^\d+(\.\d+)*$")
_CONSTRAINT_RE = re.compile(r"^\s*(=|!=|>=|<=|>|<|~>)?\s*(\S+)\s*$")


def compare(a: Version, b: Version) -> int:
    """逐段比较两个版本，返回 -1 / 0 / 1"""
    for x, y in zip_longest(a.segments, b.segments, fillvalue=0):
        if x != y:
            return -1 if x < y else 1
    return 0


@dataclass(frozen=True, eq=False)
class Version:
    """可比较的版本号，1.0 与 1.0.0 相等"""

    segments: tuple[int, ...]

    @classmethod
    def parse(cls, text: Any) -> Version:
        if isinstance(text, Version):
            return text
        raw = str(text).strip()
        if not _VERSION_RE.match(raw):
            raise ParseError(f"无效的版本号: {text!r}")
        return cls(tuple(int(s) for s in raw.split(".")))

    def bump(self) -> Version:
        """下一个有效段: 1.2.3 -> 1.3, 1.2 -> 2, 1 -> 2"""
        segs = list(self.segments)
        if len(segs) > 1:
            segs.pop()
        segs[-1] += 1
        return Version(tuple(segs))

    def _canonical(self) -> tuple[int, ...]:
        segs = list(self.segments)
        while len(segs) > 1 and segs[-1] == 0:
            segs.pop()
        return tuple(segs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare(self, other) == 0

    def __hash__(self) -> int:
        return hash(self._canonical())

    def __lt__(self, other: Version) -> bool:
        return compare(self, other) < 0

    def __le__(self, other: Version) -> bool:
        return compare(self, other) <= 0

    def __gt__(self, other: Version) -> bool:
        return compare(self, other) > 0

    def __ge__(self, other: Version) -> bool:
        return compare(self, other) >= 0

    def __str__(self) -> str:
        return ".".join(str(s) for s in self.segments)

    def __repr__(self) -> str:
        return f"Version('{self}')"


OPERATORS: dict[str, Callable[[Version, Version], bool]] = {
    "=": lambda v, r: v == r,
    "!=": lambda v, r: v != r,
    ">": lambda v, r: v > r,
    ">=": lambda v, r: v >= r,
    "<": lambda v, r: v < r,
    "<=": lambda v, r: v <= r,
    "~>": lambda v, r: r <= v < r.bump(),
}


@dataclass(frozen=True)
class Requirement:
    """版本约束（合取），空约束列表恒为真"""

    constraints: tuple[tuple[str, Version], ...] = ()

    @classmethod
    def default(cls) -> Requirement:
        return cls(((">=", Version((0,))),))

    @classmethod
    def parse(cls, text: str | None) -> Requirement:
        """解析 "> 1.0, < 2" 形式的约束文本；裸版本号按 = 处理"""
        if text is None or not str(text).strip():
            return cls.default()
        constraints = []
        for part in str(text).split(","):
            m = _CONSTRAINT_RE.match(part)
            if not m:
                raise ParseError(f"无效的版本约束: {text!r}")
            op = m.group(1) or "="
            constraints.append((op, Version.parse(m.group(2))))
        return cls(tuple(constraints))

    @classmethod
    def create(cls, value: Any) -> Requirement:
        """从 Requirement / str / 字符串列表 / Version / None 构造"""
        if isinstance(value, Requirement):
            return value
        if value is None:
            return cls.default()
        if isinstance(value, Version):
            return cls((("=", value),))
        if isinstance(value, (list, tuple)):
            if not value:
                return cls.default()
            return cls(tuple(c for v in value for c in cls.parse(v).constraints))
        return cls.parse(str(value))

    def satisfied_by(self, version: Version | str) -> bool:
        v = Version.parse(version)
        return all(OPERATORS[op](v, ref) for op, ref in self.constraints)

    def __str__(self) -> str:
        return ", ".join(f"{op} {ver}" for op, ver in self.constraints)


@dataclass(frozen=True)
class Dependency:
    """声明的依赖: 包名 + 版本约束"""

    name: str
    requirement: Requirement = field(default_factory=Requirement.default)

    @classmethod
    def create(cls, name: str, requirement: Any = None) -> Dependency:
        return cls(name, Requirement.create(requirement))

    def matches(self, name: str, version: Version) -> bool:
        return name == self.name and self.requirement.satisfied_by(version)

    def __str__(self) -> str:
        return f"{self.name} ({self.requirement})"


def parse_dependencies(raw: Iterable[Any] | dict[str, Any] | None) -> tuple[Dependency, ...]:
    """解析包描述里的 dependencies 段

    支持两种写法:
        dependencies: [{name: bar, requirement: "> 0.9"}]
        dependencies: {bar: "> 0.9"}
    """
    if not raw:
        return ()
    if isinstance(raw, dict):
        return tuple(Dependency.create(str(n), r) for n, r in raw.items())
    if not isinstance(raw, (list, tuple)):
        raise ParseError(f"无效的依赖声明: {raw!r}")
    deps = []
    for item in raw:
        if isinstance(item, str):
            deps.append(Dependency.create(item))
        elif isinstance(item, dict) and item.get("name"):
            deps.append(Dependency.create(str(item["name"]), item.get("requirement")))
        else:
            raise ParseError(f"无效的依赖声明: {item!r}")
    return tuple(deps)
