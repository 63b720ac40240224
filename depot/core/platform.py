"""平台标识

"any" 表示通用包；其余为 cpu-os[-version]，例如 x86_64-linux、arm64-darwin-23。
"""

from __future__ import annotations

import platform as _platform
import sys
from collections.abc import Iterable

ANY = "any"

_OS_ALIASES = {
    "win32": "mswin",
    "cygwin": "cygwin",
    "darwin": "darwin",
}


def normalize(name: str | None) -> str:
    """规范化平台字符串；空值视为 any"""
    if not name:
        return ANY
    value = str(name).strip().lower()
    if value in ("", "ruby", "universal"):
        return ANY
    return value


def local_platform() -> str:
    """当前运行时的平台标识"""
    cpu = (_platform.machine() or "unknown").lower()
    os_name = _OS_ALIASES.get(sys.platform, sys.platform.rstrip("0123456789"))
    return f"{cpu}-{os_name}"


def runtime_platforms(configured: Iterable[str] | None = None) -> frozenset[str]:
    """可安装平台集合，总是包含 any；未配置时追加本机平台"""
    values = {normalize(p) for p in (configured or [])}
    if not values:
        values.add(local_platform())
    values.add(ANY)
    return frozenset(values)


def is_compatible(spec_platform: str, platforms: Iterable[str]) -> bool:
    return normalize(spec_platform) in set(platforms)
