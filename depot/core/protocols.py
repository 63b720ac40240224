"""领域协议定义

核心组件只依赖这里的接口契约（Protocol），传输层和安装器可被替换，
测试时注入内存实现即可，无需 patch urllib。
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from depot.core.models import PackageSpec


class Fetcher(Protocol):
    """传输层协议

    远端该路径下没有内容时抛 NotFoundError，其他失败抛 FetchError。
    超时与重试策略属于实现方，不属于核心。
    """

    def fetch(self, uri: str) -> bytes:
        """拉取 URI 的全部字节"""
        ...


class PackageInstaller(Protocol):
    """安装器协议 - 把本地归档安装到安装根目录"""

    def install(self, archive_path: Path) -> PackageSpec:
        """安装并返回归档内的包描述"""
        ...
