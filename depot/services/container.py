"""服务容器 - CLI 通过 get_container() 获取服务，而非直接构造

同一容器内共享同一个传输层实例；Config 可显式注入，
不提供时使用进程级 get_config()。
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from depot.core.config import Config
    from depot.core.protocols import Fetcher
    from depot.services.package_service import PackageService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(self, config: Config | None = None) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from depot.core.config import get_config
            config = get_config()
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    @property
    def fetcher(self) -> Fetcher:
        if "fetcher" not in self._instances:
            from depot.core.transport import HttpFetcher
            self._instances["fetcher"] = HttpFetcher(timeout=self._config.fetch_timeout)
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def packages(self) -> PackageService:
        if "packages" not in self._instances:
            from depot.services.package_service import PackageService
            self._instances["packages"] = PackageService(self._config, fetcher=self.fetcher)
        return self._instances["packages"]  # type: ignore[return-value]


_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
