"""集中配置管理

支持从 YAML 文件加载 + 编程式覆盖。进程级默认配置由 CLI 入口显式初始化，
核心组件只接收显式传入的参数，不读取全局状态。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields

from depot.core.exceptions import ConfigError
from depot.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DOMAINS = ("local", "remote", "both")


@dataclass
class Config:
    """depot 配置"""

    # 目录
    home_dir: str = "depot_home"   # 安装根目录: specifications/ cache/ gems/
    work_dir: str = "."            # 本地候选归档的扫描目录

    # 远端
    sources: list[str] = field(default_factory=list)
    fetch_timeout: int = 60        # 秒，仅作用于 HTTP 传输层
    bulk_threshold: int = 1000     # 缺失条目超过该值时改用全量索引

    # 解析
    domain: str = "both"
    platforms: list[str] = field(default_factory=list)  # 空表示 any + 本机平台
    ignore_dependencies: bool = False

    # 包描述文件: 默认只接受声明式 YAML
    allow_code_specs: bool = False

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.domain not in DOMAINS:
            raise ConfigError(
                f"无效的 domain '{self.domain}'，可选: {', '.join(DOMAINS)}"
            )
        if self.bulk_threshold < 0:
            raise ConfigError(f"bulk_threshold 不能为负数: {self.bulk_threshold}")

    @classmethod
    def from_file(cls, path: str = "configs/depot.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 进程级默认配置，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/depot.yml") -> Config:
    """从文件初始化进程级配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
