"""统一异常体系

所有业务异常继承 DepotError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出带错误码的友好提示。

恢复策略:
  - ParseError: 目录扫描时跳过并告警；显式指定的文件则直接抛出
  - RemoteSyncError: 同步中止，本地索引保持原状
  - 增量同步的单条失败仅记录，不抛出
"""

from __future__ import annotations

from typing import Any


class DepotError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(DepotError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(DepotError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ParseError(DepotError):
    """版本号 / 约束 / 包描述文本格式错误"""

    code = "PARSE_ERROR"


class ArchiveError(ParseError):
    """归档文件结构损坏或缺少元数据"""

    code = "ARCHIVE_ERROR"


class PackageNotFoundError(DepotError):
    """没有任何候选满足约束"""

    code = "PACKAGE_NOT_FOUND"

    def __init__(self, message: str, requirement: Any = None) -> None:
        super().__init__(message)
        self.requirement = requirement


class FetchError(DepotError):
    """传输层拉取失败"""

    code = "FETCH_ERROR"


class NotFoundError(FetchError):
    """远端在该路径下没有内容"""

    code = "NOT_FOUND"


class RemoteSyncError(DepotError):
    """全量索引的所有编码均拉取失败"""

    code = "REMOTE_SYNC_ERROR"


class UnsupportedSourceError(DepotError):
    """不支持的来源 URI 协议"""

    code = "UNSUPPORTED_SOURCE"


class VerificationError(DepotError):
    """归档校验和不匹配或归档缺失"""

    code = "VERIFICATION_ERROR"


class InstallError(DepotError):
    """安装失败"""

    code = "INSTALL_ERROR"


class InstallConflictError(InstallError):
    """依赖在已选集合内无法满足"""

    code = "INSTALL_CONFLICT"
