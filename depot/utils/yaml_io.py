"""YAML 读写工具

包描述文件、配置文件、文本编码的索引都经由这里序列化，
统一 encoding="utf-8"、空值保护、原子写入，只使用 safe_load。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 单个 YAML 文件最大 10MB，防止异常大文件耗尽内存
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """原子写入：先写同目录临时文件再 rename，中途崩溃不会留下半个文件"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            # 清理失败不影响原异常抛出
            pass
        raise


def atomic_write(path: Path, content: str) -> None:
    atomic_write_bytes(path, content.encode("utf-8"))


def dump_yaml(data: Any) -> str:
    """序列化为 YAML 文本，保持键顺序"""
    return yaml.safe_dump(
        data, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )


def parse_yaml(text: str | bytes) -> Any:
    """解析 YAML 文本（可能是任意类型），格式错误抛 yaml.YAMLError"""
    return yaml.safe_load(text)


def load_yaml(path: str | Path) -> dict[str, Any]:
    """安全读取 YAML 文件

    文件不存在、为空、或顶层不是字典时返回空字典。

    异常:
        yaml.YAMLError: YAML 格式错误
        OSError: IO 错误
        ValueError: 文件超过 MAX_YAML_SIZE
    """
    p = Path(path)
    if not p.exists():
        return {}

    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ValueError(
            f"YAML 文件过大: {p} ({file_size} 字节), "
            f"超过限制 {MAX_YAML_SIZE} 字节"
        )

    try:
        with open(p, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("解析 YAML 文件失败: %s, 错误: %s", path, e)
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning(
            "%s 内容不是字典类型 (实际类型: %s)，返回空字典",
            path, type(result).__name__,
        )
        return {}
    return result


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文件，自动创建父目录"""
    p = Path(path)
    try:
        atomic_write(p, dump_yaml(data))
    except yaml.YAMLError as e:
        logger.error("序列化 YAML 数据失败: %s, 错误: %s", path, e)
        raise
    except OSError as e:
        logger.error("写入文件失败: %s, 错误: %s", path, e)
        raise
