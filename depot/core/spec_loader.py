"""包描述文件加载

默认只接受声明式 YAML（*.yml），内容经 safe_load + PackageSpec.from_dict 校验。

*.pyspec 是可执行的旧格式: 执行文件后取模块级 SPEC 字典。执行任意代码
属于特权操作，仅在 allow_code=True 时启用，调用方必须保证目录可信。
"""

from __future__ import annotations

import logging
import runpy
from collections.abc import Iterable, Iterator
from pathlib import Path

import yaml

from depot.core.exceptions import ParseError
from depot.core.layout import CODE_SPEC_EXT, SPEC_EXT
from depot.core.models import PackageSpec
from depot.utils.yaml_io import atomic_write, dump_yaml, parse_yaml

logger = logging.getLogger(__name__)


def load_specification(path: str | Path, *, allow_code: bool = False) -> PackageSpec:
    """加载单个包描述文件

    Raises:
        ParseError: 文件无法读取、格式错误或不是包描述
    """
    p = Path(path)
    if p.suffix == CODE_SPEC_EXT:
        if not allow_code:
            raise ParseError(f"未启用可执行包描述，拒绝加载: {p}")
        return _load_code_spec(p)

    try:
        data = parse_yaml(p.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"无法读取包描述 {p}: {e}") from e
    except yaml.YAMLError as e:
        raise ParseError(f"包描述 YAML 格式错误 {p}: {e}") from e
    return PackageSpec.from_dict(data, loaded_from=str(p))


def _load_code_spec(path: Path) -> PackageSpec:
    logger.warning("执行可执行包描述（仅限可信目录）: %s", path)
    try:
        namespace = runpy.run_path(str(path))
    except Exception as e:  # noqa: BLE001 - 任意用户代码的异常统一转为解析错误
        raise ParseError(f"执行包描述失败 {path}: {e}") from e
    if "SPEC" not in namespace:
        raise ParseError(f"文件 '{path}' 没有定义 SPEC")
    return PackageSpec.from_dict(namespace["SPEC"], loaded_from=str(path))


def spec_files(directories: Iterable[str | Path], *, allow_code: bool = False) -> list[Path]:
    patterns = [f"*{SPEC_EXT}"]
    if allow_code:
        patterns.append(f"*{CODE_SPEC_EXT}")
    files: list[Path] = []
    for d in directories:
        base = Path(d)
        if not base.is_dir():
            continue
        for pattern in patterns:
            files.extend(sorted(base.glob(pattern)))
    return files


def scan_specifications(
    directories: Iterable[str | Path], *, allow_code: bool = False,
) -> Iterator[PackageSpec]:
    """扫描目录下的所有包描述，解析失败的文件告警后跳过"""
    for path in spec_files(directories, allow_code=allow_code):
        try:
            yield load_specification(path, allow_code=allow_code)
        except ParseError as e:
            logger.warning("跳过无效包描述 %s: %s", path, e)


def write_specification(spec: PackageSpec, directory: str | Path) -> Path:
    """把包描述写成声明式 YAML，返回文件路径"""
    path = Path(directory) / f"{spec.full_name}{SPEC_EXT}"
    atomic_write(path, dump_yaml(spec.to_dict()))
    return path
