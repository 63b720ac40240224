"""索引传输编码

远端仓库的文件布局（相对仓库基址）:

    quick/index.rz                 快速索引: zlib 压缩的 full_name 列表，每行一个
    quick/<full_name>.json.rz      单个包描述，紧凑编码（JSON）
    quick/<full_name>.yml.rz       单个包描述，文本编码（YAML）
    index.json.Z / index.json      全量索引，紧凑编码，压缩 / 未压缩
    index.yml.Z / index.yml        全量索引，文本编码，压缩 / 未压缩
    gems/<full_name>.pkg           包归档

紧凑编码选用 JSON 而非语言原生序列化，远端数据可以安全地解码。
"""

from __future__ import annotations

import json
import zlib
from collections.abc import Iterable
from typing import Any

import yaml

from depot.core.exceptions import ParseError
from depot.core.layout import archive_name
from depot.core.models import PackageSpec
from depot.utils.yaml_io import dump_yaml, parse_yaml

COMPACT = "json"
TEXT = "yml"

QUICK_INDEX_PATH = "quick/index.rz"

# (相对路径, 编码, 是否压缩)，按优先级排列
BULK_ENCODINGS: tuple[tuple[str, str, bool], ...] = (
    ("index.json.Z", COMPACT, True),
    ("index.json", COMPACT, False),
    ("index.yml.Z", TEXT, True),
    ("index.yml", TEXT, False),
)
SINGLE_SPEC_ENCODINGS: tuple[str, ...] = (COMPACT, TEXT)


def inflate(data: bytes) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise ParseError(f"解压失败: {e}") from e


def deflate(data: bytes) -> bytes:
    return zlib.compress(data)


def quick_spec_path(full_name: str, encoding: str) -> str:
    return f"quick/{full_name}.{encoding}.rz"


def archive_path(full_name: str) -> str:
    return f"gems/{archive_name(full_name)}"


def _dumps(obj: Any, encoding: str) -> bytes:
    if encoding == COMPACT:
        return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return dump_yaml(obj).encode("utf-8")


def _loads(data: bytes, encoding: str) -> Any:
    try:
        text = data.decode("utf-8")
        if encoding == COMPACT:
            return json.loads(text)
        return parse_yaml(text)
    except (UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(f"{encoding} 解码失败: {e}") from e


# ---------------------------------------------------------------------------
# 快速索引
# ---------------------------------------------------------------------------

def encode_quick_index(full_names: Iterable[str]) -> bytes:
    return deflate("\n".join(sorted(full_names)).encode("utf-8"))


def decode_quick_index(data: bytes) -> list[str]:
    try:
        text = inflate(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"快速索引不是合法的 UTF-8: {e}") from e
    return [line.strip() for line in text.split("\n") if line.strip()]


# ---------------------------------------------------------------------------
# 包描述
# ---------------------------------------------------------------------------

def encode_spec(spec: PackageSpec, encoding: str) -> bytes:
    """单个包描述总是压缩传输"""
    return deflate(_dumps(spec.to_dict(), encoding))


def decode_spec(data: bytes, encoding: str) -> PackageSpec:
    return PackageSpec.from_dict(_loads(inflate(data), encoding))


def encode_bulk(specs: Iterable[PackageSpec], encoding: str, compressed: bool) -> bytes:
    raw = _dumps([s.to_dict() for s in specs], encoding)
    return deflate(raw) if compressed else raw


def decode_bulk(data: bytes, encoding: str, compressed: bool) -> list[PackageSpec]:
    """全量索引可以是列表，也可以是 {full_name: spec} 字典"""
    obj = _loads(inflate(data) if compressed else data, encoding)
    if isinstance(obj, dict):
        obj = list(obj.values())
    if not isinstance(obj, list):
        raise ParseError(f"全量索引格式错误: {type(obj).__name__}")
    return [PackageSpec.from_dict(item) for item in obj]


def publish(specs: Iterable[PackageSpec]) -> dict[str, bytes]:
    """生成一个远端仓库需要的全部索引文件 {相对路径: 内容}"""
    specs = sorted(specs, key=lambda s: s.full_name)
    files = {QUICK_INDEX_PATH: encode_quick_index(s.full_name for s in specs)}
    for spec in specs:
        for encoding in SINGLE_SPEC_ENCODINGS:
            files[quick_spec_path(spec.full_name, encoding)] = encode_spec(spec, encoding)
    for path, encoding, compressed in BULK_ENCODINGS:
        files[path] = encode_bulk(specs, encoding, compressed)
    return files
