"""包归档编解码

归档结构:

    DEPOT-ARCHIVE 1
    CHECKSUM = "<sha256 hex>"
    <空行>
    <gzip tar: metadata.yml + data/<path>...>

CHECKSUM 是自引用校验和: 把字段值替换为 64 个 F 之后对整个归档求 SHA-256。
它只能发现损坏/截断，任何能重新计算摘要的人都可以伪造。
"""

from __future__ import annotations

import hashlib
import io
import re
import tarfile
import zlib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

import yaml

from depot.core.exceptions import ArchiveError, ParseError
from depot.core.models import PackageSpec
from depot.utils.yaml_io import dump_yaml, parse_yaml

MAGIC = b"DEPOT-ARCHIVE 1\n"
PLACEHOLDER = b"F" * 64
METADATA_MEMBER = "metadata.yml"
DATA_PREFIX = "data/"
DEFAULT_MODE = 0o644

_HEADER_END = b"\n\n"
_CHECKSUM_RE = re.compile(rb'CHECKSUM = "([a-z0-9]+)"')


@dataclass(frozen=True)
class ArchiveEntry:
    """归档内记录的单个文件"""

    path: str
    mode: int
    size: int
    digest: str
    content: bytes = field(repr=False)


def content_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def split_archive(data: bytes) -> tuple[bytes, bytes]:
    """拆分为 (头部, 载荷)；头部包含结尾的空行"""
    end = data.find(_HEADER_END)
    if not data.startswith(MAGIC) or end < 0:
        raise ArchiveError("不是有效的包归档（缺少文件头）")
    cut = end + len(_HEADER_END)
    return data[:cut], data[cut:]


def declared_checksum(header: bytes) -> str:
    m = _CHECKSUM_RE.search(header)
    return m.group(1).decode("ascii") if m else ""


def blank_checksum(header: bytes) -> bytes:
    return _CHECKSUM_RE.sub(b'CHECKSUM = "' + PLACEHOLDER + b'"', header, count=1)


def compute_checksum(data: bytes) -> str:
    """校验和字段置为占位符后整个归档的 SHA-256"""
    header, payload = split_archive(data)
    return content_digest(blank_checksum(header) + payload)


def _add_member(tar: tarfile.TarFile, name: str, content: bytes, mode: int) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(content)
    info.mode = mode
    info.mtime = 0
    tar.addfile(info, io.BytesIO(content))


def build_archive(
    spec: PackageSpec,
    files: Mapping[str, bytes | tuple[bytes, int]],
) -> bytes:
    """构建归档；files 为 {相对路径: 内容 | (内容, mode)}

    归档内的包描述以实际写入的文件列表为准。
    """
    spec = replace(spec, files=tuple(sorted(files)), loaded_from="")
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        _add_member(tar, METADATA_MEMBER, dump_yaml(spec.to_dict()).encode("utf-8"), DEFAULT_MODE)
        for path in sorted(files):
            value = files[path]
            content, mode = value if isinstance(value, tuple) else (value, DEFAULT_MODE)
            _add_member(tar, DATA_PREFIX + path, content, mode)
    payload = buf.getvalue()

    header = MAGIC + b'CHECKSUM = "' + PLACEHOLDER + b'"' + _HEADER_END
    digest = content_digest(header + payload).encode("ascii")
    return header.replace(PLACEHOLDER, digest) + payload


def _members(data: bytes) -> list[tuple[tarfile.TarInfo, bytes]]:
    _, payload = split_archive(data)
    try:
        with tarfile.open(fileobj=io.BytesIO(payload), mode="r:gz") as tar:
            result = []
            for info in tar.getmembers():
                if not info.isfile():
                    continue
                fh = tar.extractfile(info)
                result.append((info, fh.read() if fh else b""))
            return result
    except (tarfile.TarError, EOFError, OSError, zlib.error) as e:
        raise ArchiveError(f"归档载荷损坏: {e}") from e


def list_entries(data: bytes) -> list[ArchiveEntry]:
    """列出归档记录的全部文件（不含 metadata）"""
    return [
        ArchiveEntry(
            path=info.name[len(DATA_PREFIX):],
            mode=info.mode,
            size=len(content),
            digest=content_digest(content),
            content=content,
        )
        for info, content in _members(data)
        if info.name.startswith(DATA_PREFIX)
    ]


def read_spec(data: bytes, *, loaded_from: str = "") -> PackageSpec:
    """读取归档内嵌的包描述"""
    for info, content in _members(data):
        if info.name == METADATA_MEMBER:
            try:
                raw = parse_yaml(content.decode("utf-8"))
            except (UnicodeDecodeError, yaml.YAMLError) as e:
                raise ArchiveError(f"归档元数据格式错误: {e}") from e
            try:
                return PackageSpec.from_dict(raw, loaded_from=loaded_from)
            except ParseError as e:
                raise ArchiveError(f"归档元数据无效: {e}") from e
    raise ArchiveError(f"归档缺少 {METADATA_MEMBER}")
