"""完整性校验

verify_archive_checksum 校验归档头部声明的自引用校验和。它只能发现损坏与截断:
任何能修改归档的人都能重新计算同样的摘要，不提供来源认证。

audit_repository 对照每个已安装包的归档清单检查安装目录，结果是数据而不是异常:
{full_name: [AuditFinding(path, problem), ...]}，空列表表示一致。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from depot.core.archive import (
    ArchiveEntry,
    compute_checksum,
    content_digest,
    declared_checksum,
    list_entries,
    split_archive,
)
from depot.core.exceptions import ArchiveError, VerificationError
from depot.core.index import RepositoryIndex
from depot.core.layout import Layout
from depot.core.models import PackageSpec

logger = logging.getLogger(__name__)

MISSING_SPEC = "missing spec file"
FILE_DIFFERS = "installed file differs from package"
FILE_MISSING = "installed file missing"
UNMANAGED = "unmanaged file"


@dataclass(frozen=True)
class AuditFinding:
    path: str
    problem: str


def verify_archive_checksum(data: bytes) -> None:
    """校验归档自声明的 CHECKSUM，不一致抛 VerificationError"""
    if not data:
        raise VerificationError("归档为空")
    try:
        header, _ = split_archive(data)
    except ArchiveError as e:
        raise VerificationError(str(e)) from e
    declared = declared_checksum(header)
    if not declared:
        raise VerificationError("归档缺少 CHECKSUM 字段")
    actual = compute_checksum(data)
    if actual != declared:
        raise VerificationError(f"校验和不匹配: 声明 {declared}, 实际 {actual}")


def verify_archive_file(path: str | Path) -> bytes:
    """读取并校验归档文件，返回其内容"""
    p = Path(path)
    if not p.is_file():
        raise VerificationError(f"归档不存在: {p}")
    data = p.read_bytes()
    verify_archive_checksum(data)
    return data


class IntegrityAuditor:
    """对照归档清单检查安装根目录"""

    def __init__(self, home: str | Path) -> None:
        self.layout = Layout(home)

    def audit_spec(self, spec: PackageSpec) -> list[AuditFinding]:
        findings: list[AuditFinding] = []

        spec_path = self.layout.spec_path(spec.full_name)
        if not spec_path.is_file():
            findings.append(AuditFinding(str(spec_path), MISSING_SPEC))

        archive_path = self.layout.archive_path(spec.full_name)
        try:
            entries = list_entries(verify_archive_file(archive_path))
        except (VerificationError, ArchiveError) as e:
            # 归档不可信: 不比对清单，目录下的文件全部视为未托管
            findings.append(AuditFinding(str(archive_path), str(e)))
            entries = []

        package_dir = self.layout.package_dir(spec.full_name)
        findings.extend(self._check_manifest(package_dir, entries))

        managed = {e.path for e in entries}
        for path in self._files_under(package_dir):
            if path not in managed:
                findings.append(AuditFinding(path, UNMANAGED))
        return findings

    @staticmethod
    def _check_manifest(package_dir: Path, entries: list[ArchiveEntry]) -> list[AuditFinding]:
        findings = []
        for entry in entries:
            installed = package_dir / entry.path
            if not installed.is_file():
                findings.append(AuditFinding(entry.path, FILE_MISSING))
            elif content_digest(installed.read_bytes()) != entry.digest:
                findings.append(AuditFinding(entry.path, FILE_DIFFERS))
        return findings

    @staticmethod
    def _files_under(package_dir: Path) -> list[str]:
        if not package_dir.is_dir():
            return []
        return sorted(
            p.relative_to(package_dir).as_posix()
            for p in package_dir.rglob("*")
            if p.is_file()
        )

    def audit_repository(self, index: RepositoryIndex) -> dict[str, list[AuditFinding]]:
        report = {}
        for spec in sorted(index, key=lambda s: s.full_name):
            report[spec.full_name] = self.audit_spec(spec)
        dirty = sum(1 for f in report.values() if f)
        logger.info("完整性检查: %d 个包, %d 个存在问题", len(report), dirty)
        return report
