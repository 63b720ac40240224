"""CLI - 校验与打包命令"""

from __future__ import annotations

import click

from depot.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(check)
    group.add_command(build)


@click.command()
@click.option("--verify", "verify_file", default=None, help="校验单个归档的 CHECKSUM")
@click.option("--alien", is_flag=True, help="检查安装目录与归档清单是否一致")
def check(verify_file: str | None, alien: bool) -> None:
    """完整性检查"""
    if not verify_file and not alien:
        raise click.UsageError("请指定 --verify FILE 或 --alien")

    if verify_file:
        _svc().packages.verify(verify_file)
        click.echo(f"校验通过: {verify_file}")

    if alien:
        report = _svc().packages.audit()
        problems = 0
        for full_name, findings in report.items():
            if not findings:
                continue
            click.echo(f"{full_name}:")
            for finding in findings:
                click.echo(f"  {finding.path}: {finding.problem}")
            problems += len(findings)
        if problems:
            raise click.ClickException(f"发现 {problems} 个问题")
        click.echo("未发现问题")


@click.command()
@click.argument("spec_file")
@click.option("--output", "-o", default=".", help="归档输出目录")
def build(spec_file: str, output: str) -> None:
    """按包描述文件生成 .pkg 归档"""
    path = _svc().packages.build(spec_file, output_dir=output)
    click.echo(f"已生成 {path}")
