"""CLI - 安装与下载命令"""

from __future__ import annotations

import click

from depot.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(fetch)


@click.command()
@click.argument("name")
@click.option("--version", "-v", "requirement", default=None, help='版本约束，如 "> 1.0, < 2"')
@click.option("--ignore-dependencies", is_flag=True, help="不安装依赖")
def install(name: str, requirement: str | None, ignore_dependencies: bool) -> None:
    """安装包及其依赖（NAME 也可以是本地 .pkg 归档路径）"""
    installed = _svc().packages.install(
        name, requirement, ignore_dependencies=True if ignore_dependencies else None,
    )
    for spec in installed:
        click.echo(f"已安装 {spec.full_name}")
    click.echo(f"共安装 {len(installed)} 个包")


@click.command()
@click.argument("name")
@click.option("--version", "-v", "requirement", default=None, help="版本约束")
@click.option("--target", default=".", help="下载目录")
@click.option("--with-dependencies", is_flag=True, help="同时下载依赖")
def fetch(name: str, requirement: str | None, target: str, with_dependencies: bool) -> None:
    """只下载归档，不安装"""
    paths = _svc().packages.fetch(
        name, requirement, target_dir=target, with_dependencies=with_dependencies,
    )
    for path in paths:
        click.echo(f"已下载 {path}")
