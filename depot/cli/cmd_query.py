"""CLI - 查询命令"""

from __future__ import annotations

import click

from depot.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(query)
    group.add_command(dependency)
    group.add_command(outdated)


@click.command()
@click.argument("pattern", default="")
@click.option("--version", "-v", "requirement", default=None, help="版本约束")
@click.option("--remote", is_flag=True, help="查询远端仓库而非已安装的包")
def query(pattern: str, requirement: str | None, remote: bool) -> None:
    """按包名正则列出包"""
    specs = _svc().packages.query(pattern, requirement, remote=remote)
    if not specs:
        click.echo("没有匹配的包。")
        return
    for spec in specs:
        summary = f"  {spec.summary}" if spec.summary else ""
        click.echo(f"{spec.full_name}{summary}")


@click.command()
@click.argument("pattern", default="")
@click.option("--version", "-v", "requirement", default=None, help="版本约束")
@click.option("--reverse", "-R", is_flag=True, help="列出依赖该包的已安装包")
def dependency(pattern: str, requirement: str | None, reverse: bool) -> None:
    """显示已安装包的依赖"""
    rows = _svc().packages.dependency(pattern, requirement, reverse=reverse)
    if not rows:
        click.echo("没有匹配的包。")
        return
    for spec, items in rows:
        click.echo(f"Package {spec.full_name}")
        if not items:
            click.echo("  无")
        for item in items:
            if reverse:
                user, dep = item
                click.echo(f"  {user.full_name} ({dep.requirement})")
            else:
                click.echo(f"  {item}")


@click.command()
def outdated() -> None:
    """列出远端有更高版本的已安装包"""
    names = _svc().packages.outdated()
    if not names:
        click.echo("所有包都是最新的。")
        return
    for name in names:
        click.echo(name)
