"""depot 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常统一转换为带错误码的 ClickException。
"""

from __future__ import annotations

from typing import Any

import click

from depot import __version__
from depot.core.exceptions import DepotError
from depot.services.container import get_container
from depot.utils.logger import setup_logging_from_env


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


class DepotGroup(click.Group):
    """把 DepotError 映射为 ClickException"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except DepotError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e


@click.group(cls=DepotGroup)
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="configs/depot.yml", help="配置文件路径")
def main(config_path: str) -> None:
    """depot - 包依赖解析与安装"""
    setup_logging_from_env()
    from depot.core.config import init_config
    from depot.services.container import reset_container
    init_config(config_path)
    reset_container()


# 注册各领域子命令
from depot.cli.cmd_install import register as _reg_install  # noqa: E402
from depot.cli.cmd_query import register as _reg_query  # noqa: E402
from depot.cli.cmd_check import register as _reg_check  # noqa: E402

_reg_install(main)
_reg_query(main)
_reg_check(main)
