"""depot 日志配置

普通文本与结构化 JSON 两种输出格式；CLI 入口通过环境变量选择。
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

ENV_LOG_LEVEL = "DEPOT_LOG_LEVEL"
ENV_LOG_JSON = "DEPOT_LOG_JSON"

_TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于 CI 流水线消费

    输出字段: timestamp / level / logger / message / module / line，
    有异常时追加 exception。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            # record.created 是事件发生时间
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def reset_logging() -> None:
    """清理根日志器上已注册的 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器，输出到 stderr

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR）
        json_output: 为 True 时使用 JSON 格式
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)


def setup_logging_from_env() -> None:
    """按 DEPOT_LOG_LEVEL / DEPOT_LOG_JSON 环境变量配置日志"""
    setup_logging(
        level=os.getenv(ENV_LOG_LEVEL, "INFO"),
        json_output=os.getenv(ENV_LOG_JSON, "") == "1",
    )
