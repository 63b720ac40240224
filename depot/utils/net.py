"""网络工具 - URL 协议校验与拼接"""

from __future__ import annotations

from urllib.parse import unquote, urlparse

from depot.core.exceptions import ValidationError

REMOTE_SCHEMES = frozenset(("http", "https"))


def url_scheme(locator: str) -> str:
    """返回来源定位符的协议；本地路径返回空串

    Windows 盘符（C:\\...）按本地路径处理。
    """
    scheme = urlparse(locator).scheme
    if len(scheme) == 1:
        return ""
    return scheme


def is_remote(locator: str) -> bool:
    return url_scheme(locator) in REMOTE_SCHEMES


def local_path_of(locator: str) -> str:
    """把本地路径或 file: URI 转换为文件系统路径"""
    if url_scheme(locator) == "file":
        return unquote(urlparse(locator).path)
    return locator


def join_url(base: str, *parts: str) -> str:
    """拼接远端路径，避免重复的 /"""
    return "/".join([base.rstrip("/"), *(p.strip("/") for p in parts)])


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    scheme = urlparse(url).scheme
    if scheme not in REMOTE_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )
