"""HTTP 传输层

基于 urllib 的 Fetcher 实现。404 映射为 NotFoundError，其余网络错误为 FetchError。
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from typing import Any

from depot.core.exceptions import FetchError, NotFoundError
from depot.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


class HttpFetcher:
    """http/https 拉取器"""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def _open(self, uri: str) -> Any:
        validate_url_scheme(uri, context="fetch")
        request = urllib.request.Request(uri)
        try:
            return urllib.request.urlopen(request, timeout=self.timeout)  # nosec B310
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise NotFoundError(f"远端不存在: {uri}") from e
            raise FetchError(f"拉取失败 ({e.code}): {uri}") from e
        except (urllib.error.URLError, OSError) as e:
            raise FetchError(f"拉取失败: {uri} - {e}") from e

    def fetch(self, uri: str) -> bytes:
        logger.debug("GET %s", uri)
        with self._open(uri) as resp:
            try:
                return resp.read()
            except OSError as e:
                raise FetchError(f"读取响应失败: {uri} - {e}") from e
