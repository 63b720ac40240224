"""URL 工具与 HTTP 传输层测试"""

from __future__ import annotations

import io
import urllib.error
import urllib.request
from unittest.mock import MagicMock, patch

import pytest

from depot.core.exceptions import FetchError, NotFoundError, ValidationError
from depot.core.transport import HttpFetcher
from depot.utils.net import (
    is_remote,
    join_url,
    local_path_of,
    url_scheme,
    validate_url_scheme,
)


class TestValidateUrlScheme:
    def test_http_ok(self) -> None:
        validate_url_scheme("http://example.com/api")

    def test_https_ok(self) -> None:
        validate_url_scheme("https://example.com/api")

    @pytest.mark.parametrize("url", ["file:///etc/passwd", "ftp://evil.com/payload", "/local/path"])
    def test_rejected(self, url: str) -> None:
        with pytest.raises(ValidationError, match="不允许的 URL 协议"):
            validate_url_scheme(url)

    def test_context_in_error(self) -> None:
        with pytest.raises(ValidationError, match="fetch"):
            validate_url_scheme("file:///x", context="fetch")


class TestLocators:
    @pytest.mark.parametrize("locator,scheme", [
        ("http://x", "http"),
        ("file:///tmp/a.pkg", "file"),
        ("/tmp/a.pkg", ""),
        ("relative/a.pkg", ""),
        ("C:\\pkgs\\a.pkg", ""),
    ])
    def test_url_scheme(self, locator: str, scheme: str) -> None:
        assert url_scheme(locator) == scheme

    def test_is_remote(self) -> None:
        assert is_remote("https://x")
        assert not is_remote("file:///x")

    def test_local_path_of(self) -> None:
        assert local_path_of("file:///tmp/a%20b.pkg") == "/tmp/a b.pkg"
        assert local_path_of("/tmp/a.pkg") == "/tmp/a.pkg"

    def test_join_url(self) -> None:
        assert join_url("http://x/repo/", "/quick/index.rz") == "http://x/repo/quick/index.rz"


def _response(body: bytes, headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = body
    resp.headers = headers or {}
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    return resp


class TestHttpFetcher:
    def test_fetch(self) -> None:
        with patch.object(urllib.request, "urlopen", return_value=_response(b"data")) as mock_open:
            assert HttpFetcher(timeout=5).fetch("http://x/a") == b"data"
        request = mock_open.call_args[0][0]
        assert request.full_url == "http://x/a"
        assert mock_open.call_args[1]["timeout"] == 5

    def test_not_found(self) -> None:
        err = urllib.error.HTTPError("http://x/a", 404, "Not Found", {}, io.BytesIO())
        with patch.object(urllib.request, "urlopen", side_effect=err):
            with pytest.raises(NotFoundError, match="远端不存在"):
                HttpFetcher().fetch("http://x/a")

    def test_server_error(self) -> None:
        err = urllib.error.HTTPError("http://x/a", 500, "boom", {}, io.BytesIO())
        with patch.object(urllib.request, "urlopen", side_effect=err):
            with pytest.raises(FetchError, match="500"):
                HttpFetcher().fetch("http://x/a")

    def test_connection_error(self) -> None:
        with patch.object(urllib.request, "urlopen", side_effect=urllib.error.URLError("refused")):
            with pytest.raises(FetchError, match="refused"):
                HttpFetcher().fetch("http://x/a")

    def test_rejects_non_http(self) -> None:
        with pytest.raises(ValidationError):
            HttpFetcher().fetch("file:///etc/passwd")
