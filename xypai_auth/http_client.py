"""后端 HTTP 传输层。

功能：
- 统一基地址（base_url + 网关前缀）、JSON 头、超时；
- 用 requests.Session 发请求，阻塞调用放到线程里执行，对上层暴露 async 接口；
- 只负责“把请求发出去、把响应拿回来”，不做重试，也不解释业务错误码：
  HTTP >= 400 时抛 HttpStatusError，连接层失败原样抛 requests 异常，
  由 error_handling 统一归类。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    status_code: int
    data: Any = None


class HttpStatusError(Exception):
    """收到了响应，但状态码（或信封业务码）表示失败。"""

    def __init__(self, status_code: int, data: Any = None) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.data = data


class HttpClient:
    """基于 requests 的异步传输实现。

    AuthApiClient 只依赖 `post(path, json_body, headers)` 这一个方法，
    测试里可以替换为记录调用的桩对象。
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "",
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    async def post(
        self,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        return await asyncio.to_thread(self._request, "POST", path, json_body, headers)

    def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> HttpResponse:
        url = self.url_for(path)
        resp = self._session.request(
            method,
            url,
            headers=self._headers(headers),
            json=json_body,
            timeout=self.timeout,
        )

        data: Any = None
        if resp.content:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text

        if resp.status_code >= 400:
            logger.debug("%s %s -> %s", method, path, resp.status_code)
            raise HttpStatusError(resp.status_code, data)
        return HttpResponse(resp.status_code, data)

    def close(self) -> None:
        self._session.close()


__all__ = ["HttpResponse", "HttpStatusError", "HttpClient"]
