"""远端内容获取客户端：流式下载到文件或整体读取到内存。"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

import httpx

from functemplate.domain.errors import FetchError

logger = logging.getLogger(__name__)


class ContentFetcher:
    """基于 httpx 的异步内容获取器，非 2xx 响应一律视为失败。"""
    def __init__(
        self,
        timeout_seconds: int = 30,
        max_connections: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._closed = False
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=5),
            follow_redirects=True,
            transport=transport,
        )

    def _client_or_raise(self) -> httpx.AsyncClient:
        """返回可用客户端；若已关闭则抛出异常。"""
        if self._closed:
            raise RuntimeError("ContentFetcher is already closed")
        return self._client

    async def aclose(self) -> None:
        """关闭底层 HTTP 连接池。"""
        if self._closed:
            return
        await self._client.aclose()
        self._closed = True

    async def __aenter__(self) -> ContentFetcher:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    @staticmethod
    def _duration_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    def _failed(self, address: str, op: str, started: float, exc: Exception) -> FetchError:
        """记录失败日志并转换为领域异常。"""
        status_code = None
        if isinstance(exc, httpx.HTTPStatusError):
            status_code = exc.response.status_code
        logger.error(
            "content fetch failed",
            extra={
                "event": "fetch.failed",
                "external_service": "content",
                "op": op,
                "duration_ms": self._duration_ms(started),
                "status_code": status_code,
                "error_type": type(exc).__name__,
                "error": str(exc),
                "payload_preview": {"address": address},
            },
        )
        if status_code is not None:
            return FetchError(address, f"unexpected status {status_code}", status_code=status_code)
        return FetchError(address, str(exc) or type(exc).__name__)

    def _succeeded(self, address: str, op: str, started: float, status_code: int) -> None:
        logger.debug(
            "content fetch completed",
            extra={
                "event": "fetch.succeeded",
                "external_service": "content",
                "op": op,
                "duration_ms": self._duration_ms(started),
                "status_code": status_code,
                "payload_preview": {"address": address},
            },
        )

    async def fetch_to_file(self, address: str, destination: Path) -> Path:
        """流式下载到目标文件；响应状态确认成功后才打开目标文件。

        下载中途失败时已写入的部分文件不会被清理。
        """
        op = "fetch.to_file"
        started = time.perf_counter()
        try:
            async with self._client_or_raise().stream("GET", address) as response:
                response.raise_for_status()
                # 文件打开、写入与关闭均放到线程中执行，不阻塞其他并发任务。
                handle = await asyncio.to_thread(destination.open, "wb")
                try:
                    async for chunk in response.aiter_bytes():
                        await asyncio.to_thread(handle.write, chunk)
                finally:
                    await asyncio.to_thread(handle.close)
                status_code = response.status_code
        except httpx.HTTPError as exc:
            raise self._failed(address, op, started, exc) from exc
        self._succeeded(address, op, started, status_code)
        return destination

    async def _get(self, address: str, op: str) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = await self._client_or_raise().get(address)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise self._failed(address, op, started, exc) from exc
        self._succeeded(address, op, started, response.status_code)
        return response

    async def fetch_body(self, address: str) -> str:
        """读取完整响应体文本。"""
        response = await self._get(address, op="fetch.body")
        return response.text

    async def fetch_json(self, address: str) -> Any:
        """读取响应体并按 JSON 解析。"""
        response = await self._get(address, op="fetch.json")
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise FetchError(address, f"invalid JSON body: {exc}") from exc
