"""
Shared — サービス間 HTTP クライアントの基底クラス

他サービスの Result 形式 API を呼び出す。
通信エラー (接続失敗・タイムアウト) は例外にせず REMOTE_CALL の Result にする。
"""

from typing import Any

import httpx

from .log import get_logger
from .results import ErrorKind, Result, from_response

logger = get_logger(__name__)


class ServiceClient:
    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def _get(self, path: str) -> Result:
        return await self._request("GET", path)

    async def _post(self, path: str, payload: dict[str, Any] | None = None) -> Result:
        return await self._request("POST", path, payload)

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Result:
        url = f"{self.base_url}{path}"
        try:
            resp = await self.client.request(method, url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            return Result.fail(ErrorKind.REMOTE_CALL, f"{method} {url} failed: {e}")
        return from_response(resp)
