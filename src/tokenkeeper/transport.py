"""トークンエンドポイントとの通信を担うトランスポート層。"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Mapping, Optional, Protocol

import httpx

from tokenkeeper.errors import (
    ErrorCode,
    TransportException,
    create_transport_error,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """トランスポートが返す生の応答"""

    status_code: int
    body: str
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    """同期HTTPトランスポートの共通インターフェース"""

    def issue(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[Mapping[str, str]] = None,
    ) -> TransportResponse: ...


class HttpxTransport:
    """httpx.Client を用いた既定のトランスポート"""

    def __init__(
        self,
        *,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        # http_client が提供されない場合のみ内部で生成し、その場合のみ close する
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    def issue(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[Mapping[str, str]] = None,
    ) -> TransportResponse:
        """リクエストを送信し、応答を TransportResponse に変換する

        Raises:
            TransportException: DNS/TLS/接続/タイムアウトなどの通信障害
        """
        try:
            response = self._client.request(
                method,
                url,
                headers=dict(headers),
                data=dict(body) if body is not None else None,
            )
        except httpx.HTTPError as exc:
            logger.warning("transport.failed method=%s url=%s reason=%s", method, url, type(exc).__name__)
            raise TransportException(
                create_transport_error(
                    ErrorCode.TRANSPORT_FAILED,
                    f"トークンエンドポイントへの通信に失敗しました: {url}",
                    details={"url": url, "reason": type(exc).__name__},
                )
            ) from exc

        logger.debug("transport.response method=%s url=%s status=%s", method, url, response.status_code)
        return TransportResponse(
            status_code=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        """生成した httpx.Client をクリーンアップ"""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()
