"""ログ出力向けの補助関数。

トークンや秘密情報は平文でログに出さず、SHA-256ダイジェストのみを渡す。
相関IDはリクエストごとに明示的に受け渡される。
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, MutableMapping


def token_digest(token: str | None) -> str:
    """トークンの不可逆なダイジェストを返す。"""
    return hashlib.sha256((token or "").encode("utf-8")).hexdigest()


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """ログメッセージに相関IDを付与するアダプタ。"""

    def __init__(self, logger: logging.Logger, correlation_id: str | None) -> None:
        super().__init__(logger, {"correlation_id": correlation_id})

    @property
    def correlation_id(self) -> str | None:
        return self.extra.get("correlation_id") if self.extra else None

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("correlation_id", self.correlation_id)
        kwargs["extra"] = extra
        return f"correlation_id={self.correlation_id} {msg}", kwargs
