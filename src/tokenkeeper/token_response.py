"""
トークン応答

トークンエンドポイントの生の応答ボディを、成功（SuccessResponse）または
エラー（ErrorResponse）のどちらかに分類する。呼び出し側の判定は is_error だけで済む。
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import re
import time
from typing import Any, ClassVar, Mapping, Optional, Tuple, Union

from tokenkeeper.credentials.identity import IdTokenDecodeError, UserIdentifier
from tokenkeeper.diagnostics import token_digest
from tokenkeeper.errors import ErrorCode, TransportException, create_transport_error

logger = logging.getLogger(__name__)

RawBody = Union[str, bytes, Mapping[str, Any], None]

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def to_integer(value: Any) -> int:
    """整数らしい値を整数に変換する（解釈できない値は 0）"""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8", "replace") if isinstance(value, bytes) else value
        match = _LEADING_INT.match(text)
        if match:
            return int(match.group(1))
    return 0


class TokenResponse:
    """トークン応答の基底クラス（SuccessResponse | ErrorResponse）"""

    OAUTH_FIELDS: ClassVar[Tuple[str, ...]] = ()

    @property
    def is_error(self) -> bool:
        raise NotImplementedError

    @classmethod
    def _recognized(cls, fields: Mapping[str, Any]) -> dict[str, Any]:
        unrecognized = sorted(key for key in fields if key not in cls.OAUTH_FIELDS)
        if unrecognized:
            logger.debug("token_response.unrecognized_fields kind=%s fields=%s", cls.__name__, unrecognized)
        return {key: fields[key] for key in cls.OAUTH_FIELDS if key in fields}


@dataclass(frozen=True)
class SuccessResponse(TokenResponse):
    """アクセストークンを含む応答。各フィールドはフローによって欠けることがある。"""

    OAUTH_FIELDS: ClassVar[Tuple[str, ...]] = (
        "access_token",
        "expires_in",
        "expires_on",
        "id_token",
        "not_before",
        "refresh_token",
        "resource",
        "scope",
        "token_type",
    )

    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    id_token: Optional[str] = field(default=None, repr=False)
    token_type: Optional[str] = None
    resource: Optional[str] = None
    scope: Optional[str] = None
    not_before: Optional[str] = None
    expires_in: int = 0
    expires_on: int = 0
    user_id: UserIdentifier = field(default_factory=UserIdentifier)

    @property
    def is_error(self) -> bool:
        return False

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        now: Optional[float] = None,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> "SuccessResponse":
        """応答フィールドから生成する

        expires_on はサーバーの値に関わらず常に now + expires_in で再計算する。
        """
        log = log or logging.LoggerAdapter(logger, {})
        recognized = cls._recognized(fields)
        recognized.pop("expires_on", None)
        expires_in = to_integer(recognized.pop("expires_in", None))
        issued_at = int(time.time() if now is None else now)
        id_token = recognized.get("id_token")
        response = cls(
            expires_in=expires_in,
            expires_on=issued_at + expires_in,
            user_id=_user_id_from(id_token, log),
            **{key: _as_text(value) for key, value in recognized.items()},
        )
        log.info(
            "token_response.parsed kind=success access_token_digest=%s refresh_token_digest=%s expires_on=%s",
            token_digest(response.access_token),
            token_digest(response.refresh_token),
            response.expires_on,
        )
        return response

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SuccessResponse":
        """to_dict の結果から復元する（expires_on は保存値をそのまま使う）"""
        recognized = {key: data[key] for key in cls.OAUTH_FIELDS if key in data}
        return cls(
            expires_in=to_integer(recognized.pop("expires_in", None)),
            expires_on=to_integer(recognized.pop("expires_on", None)),
            user_id=UserIdentifier(data.get("user_id") or {}),
            **{key: _as_text(value) for key, value in recognized.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            key: getattr(self, key) for key in self.OAUTH_FIELDS if getattr(self, key) is not None
        }
        data["user_id"] = self.user_id.to_dict()
        return data

    def is_expired(self, now: Optional[float] = None, buffer_seconds: int = 0) -> bool:
        current = time.time() if now is None else now
        return self.expires_on <= current + buffer_seconds


@dataclass(frozen=True)
class ErrorResponse(TokenResponse):
    """エラーコードを含む応答"""

    OAUTH_FIELDS: ClassVar[Tuple[str, ...]] = (
        "error",
        "error_description",
        "error_codes",
        "timestamp",
        "trace_id",
        "correlation_id",
        "submit_url",
        "context",
    )

    error: Optional[str] = None
    error_description: Optional[str] = None
    error_codes: Tuple[Any, ...] = ()
    timestamp: Optional[str] = None
    trace_id: Optional[str] = None
    correlation_id: Optional[str] = None
    submit_url: Optional[str] = None
    context: Optional[Any] = None

    @property
    def is_error(self) -> bool:
        return True

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        log: Optional[logging.LoggerAdapter] = None,
    ) -> "ErrorResponse":
        log = log or logging.LoggerAdapter(logger, {})
        recognized = cls._recognized(fields)
        codes = recognized.pop("error_codes", None)
        if codes is None:
            error_codes: Tuple[Any, ...] = ()
        elif isinstance(codes, (list, tuple)):
            error_codes = tuple(codes)
        else:
            error_codes = (codes,)
        response = cls(error_codes=error_codes, **recognized)
        log.warning(
            "token_response.parsed kind=error error=%s error_description=%s",
            response.error,
            response.error_description,
        )
        return response

    def to_dict(self) -> dict[str, Any]:
        data = {key: getattr(self, key) for key in self.OAUTH_FIELDS if getattr(self, key) is not None}
        data["error_codes"] = list(self.error_codes)
        return data


def parse(
    raw_body: RawBody,
    now: Optional[float] = None,
    log: Optional[logging.LoggerAdapter] = None,
) -> TokenResponse:
    """生の応答ボディを TokenResponse に分類する

    Args:
        raw_body: JSON 文字列/バイト列、デコード済みのマッピング、または None。
        now: 発行時刻（エポック秒）。省略時は現在時刻。
        log: 相関IDを付与するロガーアダプタ。

    Returns:
        TokenResponse: ボディが無い（空・JSON の null を含む）か error が真値なら
            ErrorResponse、それ以外は SuccessResponse。

    Raises:
        TransportException: ボディが JSON オブジェクトとして解釈できない場合。
    """
    log = log or logging.LoggerAdapter(logger, {})
    log.debug("token_response.parse_started")
    if raw_body is None:
        log.warning("token_response.parsed kind=error reason=empty_body")
        return ErrorResponse()

    fields = _decode_body(raw_body)
    if fields is None:
        log.warning("token_response.parsed kind=error reason=null_body")
        return ErrorResponse()
    if fields.get("error"):
        return ErrorResponse.from_fields(fields, log=log)
    return SuccessResponse.from_fields(fields, now=now, log=log)


def is_error(response: TokenResponse) -> bool:
    """応答がエラーかどうかを返す"""
    return response.is_error


def _decode_body(raw_body: Union[str, bytes, Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    if isinstance(raw_body, Mapping):
        return raw_body
    if not raw_body.strip():
        return None
    try:
        decoded = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise TransportException(
            create_transport_error(
                ErrorCode.TRANSPORT_UNPARSEABLE_RESPONSE,
                "トークン応答をJSONとして解釈できません。",
            )
        ) from exc
    if decoded is None:
        return None
    if not isinstance(decoded, dict):
        raise TransportException(
            create_transport_error(
                ErrorCode.TRANSPORT_UNPARSEABLE_RESPONSE,
                "トークン応答がJSONオブジェクトではありません。",
                details={"type": type(decoded).__name__},
            )
        )
    return decoded


def _user_id_from(id_token: Any, log: logging.LoggerAdapter) -> UserIdentifier:
    if not id_token:
        log.warning("token_response.id_token_missing")
        return UserIdentifier.empty()
    try:
        return UserIdentifier.from_id_token(str(id_token))
    except IdTokenDecodeError as exc:
        log.warning("token_response.id_token_undecodable reason=%s", exc)
        return UserIdentifier.empty()


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
