"""
エラー定義

tokenkeeperで使用されるエラーコードと例外クラス

プロトコルレベルの失敗（認可サーバーがグラントを拒否した等）は例外ではなく
ErrorResponseとして返却される。ここで定義する例外は呼び出し側の誤用や
トランスポート障害など、値として返せない状態のみを表す。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """エラーコード

    カテゴリ別にエラーコードを定義:
    - ARGUMENT_xxx: 引数・契約エラー
    - CONFIG_xxx: 設定エラー
    - TRANSPORT_xxx: 通信エラー
    - AUTHORITY_xxx: 認証局エラー
    - CACHE_xxx: キャッシュエラー
    """
    # 引数エラー
    ARGUMENT_MISSING = "ARGUMENT_001"
    CREDENTIAL_INVALID = "ARGUMENT_002"

    # 設定エラー
    CONFIG_INVALID_VALUE = "CONFIG_001"

    # 通信エラー
    TRANSPORT_FAILED = "TRANSPORT_001"
    TRANSPORT_UNPARSEABLE_RESPONSE = "TRANSPORT_002"

    # 認証局エラー
    AUTHORITY_VALIDATION_FAILED = "AUTHORITY_001"

    # キャッシュエラー
    CACHE_SERIALIZATION_FAILED = "CACHE_001"


@dataclass
class TokenKeeperError:
    """tokenkeeperエラー情報

    Attributes:
        code: エラーコード文字列
        message: エラーメッセージ
        details: 追加のエラー詳細情報
        recoverable: 復旧可能かどうか
    """
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    recoverable: bool = False
    log_level: int = logging.ERROR


class TokenKeeperException(Exception):
    """tokenkeeper例外クラス

    TokenKeeperErrorをラップする例外クラス
    """

    def __init__(self, error: TokenKeeperError):
        """TokenKeeperExceptionを初期化

        Args:
            error: TokenKeeperErrorインスタンス
        """
        self.error = error
        self.log_level = error.log_level
        super().__init__(f"[{error.code}] {error.message}")


class ArgumentException(TokenKeeperException, ValueError):
    """引数・資格情報の形状に関する契約違反（呼び出し側の誤用）"""


class ConfigurationException(TokenKeeperException):
    """設定の読み込み・検証エラー"""


class TransportException(TokenKeeperException):
    """通信障害、または解釈できない応答"""


class AuthorityValidationException(TokenKeeperException):
    """認証局が信頼できることを確認できなかった"""


class CacheSerializationException(TokenKeeperException):
    """シリアライズ済みキャッシュの形式が不正"""


ERROR_CODE_LOG_LEVEL: Dict[ErrorCode, int] = {
    ErrorCode.ARGUMENT_MISSING: logging.ERROR,
    ErrorCode.CREDENTIAL_INVALID: logging.ERROR,
    ErrorCode.TRANSPORT_FAILED: logging.WARNING,
    ErrorCode.TRANSPORT_UNPARSEABLE_RESPONSE: logging.WARNING,
    ErrorCode.AUTHORITY_VALIDATION_FAILED: logging.ERROR,
}


def missing_argument(*names: str) -> ArgumentException:
    """必須引数の欠落を表す例外を作成

    Args:
        names: 欠落している引数名

    Returns:
        ArgumentException: 送出すべき例外
    """
    return ArgumentException(
        TokenKeeperError(
            code=ErrorCode.ARGUMENT_MISSING.value,
            message=f"必須引数が指定されていません: {', '.join(names)}",
            details={"arguments": list(names)},
            recoverable=False,
        )
    )


def require_arguments(**arguments: Any) -> None:
    """Noneまたは空文字列の引数があればArgumentExceptionを送出する"""
    missing = [
        name for name, value in arguments.items()
        if value is None or (isinstance(value, str) and not value)
    ]
    if missing:
        raise missing_argument(*missing)


def create_transport_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    log_level: Optional[int] = None,
) -> TokenKeeperError:
    """通信エラーを作成

    Args:
        code: エラーコード
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        TokenKeeperError: 通信エラー
    """
    return TokenKeeperError(
        code=code.value,
        message=message,
        details=details,
        recoverable=True,
        log_level=log_level or ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


def create_config_error(message: str, details: Optional[Dict[str, Any]] = None) -> TokenKeeperError:
    """設定エラーを作成

    Args:
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        TokenKeeperError: 設定エラー
    """
    return TokenKeeperError(
        code=ErrorCode.CONFIG_INVALID_VALUE.value,
        message=message,
        details=details,
        recoverable=False,
        log_level=logging.ERROR,
    )
