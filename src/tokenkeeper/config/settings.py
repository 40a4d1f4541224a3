"""Pydantic V2 ベースの統合設定モデル"""

from typing import Any, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_AUTHORITY_HOST = "login.windows.net"
DEFAULT_TENANT = "common"


class TokenKeeperSettings(BaseSettings):
    """tokenkeeper の統合設定"""

    model_config = SettingsConfigDict(
        env_prefix="TOKENKEEPER_",
        env_file=".env",
        extra="forbid",
    )

    # 認証局設定
    authority_host: str = Field(default=DEFAULT_AUTHORITY_HOST, min_length=1)
    tenant: str = Field(default=DEFAULT_TENANT, min_length=1)
    validate_authority: bool = False

    # 通信設定
    timeout: float = Field(default=30.0, gt=0)

    # キャッシュ設定
    expiration_buffer_seconds: int = Field(default=300, ge=0)

    # 診断設定
    correlation_id: Optional[str] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[Any, ...]:
        """設定ソースの優先順位をカスタマイズ（env > dotenv > init）"""
        return (
            env_settings,
            dotenv_settings,
            init_settings,
            file_secret_settings,
        )

    @field_validator("authority_host")
    @classmethod
    def normalize_authority_host(cls, value: str) -> str:
        """スキームや末尾スラッシュを取り除いたホスト名に正規化"""
        host = value.strip()
        for prefix in ("https://", "http://"):
            if host.lower().startswith(prefix):
                host = host[len(prefix):]
        host = host.rstrip("/")
        if not host or "/" in host:
            raise ValueError(f"authority_host はホスト名のみを指定してください: {value}")
        return host.lower()
