"""設定管理 - 設定の読み込みと管理"""

from tokenkeeper.config.manager import ConfigManager
from tokenkeeper.config.settings import (
    DEFAULT_AUTHORITY_HOST,
    DEFAULT_TENANT,
    TokenKeeperSettings,
)

__all__ = [
    "ConfigManager",
    "DEFAULT_AUTHORITY_HOST",
    "DEFAULT_TENANT",
    "TokenKeeperSettings",
]
