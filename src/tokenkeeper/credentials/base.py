"""資格情報の基盤。

資格情報は閉じたバリアント集合であり、各バリアントは対応するOAuthグラントの
リクエストパラメータへ自身をシリアライズする操作を一つだけ持つ。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class GrantType:
    """トークンエンドポイントが受け付けるグラント種別"""

    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    PASSWORD = "password"
    REFRESH_TOKEN = "refresh_token"


CLIENT_ASSERTION_TYPE_JWT = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


@dataclass(frozen=True)
class GrantParameters:
    """グラント種別とそれに付随するリクエストパラメータ"""

    grant_type: Optional[str]
    params: dict[str, str] = field(default_factory=dict)

    def to_form(self) -> dict[str, str]:
        """grant_type を含むフォームボディを返す"""
        form = dict(self.params)
        if self.grant_type:
            form["grant_type"] = self.grant_type
        return form


class Credential(ABC):
    """資格情報バリアントの抽象基底クラス"""

    @abstractmethod
    def serialize_for_grant(self) -> GrantParameters:
        """対応するグラントのパラメータを返す。"""


class ClientCredentialBase(Credential):
    """クライアントアプリケーションを認証するバリアント"""

    client_id: str

    def client_authentication(self) -> dict[str, str]:
        """他のグラントに付与するクライアント認証パラメータ"""
        return self.serialize_for_grant().params


class UserCredentialBase(Credential):
    """ユーザーを表すバリアント"""
