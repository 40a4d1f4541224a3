"""
認証コンテキスト

Azure Active Directory や ADFS からトークンを取得するためのファサード。
一つの Authority と一つの TokenCache を保持し、各公開操作を新しく作った
TokenRequest に委譲する。
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional
import uuid

from tokenkeeper.authority import Authority
from tokenkeeper.cache.base import TokenCache
from tokenkeeper.cache.memory import MemoryCache
from tokenkeeper.config.settings import DEFAULT_AUTHORITY_HOST, DEFAULT_TENANT, TokenKeeperSettings
from tokenkeeper.credentials import as_client_credential
from tokenkeeper.errors import require_arguments
from tokenkeeper.token_request import DEFAULT_EXPIRATION_BUFFER_SECONDS, TokenRequest
from tokenkeeper.token_response import TokenResponse
from tokenkeeper.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

FORM_POST = "form_post"
CODE = "code"


class AuthenticationContext:
    """認証局からトークンを取得する主要クラス"""

    def __init__(
        self,
        authority_host: str = DEFAULT_AUTHORITY_HOST,
        tenant: str = DEFAULT_TENANT,
        *,
        validate_authority: bool = False,
        token_cache: Optional[TokenCache] = None,
        transport: Optional[Transport] = None,
        correlation_id: Optional[str] = None,
        timeout: float = 30.0,
        expiration_buffer_seconds: int = DEFAULT_EXPIRATION_BUFFER_SECONDS,
        now_fn: Optional[Callable[[], float]] = None,
    ) -> None:
        """AuthenticationContextを初期化する。

        Args:
            authority_host: 認証局のホスト名（例: login.windows.net）。
            tenant: 認証先のテナント（例: contoso.onmicrosoft.com）。
            validate_authority: トークン要求の前に認証局を検証するかどうか。
            token_cache: トークンの保存先。省略時は空の MemoryCache。
            transport: 通信に使うトランスポート。省略時は HttpxTransport。
            correlation_id: 以降のリクエストに付与する相関ID。省略時は新しいUUID。
            timeout: 既定トランスポートのタイムアウト秒数。
            expiration_buffer_seconds: 期限切れとみなすまでの余裕秒数。
            now_fn: 現在時刻（エポック秒）を返す関数。
        """

        require_arguments(authority_host=authority_host, tenant=tenant)
        self.authority = Authority(authority_host, tenant, validate_authority)
        self.token_cache = token_cache if token_cache is not None else MemoryCache()
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else HttpxTransport(timeout=timeout)
        self._correlation_id = correlation_id or str(uuid.uuid4())
        self._expiration_buffer_seconds = expiration_buffer_seconds
        self._now = now_fn or time.time

    @classmethod
    def from_settings(
        cls,
        settings: TokenKeeperSettings,
        *,
        token_cache: Optional[TokenCache] = None,
        transport: Optional[Transport] = None,
    ) -> "AuthenticationContext":
        """設定から生成する"""
        return cls(
            settings.authority_host,
            settings.tenant,
            validate_authority=settings.validate_authority,
            token_cache=token_cache,
            transport=transport,
            correlation_id=settings.correlation_id,
            timeout=settings.timeout,
            expiration_buffer_seconds=settings.expiration_buffer_seconds,
        )

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    @correlation_id.setter
    def correlation_id(self, value: str) -> None:
        """以降のリクエストヘッダーとログに使う相関IDを設定する"""
        require_arguments(correlation_id=value)
        self._correlation_id = value

    def acquire_token_for_client(self, resource: str, client_cred: Any) -> TokenResponse:
        """クライアントの資格情報のみでアクセストークンを取得する。

        Args:
            resource: 要求するリソース。
            client_cred: クライアントIDの文字列、または ClientCredential /
                ClientAssertion / ClientAssertionCertificate。

        Returns:
            TokenResponse: 成功またはエラーの応答。
        """

        require_arguments(resource=resource, client_cred=client_cred)
        return self._token_request_for(client_cred).get_for_client(resource)

    def acquire_token_with_authorization_code(
        self,
        auth_code: str,
        redirect_uri: str,
        client_cred: Any,
        resource: Optional[str] = None,
    ) -> TokenResponse:
        """認可サーバーが発行した認可コードでアクセストークンを取得する。

        Args:
            auth_code: 認可コード。
            redirect_uri: 認可コード要求時に渡したリダイレクトURI。
            client_cred: クライアント資格情報。
            resource: 要求するリソース。

        Returns:
            TokenResponse: 成功またはエラーの応答。
        """

        require_arguments(auth_code=auth_code, redirect_uri=redirect_uri, client_cred=client_cred)
        return self._token_request_for(client_cred).get_with_authorization_code(
            auth_code, redirect_uri, resource
        )

    def acquire_token_with_refresh_token(
        self,
        refresh_token: str,
        client_cred: Any,
        resource: Optional[str] = None,
    ) -> TokenResponse:
        """取得済みのリフレッシュトークンでアクセストークンを取得する。"""

        require_arguments(refresh_token=refresh_token, client_cred=client_cred)
        return self._token_request_for(client_cred).get_with_refresh_token(refresh_token, resource)

    def acquire_token_for_user(self, resource: str, client_cred: Any, user: Any) -> TokenResponse:
        """特定のユーザーのアクセストークンを取得する。

        user の種類によって次の三つのシナリオに対応する。

        1. UserCredential: ユーザー名/パスワードフロー。
        2. UserAssertion: On-Behalf-Of フロー。受け取ったアクセストークンを
           別リソース向けのトークンと交換する。
        3. UserIdentifier: ネットワーク接続は行わず（期限切れ時のリフレッシュを
           除く）、以前取得したトークンの user_id でキャッシュを検索する。

        Args:
            resource: 要求するトークンの受け手。
            client_cred: クライアント資格情報。
            user: UserCredential / UserAssertion / UserIdentifier。

        Returns:
            TokenResponse: 成功またはエラーの応答。
        """

        require_arguments(resource=resource, client_cred=client_cred, user=user)
        return self._token_request_for(client_cred).get_with_user_credential(user, resource)

    def authorization_request_url(
        self,
        resource: str,
        client_id: str,
        redirect_uri: str,
        extra_query_params: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """authorize エンドポイントのURLを組み立てる（キャッシュ・通信は行わない）。

        呼び出し側が extra_query_params で明示したキーはそのまま使い、
        指定の無い必須パラメータだけを補う。
        """

        require_arguments(resource=resource, client_id=client_id, redirect_uri=redirect_uri)
        params = {
            "client_id": client_id,
            "response_mode": FORM_POST,
            "redirect_uri": redirect_uri,
            "resource": resource,
            "response_type": CODE,
        }
        params.update(extra_query_params or {})
        return self.authority.authorize_endpoint(params)

    def close(self) -> None:
        """生成したトランスポートをクリーンアップ"""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            self._transport.close()

    def __enter__(self) -> "AuthenticationContext":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def _token_request_for(self, client_cred: Any) -> TokenRequest:
        client = as_client_credential(client_cred)
        logger.debug("authentication_context.dispatch client=%s", type(client).__name__)
        return TokenRequest(
            self.authority,
            client,
            self.token_cache,
            self._transport,
            correlation_id=self._correlation_id,
            expiration_buffer_seconds=self._expiration_buffer_seconds,
            now_fn=self._now,
        )
