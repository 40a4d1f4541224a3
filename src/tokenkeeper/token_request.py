"""
トークン要求のフロー制御

グラント種別ごとに、キャッシュから返すか、リフレッシュトークンで静かに更新するか、
ネットワーク越しに交換するかを決める。呼び出しごとに一つ生成される。

共通規則:
- ネットワーク交換の結果は token_response.parse で一度だけ分類する
- SuccessResponse は返却前にキャッシュへ書き込む。ユーザー文脈のトークンは
  識別キーが得られた場合に限る
- ErrorResponse はキャッシュへ書き込まない。失効したリフレッシュトークンの
  エントリは削除する
"""

from __future__ import annotations

from dataclasses import replace
import json
import logging
import time
from typing import Callable, Mapping, Optional

from tokenkeeper import __version__
from tokenkeeper.authority import Authority
from tokenkeeper.cache.base import CacheEntry, TokenCache
from tokenkeeper.credentials import (
    ClientCredentialBase,
    GrantType,
    UserIdentifier,
    as_user_credential,
)
from tokenkeeper.diagnostics import CorrelationLoggerAdapter, token_digest
from tokenkeeper.errors import ErrorCode, TransportException, create_transport_error, require_arguments
from tokenkeeper.token_response import ErrorResponse, SuccessResponse, TokenResponse, parse
from tokenkeeper.transport import Transport, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_BUFFER_SECONDS = 300
NO_CACHED_TOKEN = "no_cached_token"


class TokenRequest:
    """一回の公開操作に対応するトークン要求"""

    def __init__(
        self,
        authority: Authority,
        client: ClientCredentialBase,
        token_cache: TokenCache,
        transport: Transport,
        *,
        correlation_id: Optional[str] = None,
        expiration_buffer_seconds: int = DEFAULT_EXPIRATION_BUFFER_SECONDS,
        now_fn: Optional[Callable[[], float]] = None,
    ) -> None:
        self._authority = authority
        self._client = client
        self._cache = token_cache
        self._transport = transport
        self._correlation_id = correlation_id
        self._buffer = expiration_buffer_seconds
        self._now = now_fn or time.time
        self._log = CorrelationLoggerAdapter(logger, correlation_id)

    # ------------------------------------------------------------------
    # 公開操作
    # ------------------------------------------------------------------

    def get_for_client(self, resource: str) -> TokenResponse:
        """クライアント資格情報グラント

        有効期限内のキャッシュがあればそれを返し、無ければ（期限切れを含む）
        ネットワーク越しに交換する。
        """
        require_arguments(resource=resource)
        entry = self._find(resource, None)
        if self._is_usable(entry, resource):
            self._log.info("token_request.cache_hit grant=%s", GrantType.CLIENT_CREDENTIALS)
            return entry.response

        response = self._exchange(self._client.serialize_for_grant().to_form(), resource)
        if isinstance(response, SuccessResponse):
            self._store(resource, None, response)
        return response

    def get_with_authorization_code(
        self,
        auth_code: str,
        redirect_uri: str,
        resource: Optional[str] = None,
    ) -> TokenResponse:
        """認可コードグラント（コードは使い捨てのため常にネットワーク交換）"""
        require_arguments(auth_code=auth_code, redirect_uri=redirect_uri)
        form = self._client_form(GrantType.AUTHORIZATION_CODE)
        form.update({"code": auth_code, "redirect_uri": redirect_uri})
        response = self._exchange(form, resource)
        if isinstance(response, SuccessResponse):
            self._store_for_user(resource or response.resource, response, response.user_id)
        return response

    def get_with_refresh_token(
        self,
        refresh_token: str,
        resource: Optional[str] = None,
    ) -> TokenResponse:
        """呼び出し側が保持するリフレッシュトークンで直接交換する

        応答にIDトークンが無い場合は、同じリフレッシュトークンを持つキャッシュ
        エントリのユーザーで保存する。どちらも無ければキャッシュしない。
        """
        require_arguments(refresh_token=refresh_token)
        response = self._refresh(refresh_token, resource)
        if isinstance(response, SuccessResponse):
            self._store_for_user(
                resource or response.resource,
                response,
                response.user_id,
                self._owner_of(refresh_token),
            )
        return response

    def get_with_user_credential(self, user: object, resource: str) -> TokenResponse:
        """ユーザー資格情報のバリアントに応じてトークンを取得する

        - UserIdentifier: キャッシュのみ。期限切れならリフレッシュを試みる
        - UserCredential / UserAssertion: キャッシュを確認し、無ければ対応するグラントで交換
        """
        require_arguments(user=user, resource=resource)
        user = as_user_credential(user)
        if isinstance(user, UserIdentifier):
            return self._get_from_cache_only(user, resource)

        hint = user.user_hint
        entry = self._find(resource, hint) if hint.key else None
        if self._is_usable(entry, resource):
            self._log.info("token_request.cache_hit grant=%s", user.serialize_for_grant().grant_type)
            return entry.response

        form = self._client_form(None)
        form.update(user.serialize_for_grant().to_form())
        response = self._exchange(form, resource)
        if isinstance(response, SuccessResponse):
            self._store_for_user(resource, response, response.user_id, hint)
        return response

    # ------------------------------------------------------------------
    # 内部処理
    # ------------------------------------------------------------------

    def _get_from_cache_only(self, user: UserIdentifier, resource: str) -> TokenResponse:
        entry = self._find(resource, user)
        if entry is None:
            self._log.info("token_request.cache_miss mode=cache_only")
            return self._no_cached_token("キャッシュに該当するトークンがありません。")
        if self._is_usable(entry, resource):
            self._log.info("token_request.cache_hit mode=cache_only")
            return entry.response
        if not entry.refresh_token:
            self._log.info("token_request.cache_stale mode=cache_only refresh_token=absent")
            return self._no_cached_token("キャッシュのトークンは期限切れで、リフレッシュトークンがありません。")

        self._log.info(
            "token_request.silent_refresh cached_resource=%s resource=%s refresh_token_digest=%s",
            entry.resource,
            resource,
            token_digest(entry.refresh_token),
        )
        response = self._refresh(entry.refresh_token, resource)
        if isinstance(response, SuccessResponse):
            self._store(resource, entry.user_id, response)
        elif entry.resource == resource or entry.is_expired(now=self._now()):
            self._cache.remove(entry.authority, entry.client_id, entry.resource, entry.user_id)
        else:
            # 別リソースのエントリはアクセストークンが有効な間は残す
            self._log.info("token_request.refresh_failed cached_entry=kept resource=%s", entry.resource)
        return response

    def _refresh(self, refresh_token: str, resource: Optional[str]) -> TokenResponse:
        form = self._client_form(GrantType.REFRESH_TOKEN)
        form["refresh_token"] = refresh_token
        response = self._exchange(form, resource)
        if isinstance(response, SuccessResponse) and not response.refresh_token:
            # 新しいリフレッシュトークンが返らない場合は元のものを引き継ぐ
            response = replace(response, refresh_token=refresh_token)
        return response

    def _client_form(self, grant_type: Optional[str]) -> dict[str, str]:
        form = dict(self._client.client_authentication())
        if grant_type:
            form["grant_type"] = grant_type
        return form

    def _find(self, resource: Optional[str], user_id: Optional[UserIdentifier]) -> Optional[CacheEntry]:
        return self._cache.find(self._authority.identifier, self._client.client_id, resource, user_id)

    def _store(
        self,
        resource: Optional[str],
        user_id: Optional[UserIdentifier],
        response: SuccessResponse,
    ) -> None:
        self._cache.store(self._authority.identifier, self._client.client_id, resource, user_id, response)

    def _store_for_user(
        self,
        resource: Optional[str],
        response: SuccessResponse,
        *user_ids: Optional[UserIdentifier],
    ) -> None:
        """ユーザー文脈のトークンを最初に識別キーを持つ user_id で保存する

        識別キーが得られなければ保存しない（アプリ用のキーと衝突させない）。
        """
        for user_id in user_ids:
            if user_id is not None and user_id.key:
                self._store(resource, user_id, response)
                return
        self._log.warning("token_request.store_skipped reason=no_user_key resource=%s", resource)

    def _owner_of(self, refresh_token: str) -> Optional[UserIdentifier]:
        for entry in self._cache.entries():
            if (
                entry.authority == self._authority.identifier
                and entry.client_id == self._client.client_id
                and entry.refresh_token == refresh_token
            ):
                return entry.user_id
        return None

    def _is_usable(self, entry: Optional[CacheEntry], resource: Optional[str]) -> bool:
        return (
            entry is not None
            and bool(entry.access_token)
            and entry.resource == resource
            and not entry.is_expired(now=self._now(), buffer_seconds=self._buffer)
        )

    def _no_cached_token(self, description: str) -> ErrorResponse:
        return ErrorResponse(
            error=NO_CACHED_TOKEN,
            error_description=description,
            correlation_id=self._correlation_id,
        )

    def _exchange(self, form: Mapping[str, str], resource: Optional[str]) -> TokenResponse:
        """トークンエンドポイントへ POST し、応答を一度だけ分類する

        Raises:
            AuthorityValidationException: 認証局の検証が有効で、検証に失敗した場合
            TransportException: 通信障害、または解釈できない応答の場合
        """
        if self._authority.validate_authority:
            self._authority.validate(self._transport)

        body = dict(form)
        if resource is not None:
            body["resource"] = resource
        self._log.info(
            "token_request.exchange grant=%s endpoint=%s",
            body.get("grant_type"),
            self._authority.token_endpoint,
        )
        raw = self._transport.issue("POST", self._authority.token_endpoint, self._headers(), body)
        return parse(self._response_body(raw), now=self._now(), log=self._log)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded",
            "x-client-SKU": "Python",
            "x-client-Ver": __version__,
            "return-client-request-id": "true",
        }
        if self._correlation_id:
            headers["client-request-id"] = self._correlation_id
        return headers

    def _response_body(self, raw: TransportResponse) -> str:
        if raw.ok:
            return raw.body
        try:
            payload = json.loads(raw.body)
        except (json.JSONDecodeError, TypeError):
            payload = None
        if isinstance(payload, dict) and payload.get("error"):
            return raw.body
        self._log.warning("token_request.http_error status=%s", raw.status_code)
        raise TransportException(
            create_transport_error(
                ErrorCode.TRANSPORT_UNPARSEABLE_RESPONSE,
                f"トークンエンドポイントがエラー応答を返しました: HTTP {raw.status_code}",
                details={"status_code": raw.status_code},
            )
        )
