"""
認証局（Authority）

ホストとテナントの組から authorize/token エンドポイントを導出し、
必要に応じて認証局が信頼できるかをネットワーク越しに一度だけ検証する。
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Mapping, Optional
from urllib.parse import urlencode, urlunsplit

from tokenkeeper.config.settings import DEFAULT_AUTHORITY_HOST, DEFAULT_TENANT
from tokenkeeper.errors import (
    AuthorityValidationException,
    ErrorCode,
    TokenKeeperError,
    require_arguments,
)
from tokenkeeper.transport import Transport

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/oauth2/authorize"
TOKEN_PATH = "/oauth2/token"
DISCOVERY_PATH = "/common/discovery/instance"
DISCOVERY_API_VERSION = "1.0"
TENANT_DISCOVERY_ENDPOINT_KEY = "tenant_discovery_endpoint"
WORLD_WIDE_AUTHORITY = DEFAULT_AUTHORITY_HOST
WELL_KNOWN_AUTHORITY_HOSTS = frozenset(
    {
        "login.windows.net",
        "login.microsoftonline.com",
        "login.chinacloudapi.cn",
        "login.cloudgovapi.us",
    }
)


class Authority:
    """トークン要求の送信先となる認証局"""

    def __init__(
        self,
        host: str = DEFAULT_AUTHORITY_HOST,
        tenant: str = DEFAULT_TENANT,
        validate_authority: bool = False,
    ) -> None:
        require_arguments(host=host, tenant=tenant)
        self.host = host.lower()
        self.tenant = tenant
        self.validate_authority = validate_authority
        self._validated = False
        self._validation_error: Optional[AuthorityValidationException] = None
        self._validation_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Authority(host={self.host!r}, tenant={self.tenant!r})"

    @property
    def identifier(self) -> str:
        """キャッシュキーに使う認証局の識別子"""
        return f"https://{self.host}/{self.tenant}"

    @property
    def validated(self) -> bool:
        return self._validated

    def authorize_endpoint(self, params: Optional[Mapping[str, Any]] = None) -> str:
        """authorize エンドポイントのURIを返す

        値が None のパラメータは除外し、残りが無ければクエリを付与しない。
        """
        path = f"/{self.tenant}{AUTHORIZE_PATH}"
        query = ""
        if params:
            present = {key: value for key, value in params.items() if value is not None}
            query = urlencode(present)
        return urlunsplit(("https", self.host, path, query, ""))

    @property
    def token_endpoint(self) -> str:
        return urlunsplit(("https", self.host, f"/{self.tenant}{TOKEN_PATH}", "", ""))

    def validate(self, transport: Transport) -> bool:
        """認証局が信頼できることを検証する（インスタンスごとに一度だけ）

        Returns:
            bool: 検証済みであれば True

        Raises:
            AuthorityValidationException: 検証に失敗した場合
        """
        if self._validated:
            return True

        with self._validation_lock:
            if self._validated:
                return True
            if self._validation_error is not None:
                raise self._validation_error
            if self._validated_statically():
                logger.debug("authority.validated mode=static host=%s", self.host)
            elif self._validated_dynamically(transport):
                logger.info("authority.validated mode=discovery host=%s", self.host)
            else:
                self._validation_error = AuthorityValidationException(
                    TokenKeeperError(
                        code=ErrorCode.AUTHORITY_VALIDATION_FAILED.value,
                        message=f"認証局を検証できませんでした: {self.identifier}",
                        details={"host": self.host, "tenant": self.tenant},
                    )
                )
                raise self._validation_error
            self._validated = True
        return True

    def _validated_statically(self) -> bool:
        return self.host in WELL_KNOWN_AUTHORITY_HOSTS

    def _validated_dynamically(self, transport: Transport) -> bool:
        query = urlencode(
            {
                "authorization_endpoint": self.authorize_endpoint(),
                "api-version": DISCOVERY_API_VERSION,
            }
        )
        discovery_url = urlunsplit(("https", WORLD_WIDE_AUTHORITY, DISCOVERY_PATH, query, ""))
        response = transport.issue("GET", discovery_url, {"Accept": "application/json"})
        if not response.ok:
            logger.warning("authority.discovery_failed host=%s status=%s", self.host, response.status_code)
            return False
        try:
            payload = json.loads(response.body)
        except json.JSONDecodeError:
            logger.warning("authority.discovery_unparseable host=%s", self.host)
            return False
        return isinstance(payload, dict) and bool(payload.get(TENANT_DISCOVERY_ENDPOINT_KEY))
