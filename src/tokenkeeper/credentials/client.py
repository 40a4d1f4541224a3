"""クライアントアプリケーションの資格情報。"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
import time
from typing import TYPE_CHECKING, Any, Callable, Optional
import uuid

import jwt
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from tokenkeeper.credentials.base import (
    CLIENT_ASSERTION_TYPE_JWT,
    ClientCredentialBase,
    GrantParameters,
    GrantType,
)
from tokenkeeper.errors import ArgumentException, ErrorCode, TokenKeeperError, require_arguments

if TYPE_CHECKING:
    from tokenkeeper.authority import Authority

ASSERTION_LIFETIME_SECONDS = 600
MIN_KEY_SIZE = 2048


def _invalid_credential(message: str, **details: Any) -> ArgumentException:
    return ArgumentException(
        TokenKeeperError(
            code=ErrorCode.CREDENTIAL_INVALID.value,
            message=message,
            details=details or None,
        )
    )


@dataclass(frozen=True)
class ClientCredential(ClientCredentialBase):
    """クライアントIDと（任意の）クライアントシークレット

    シークレットを持たない場合はパブリッククライアントとして client_id のみを送る。
    """

    client_id: str
    client_secret: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        require_arguments(client_id=self.client_id)

    def serialize_for_grant(self) -> GrantParameters:
        params = {"client_id": self.client_id}
        if self.client_secret:
            params["client_secret"] = self.client_secret
        return GrantParameters(GrantType.CLIENT_CREDENTIALS, params)


@dataclass(frozen=True)
class ClientAssertion(ClientCredentialBase):
    """署名済みアサーションによるクライアント認証"""

    client_id: str
    assertion: str = field(repr=False)
    assertion_type: str = CLIENT_ASSERTION_TYPE_JWT

    def __post_init__(self) -> None:
        require_arguments(client_id=self.client_id, assertion=self.assertion)

    def serialize_for_grant(self) -> GrantParameters:
        return GrantParameters(
            GrantType.CLIENT_CREDENTIALS,
            {
                "client_id": self.client_id,
                "client_assertion": self.assertion,
                "client_assertion_type": self.assertion_type,
            },
        )


class ClientAssertionCertificate(ClientCredentialBase):
    """証明書の秘密鍵で自己署名したアサーションによるクライアント認証

    アサーションはシリアライズのたびに新しく生成される（jti が毎回異なる）。
    """

    def __init__(
        self,
        authority: "Authority",
        client_id: str,
        private_key: rsa.RSAPrivateKey,
        certificate: x509.Certificate,
        now_fn: Optional[Callable[[], float]] = None,
    ) -> None:
        require_arguments(
            authority=authority,
            client_id=client_id,
            private_key=private_key,
            certificate=certificate,
        )
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise _invalid_credential("証明書の秘密鍵はRSAである必要があります。")
        if private_key.key_size < MIN_KEY_SIZE:
            raise _invalid_credential(
                f"証明書の鍵長は {MIN_KEY_SIZE} ビット以上である必要があります。",
                key_size=private_key.key_size,
            )
        self.authority = authority
        self.client_id = client_id
        self._private_key = private_key
        self.certificate = certificate
        self._now = now_fn or time.time

    def __repr__(self) -> str:
        return f"ClientAssertionCertificate(client_id={self.client_id!r}, thumbprint={self.thumbprint!r})"

    @classmethod
    def from_pkcs12(
        cls,
        authority: "Authority",
        client_id: str,
        pkcs12_data: bytes,
        password: Optional[bytes] = None,
    ) -> "ClientAssertionCertificate":
        """PKCS#12 バンドルから生成する"""
        require_arguments(pkcs12_data=pkcs12_data)
        try:
            private_key, certificate, _ = pkcs12.load_key_and_certificates(pkcs12_data, password)
        except ValueError as exc:
            raise _invalid_credential("PKCS#12 データを読み込めません。") from exc
        if private_key is None or certificate is None:
            raise _invalid_credential("PKCS#12 データに秘密鍵と証明書が含まれていません。")
        return cls(authority, client_id, private_key, certificate)

    @classmethod
    def from_pem(
        cls,
        authority: "Authority",
        client_id: str,
        private_key_pem: bytes,
        certificate_pem: bytes,
        password: Optional[bytes] = None,
    ) -> "ClientAssertionCertificate":
        """PEM 形式の秘密鍵と証明書から生成する"""
        require_arguments(private_key_pem=private_key_pem, certificate_pem=certificate_pem)
        try:
            private_key = serialization.load_pem_private_key(private_key_pem, password)
            certificate = x509.load_pem_x509_certificate(certificate_pem)
        except ValueError as exc:
            raise _invalid_credential("PEM データを読み込めません。") from exc
        return cls(authority, client_id, private_key, certificate)

    @property
    def thumbprint(self) -> str:
        """証明書の SHA-1 サムプリント（16進）"""
        return self.certificate.fingerprint(hashes.SHA1()).hex()

    def sign_assertion(self) -> str:
        """トークンエンドポイント向けの自己署名 JWT を作成する"""
        now = int(self._now())
        claims = {
            "aud": self.authority.token_endpoint,
            "iss": self.client_id,
            "sub": self.client_id,
            "jti": str(uuid.uuid4()),
            "nbf": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        x5t = base64.urlsafe_b64encode(bytes.fromhex(self.thumbprint)).rstrip(b"=").decode("ascii")
        return jwt.encode(claims, self._private_key, algorithm="RS256", headers={"x5t": x5t})

    def serialize_for_grant(self) -> GrantParameters:
        return ClientAssertion(self.client_id, self.sign_assertion()).serialize_for_grant()
