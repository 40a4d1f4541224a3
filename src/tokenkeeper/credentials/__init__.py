"""資格情報バリアントの公開API。"""

from __future__ import annotations

from tokenkeeper.credentials.base import (
    CLIENT_ASSERTION_TYPE_JWT,
    ClientCredentialBase,
    Credential,
    GrantParameters,
    GrantType,
    UserCredentialBase,
)
from tokenkeeper.credentials.client import (
    ClientAssertion,
    ClientAssertionCertificate,
    ClientCredential,
)
from tokenkeeper.credentials.identity import UserIdentifier
from tokenkeeper.credentials.user import UserAssertion, UserCredential
from tokenkeeper.errors import ArgumentException, ErrorCode, TokenKeeperError

__all__ = [
    "CLIENT_ASSERTION_TYPE_JWT",
    "ClientAssertion",
    "ClientAssertionCertificate",
    "ClientCredential",
    "ClientCredentialBase",
    "Credential",
    "GrantParameters",
    "GrantType",
    "UserAssertion",
    "UserCredential",
    "UserCredentialBase",
    "UserIdentifier",
    "as_client_credential",
    "as_user_credential",
]

CLIENT_VARIANTS = (ClientCredential, ClientAssertion, ClientAssertionCertificate)
USER_VARIANTS = (UserCredential, UserAssertion, UserIdentifier)


def as_client_credential(client: object) -> ClientCredentialBase:
    """クライアント資格情報を正規化する。

    文字列のクライアントIDはシークレットを持たない ClientCredential に包む。

    Raises:
        ArgumentException: 既知のクライアント資格情報バリアントでない場合。
    """

    if isinstance(client, str):
        return ClientCredential(client)
    if isinstance(client, CLIENT_VARIANTS):
        return client
    raise ArgumentException(
        TokenKeeperError(
            code=ErrorCode.CREDENTIAL_INVALID.value,
            message=f"未対応のクライアント資格情報です: {type(client).__name__}",
        )
    )


def as_user_credential(user: object) -> UserCredentialBase:
    """ユーザー資格情報が既知のバリアントであることを確認する。

    Raises:
        ArgumentException: 既知のユーザー資格情報バリアントでない場合。
    """

    if isinstance(user, USER_VARIANTS):
        return user
    raise ArgumentException(
        TokenKeeperError(
            code=ErrorCode.CREDENTIAL_INVALID.value,
            message=f"未対応のユーザー資格情報です: {type(user).__name__}",
        )
    )
