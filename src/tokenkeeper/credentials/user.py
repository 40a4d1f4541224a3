"""ユーザーを表す資格情報。"""

from __future__ import annotations

from dataclasses import dataclass, field

from tokenkeeper.credentials.base import GrantParameters, GrantType, UserCredentialBase
from tokenkeeper.credentials.identity import UserIdentifier
from tokenkeeper.errors import require_arguments

OPENID_SCOPE = "openid"
ON_BEHALF_OF = "on_behalf_of"


@dataclass(frozen=True)
class UserCredential(UserCredentialBase):
    """ユーザー名とパスワード（リソースオーナーパスワードグラント）

    マネージドアカウントのみを対象とする。
    """

    username: str
    password: str = field(repr=False)

    def __post_init__(self) -> None:
        require_arguments(username=self.username, password=self.password)

    @property
    def user_hint(self) -> UserIdentifier:
        """キャッシュ検索に使う既知のユーザー識別子"""
        return UserIdentifier(upn=self.username)

    def serialize_for_grant(self) -> GrantParameters:
        return GrantParameters(
            GrantType.PASSWORD,
            {"username": self.username, "password": self.password, "scope": OPENID_SCOPE},
        )


@dataclass(frozen=True)
class UserAssertion(UserCredentialBase):
    """受け取ったアクセストークンを用いる On-Behalf-Of フロー"""

    assertion: str = field(repr=False)
    assertion_type: str = GrantType.JWT_BEARER

    def __post_init__(self) -> None:
        require_arguments(assertion=self.assertion)

    @property
    def user_hint(self) -> UserIdentifier:
        # oid のみがリソースをまたいで安定している。署名は検証せず索引に使うだけ
        try:
            claims = UserIdentifier.from_id_token(self.assertion)
        except ValueError:
            return UserIdentifier.empty()
        return UserIdentifier(oid=claims.get("oid"))

    def serialize_for_grant(self) -> GrantParameters:
        return GrantParameters(
            self.assertion_type,
            {
                "assertion": self.assertion,
                "requested_token_use": ON_BEHALF_OF,
                "scope": OPENID_SCOPE,
            },
        )
