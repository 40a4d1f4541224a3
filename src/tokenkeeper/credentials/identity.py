"""IDトークンのクレーム読み取りとユーザー識別子。

ここでのデコードは署名検証を一切行わない。得られたクレームはキャッシュの
索引付けにのみ使い、認証の根拠として扱ってはならない。
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

import jwt

from tokenkeeper.credentials.base import GrantParameters, UserCredentialBase

UNIQUE_ID_CLAIMS = ("oid", "sub")
DISPLAYABLE_ID_CLAIMS = ("upn", "email", "unique_name", "preferred_username")
IDENTITY_CLAIMS = UNIQUE_ID_CLAIMS + DISPLAYABLE_ID_CLAIMS


class IdTokenDecodeError(ValueError):
    """IDトークンのペイロードを読み取れなかった"""


def decode_claims_unverified(id_token: str) -> dict[str, Any]:
    """IDトークンのペイロード部だけをデコードする（署名は検証しない）。

    Args:
        id_token: コンパクト形式のIDトークン。

    Returns:
        dict[str, Any]: ペイロードのクレーム。

    Raises:
        IdTokenDecodeError: 形式が不正な場合。
    """

    try:
        decoded = jwt.decode(
            id_token,
            options={
                "verify_signature": False,
                "verify_aud": False,
                "verify_exp": False,
                "verify_nbf": False,
                "verify_iat": False,
            },
        )
    except jwt.PyJWTError as exc:
        raise IdTokenDecodeError(f"IDトークンをデコードできません: {type(exc).__name__}") from exc

    if not isinstance(decoded, dict):
        raise IdTokenDecodeError("IDトークンのペイロードがオブジェクトではありません。")
    return decoded


class UserIdentifier(UserCredentialBase, Mapping[str, Any]):
    """IDトークンのクレームから得られるユーザー識別子。

    不変のマッピングとして振る舞う。クレームを持たない識別子は偽と評価され、
    ユーザー文脈の無いトークン（クライアント資格情報フロー）を表す。
    資格情報としてはキャッシュ検索専用で、ネットワークグラントを持たない。
    """

    def __init__(self, claims: Optional[Mapping[str, Any]] = None, **extra_claims: Any) -> None:
        merged = dict(claims or {})
        merged.update(extra_claims)
        self._claims = {key: value for key, value in merged.items() if value is not None}

    @classmethod
    def empty(cls) -> "UserIdentifier":
        return cls()

    @classmethod
    def from_id_token(cls, id_token: str) -> "UserIdentifier":
        """IDトークンから識別子を作る（署名は検証しない）"""
        return cls(decode_claims_unverified(id_token))

    def __getitem__(self, key: str) -> Any:
        return self._claims[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._claims)

    def __len__(self) -> int:
        return len(self._claims)

    def __repr__(self) -> str:
        shown = {key: self._claims[key] for key in IDENTITY_CLAIMS if key in self._claims}
        return f"UserIdentifier({shown!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UserIdentifier):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    @property
    def unique_id(self) -> Optional[str]:
        return self._first_of(UNIQUE_ID_CLAIMS)

    @property
    def displayable_id(self) -> Optional[str]:
        return self._first_of(DISPLAYABLE_ID_CLAIMS)

    @property
    def key(self) -> Optional[str]:
        """キャッシュキーに使う正規化済みの識別値"""
        return self.unique_id or self.displayable_id

    def matches(self, query: Optional["UserIdentifier"]) -> bool:
        """問い合わせ側の識別クレームがすべて一致するかを判定する

        問い合わせが識別クレームを一つも持たない場合は一致としない。
        """
        if not query:
            return False
        asked = [claim for claim in IDENTITY_CLAIMS if claim in query]
        if not asked:
            return False
        return all(
            claim in self._claims and str(self._claims[claim]) == str(query[claim])
            for claim in asked
        )

    def to_dict(self) -> dict[str, Any]:
        return dict(self._claims)

    def serialize_for_grant(self) -> GrantParameters:
        return GrantParameters(None, {})

    def _first_of(self, claims: tuple[str, ...]) -> Optional[str]:
        for claim in claims:
            value = self._claims.get(claim)
            if value:
                return str(value)
        return None
