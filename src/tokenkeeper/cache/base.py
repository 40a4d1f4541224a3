"""トークンキャッシュの抽象ストア契約。

キャッシュキーは (authority, client_id, resource, user_id) の組。user_id は
任意で、識別クレームを持たない識別子はユーザー文脈の無いエントリとして扱う。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from tokenkeeper.credentials.identity import UserIdentifier
from tokenkeeper.token_response import SuccessResponse

CacheKey = Tuple[str, str, Optional[str], Optional[str]]


@dataclass(frozen=True)
class CacheEntry:
    """成功したトークン応答を一件保持するキャッシュエントリ"""

    authority: str
    client_id: str
    resource: Optional[str]
    response: SuccessResponse = field(repr=False)
    user_id: UserIdentifier = field(default_factory=UserIdentifier)

    @property
    def key(self) -> CacheKey:
        return make_key(self.authority, self.client_id, self.resource, self.user_id)

    @property
    def access_token(self) -> Optional[str]:
        return self.response.access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self.response.refresh_token

    @property
    def expires_on(self) -> int:
        return self.response.expires_on

    def is_expired(self, now: Optional[float] = None, buffer_seconds: int = 0) -> bool:
        return self.response.is_expired(now=now, buffer_seconds=buffer_seconds)


def make_key(
    authority: str,
    client_id: str,
    resource: Optional[str],
    user_id: Optional[UserIdentifier],
) -> CacheKey:
    return (authority, client_id, resource, user_id.key if user_id is not None else None)


class TokenCache(ABC):
    """トークンキャッシュの抽象基底クラス

    実装は find/store/remove を互いにアトミックに実行しなければならない。
    """

    @abstractmethod
    def find(
        self,
        authority: str,
        client_id: str,
        resource: Optional[str] = None,
        user_id: Optional[UserIdentifier] = None,
    ) -> Optional[CacheEntry]:
        """条件に合うエントリを一件返す。候補が一意に定まらなければ None。"""

    @abstractmethod
    def store(
        self,
        authority: str,
        client_id: str,
        resource: Optional[str],
        user_id: Optional[UserIdentifier],
        response: SuccessResponse,
    ) -> CacheEntry:
        """エントリを追加する。同じキーのエントリは上書きされる。"""

    @abstractmethod
    def entries(self) -> List[CacheEntry]:
        """現在のエントリのスナップショットを返す。"""

    @abstractmethod
    def remove(
        self,
        authority: str,
        client_id: str,
        resource: Optional[str],
        user_id: Optional[UserIdentifier] = None,
    ) -> bool:
        """キーが一致するエントリを削除する。削除できたら True。"""
