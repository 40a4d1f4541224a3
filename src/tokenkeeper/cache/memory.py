"""プロセス内メモリに保持するトークンキャッシュ。"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, List, Optional

from tokenkeeper.cache.base import CacheEntry, CacheKey, TokenCache, make_key
from tokenkeeper.credentials.identity import UserIdentifier
from tokenkeeper.diagnostics import token_digest
from tokenkeeper.errors import CacheSerializationException, ErrorCode, TokenKeeperError
from tokenkeeper.token_response import SuccessResponse

logger = logging.getLogger(__name__)


class MemoryCache(TokenCache):
    """トークンをメモリ上で管理する参照実装。

    ストア全体を一つのロックで保護する。期限切れエントリを掃除するバック
    グラウンド処理は持たず、同じキーへの次の書き込みでのみ置き換わる。
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> List[CacheEntry]:
        """現在のエントリのスナップショットを返す"""
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def find(
        self,
        authority: str,
        client_id: str,
        resource: Optional[str] = None,
        user_id: Optional[UserIdentifier] = None,
    ) -> Optional[CacheEntry]:
        """条件に合うエントリを一件返す

        authority と client_id は完全一致。user_id を指定した場合は識別クレームが
        一致するエントリ、指定しない場合はユーザー文脈の無い（識別キーの無い）
        エントリのみが候補。識別クレームを持たない user_id は何にも一致しない。
        resource（未指定なら resource の無いエントリ）が完全一致するエントリが
        一件ならそれを返し、無ければ候補が一件に限り別リソースのエントリを返す。
        それ以外は一致なしとする。
        """
        with self._lock:
            candidates = [
                entry
                for entry in self._entries.values()
                if entry.authority == authority
                and entry.client_id == client_id
                and _user_matches(entry, user_id)
            ]

        exact = [entry for entry in candidates if entry.resource == resource]
        if len(exact) == 1:
            logger.debug("cache.find result=exact resource=%s", resource)
            return exact[0]
        if exact:
            logger.debug("cache.find result=ambiguous candidates=%s", len(exact))
            return None

        if len(candidates) == 1:
            logger.debug("cache.find result=single_candidate resource=%s", candidates[0].resource)
            return candidates[0]

        logger.debug("cache.find result=miss candidates=%s", len(candidates))
        return None

    def store(
        self,
        authority: str,
        client_id: str,
        resource: Optional[str],
        user_id: Optional[UserIdentifier],
        response: SuccessResponse,
    ) -> CacheEntry:
        if not isinstance(response, SuccessResponse):
            raise TypeError("MemoryCache.store は SuccessResponse のみを受け付けます")
        entry = CacheEntry(
            authority=authority,
            client_id=client_id,
            resource=resource,
            response=response,
            user_id=user_id or UserIdentifier.empty(),
        )
        with self._lock:
            replaced = entry.key in self._entries
            self._entries[entry.key] = entry
        logger.info(
            "cache.store resource=%s replaced=%s access_token_digest=%s",
            resource,
            replaced,
            token_digest(response.access_token),
        )
        return entry

    def remove(
        self,
        authority: str,
        client_id: str,
        resource: Optional[str],
        user_id: Optional[UserIdentifier] = None,
    ) -> bool:
        with self._lock:
            removed = self._entries.pop(make_key(authority, client_id, resource, user_id), None)
        logger.info("cache.remove resource=%s removed=%s", resource, removed is not None)
        return removed is not None

    def to_json(self) -> str:
        """エントリを JSON 文字列にシリアライズする

        出力にはトークンが平文で含まれるため、保存先の保護は呼び出し側の責任。
        """
        with self._lock:
            payload = [_entry_to_dict(entry) for entry in self._entries.values()]
        return json.dumps(payload, ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str) -> "MemoryCache":
        """to_json の出力からキャッシュを復元する

        Raises:
            CacheSerializationException: 形式が不正な場合。
        """
        try:
            raw_entries = json.loads(data)
        except json.JSONDecodeError as exc:
            raise _serialization_error("キャッシュのJSONを解釈できません。") from exc
        if not isinstance(raw_entries, list):
            raise _serialization_error("キャッシュのJSONは配列である必要があります。")

        cache = cls()
        for raw in raw_entries:
            if not isinstance(raw, dict) or not isinstance(raw.get("response"), dict):
                raise _serialization_error("キャッシュエントリの形式が不正です。")
            try:
                authority = raw["authority"]
                client_id = raw["client_id"]
            except KeyError as exc:
                raise _serialization_error(f"キャッシュエントリに {exc.args[0]} がありません。") from exc
            cache.store(
                authority,
                client_id,
                raw.get("resource"),
                UserIdentifier(raw.get("user_id") or {}),
                SuccessResponse.from_dict(raw["response"]),
            )
        return cache


def _user_matches(entry: CacheEntry, user_id: Optional[UserIdentifier]) -> bool:
    if not user_id:
        return entry.user_id.key is None
    if user_id.key is None:
        # 識別クレームの無い問い合わせはどのユーザーにもアプリにも一致させない
        return False
    return entry.user_id.matches(user_id)


def _entry_to_dict(entry: CacheEntry) -> Dict[str, Any]:
    return {
        "authority": entry.authority,
        "client_id": entry.client_id,
        "resource": entry.resource,
        "user_id": entry.user_id.to_dict(),
        "response": entry.response.to_dict(),
    }


def _serialization_error(message: str) -> CacheSerializationException:
    return CacheSerializationException(
        TokenKeeperError(code=ErrorCode.CACHE_SERIALIZATION_FAILED.value, message=message)
    )
