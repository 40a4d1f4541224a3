"""トークンキャッシュ"""

from tokenkeeper.cache.base import CacheEntry, CacheKey, TokenCache, make_key
from tokenkeeper.cache.memory import MemoryCache

__all__ = [
    "CacheEntry",
    "CacheKey",
    "MemoryCache",
    "TokenCache",
    "make_key",
]
