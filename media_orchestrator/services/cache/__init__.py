"""Result caching"""

from .result_cache import CacheEntry, ResultCache

__all__ = ["CacheEntry", "ResultCache"]
