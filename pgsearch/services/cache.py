"""In-memory embedding cache."""
import hashlib
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple


class EmbeddingCache:
    """Simple in-memory cache for embeddings, keyed by text hash."""

    def __init__(self, ttl_seconds: int = 86400 * 7, max_entries: int = 10000):
        """
        Initialize embedding cache.

        Args:
            ttl_seconds: Time-to-live for cache entries in seconds
            max_entries: Oldest entries are evicted beyond this size
        """
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries

    def _get_cache_key(self, text: str) -> str:
        return hashlib.sha256(text.encode()).hexdigest()

    def get(self, text: str) -> Optional[List[float]]:
        """Return the cached embedding, or None if missing or expired."""
        cache_key = self._get_cache_key(text)
        entry = self.cache.get(cache_key)
        if not entry:
            return None

        if datetime.now() - entry["timestamp"] > timedelta(seconds=self.ttl_seconds):
            del self.cache[cache_key]
            return None

        return entry["embedding"]

    def get_many(self, texts: Sequence[str]) -> Tuple[Dict[int, List[float]], List[int]]:
        """
        Look up several texts at once.

        Args:
            texts: Texts to look up

        Returns:
            (hits by position, positions that missed)
        """
        hits: Dict[int, List[float]] = {}
        misses: List[int] = []
        for position, text in enumerate(texts):
            embedding = self.get(text)
            if embedding is None:
                misses.append(position)
            else:
                hits[position] = embedding
        return hits, misses

    def set(self, text: str, embedding: List[float]) -> None:
        """Store an embedding, evicting the oldest entry when full."""
        if len(self.cache) >= self.max_entries:
            oldest = min(self.cache, key=lambda key: self.cache[key]["timestamp"])
            del self.cache[oldest]
        self.cache[self._get_cache_key(text)] = {
            "embedding": embedding,
            "timestamp": datetime.now(),
        }
