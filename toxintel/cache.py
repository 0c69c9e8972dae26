"""
Cache module for Toxic Intelligence
SQLite-based cache for analysis API responses, keyed on model + request payload
"""

import sqlite3
import json
import hashlib
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Dict, Any, Iterator, List

from . import config

logger = logging.getLogger(__name__)


class ResponseCache:
    """SQLite-based cache for analysis responses with TTL."""

    def __init__(self, cache_dir: Optional[Path] = None, ttl_days: Optional[int] = None):
        """
        Initialize cache.

        Args:
            cache_dir: Directory for cache database (default from config)
            ttl_days: TTL in days (default from config)
        """
        self.cache_dir = Path(cache_dir or config.CACHE_DIR)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.ttl_days = ttl_days or config.CACHE_TTL_DAYS
        self.db_path = self.cache_dir / "analysis_responses.db"

        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    model_name TEXT NOT NULL,
                    item_count INTEGER NOT NULL,
                    response TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_timestamp ON cache(timestamp)")
        logger.debug(f"Cache database initialized at {self.db_path}")

    @staticmethod
    def make_key(model_name: str, payload: List[Dict[str, Any]]) -> str:
        """Generate cache key from model name and the exact batch sent."""
        combined = f"{model_name}:{json.dumps(payload, sort_keys=True, ensure_ascii=False)}"
        return hashlib.sha256(combined.encode("utf-8")).hexdigest()

    def get(self, model_name: str, payload: List[Dict[str, Any]]) -> Optional[List[Any]]:
        """
        Get cached response for a model/batch pair.

        Returns None if not found or expired.
        """
        key = self.make_key(model_name, payload)

        with self._connect() as conn:
            row = conn.execute(
                "SELECT response, timestamp FROM cache WHERE key = ?",
                (key,)
            ).fetchone()

        if row is None:
            logger.debug(f"Cache miss for {model_name} ({len(payload)} items)")
            return None

        response_json, timestamp_str = row
        timestamp = datetime.fromisoformat(timestamp_str)

        if datetime.now() - timestamp > timedelta(days=self.ttl_days):
            logger.debug(f"Cache expired for {model_name} ({len(payload)} items)")
            self._delete_key(key)
            return None

        logger.debug(f"Cache hit for {model_name} ({len(payload)} items)")
        return json.loads(response_json)

    def set(self, model_name: str, payload: List[Dict[str, Any]], response: List[Any]):
        """Store response in cache."""
        key = self.make_key(model_name, payload)

        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache (key, model_name, item_count, response, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (key, model_name, len(payload), json.dumps(response, ensure_ascii=False),
                 datetime.now().isoformat())
            )

        logger.debug(f"Cached response for {model_name} ({len(payload)} items)")

    def _delete_key(self, key: str):
        with self._connect() as conn:
            conn.execute("DELETE FROM cache WHERE key = ?", (key,))

    def clear_expired(self) -> int:
        """Remove all expired entries."""
        cutoff = (datetime.now() - timedelta(days=self.ttl_days)).isoformat()

        with self._connect() as conn:
            deleted = conn.execute("DELETE FROM cache WHERE timestamp < ?", (cutoff,)).rowcount

        logger.info(f"Cleared {deleted} expired cache entries")
        return deleted

    def clear_all(self) -> int:
        """Clear entire cache."""
        with self._connect() as conn:
            deleted = conn.execute("DELETE FROM cache").rowcount

        logger.info(f"Cleared all {deleted} cache entries")
        return deleted

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        cutoff = (datetime.now() - timedelta(days=self.ttl_days)).isoformat()

        with self._connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM cache").fetchone()[0]
            by_model = dict(conn.execute(
                "SELECT model_name, COUNT(*) FROM cache GROUP BY model_name"
            ).fetchall())
            expired = conn.execute(
                "SELECT COUNT(*) FROM cache WHERE timestamp < ?", (cutoff,)
            ).fetchone()[0]

        return {
            "total_entries": total,
            "by_model": by_model,
            "expired": expired,
            "ttl_days": self.ttl_days,
            "db_path": str(self.db_path),
        }
