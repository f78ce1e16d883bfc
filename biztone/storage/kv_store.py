"""
Settings store backed by Redis.

Holds the user-owned state the guard consults: whitelist/blacklist items,
domain rules and the guard mode. Values are JSON documents under fixed
keys. Falls back to an in-process dict when Redis is not reachable so the
guard keeps working with default (empty) state.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional

import redis

from ..errors import StorageError

logger = logging.getLogger(__name__)


class SettingsStore:
    """
    JSON key/value store.

    Reads return ``default`` when a key is missing. Redis failures raise
    StorageError; callers decide how to degrade.
    """

    KEY_PREFIX = "biztone:"

    def __init__(
        self,
        url: Optional[str] = None,
        use_mock: bool = False,
        socket_timeout: float = 2.0,
    ):
        """
        Initialize store.

        Args:
            url: Redis URL (redis://host:port/db). None implies mock mode.
            use_mock: Use in-memory dict instead of Redis
            socket_timeout: Connect/read timeout in seconds
        """
        self.use_mock = use_mock or url is None
        self._mock_store: Dict[str, str] = {}
        self._mock_lock = threading.Lock()
        self._client: Optional[redis.Redis] = None

        if not self.use_mock:
            try:
                self._client = redis.Redis.from_url(
                    url,
                    decode_responses=True,
                    socket_connect_timeout=socket_timeout,
                    socket_timeout=socket_timeout,
                )
                self._client.ping()
                logger.info(f"Settings store connected to Redis at {url}")
            except redis.RedisError as e:
                logger.error(f"Redis connection failed: {e}")
                logger.warning("Falling back to in-memory settings store")
                self.use_mock = True
                self._client = None

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def get_json(self, key: str, default: Any = None) -> Any:
        """Read and decode a JSON value."""
        if self.use_mock:
            with self._mock_lock:
                raw = self._mock_store.get(key)
        else:
            try:
                raw = self._client.get(self._key(key))
            except redis.RedisError as e:
                raise StorageError(f"Read of '{key}' failed: {e}") from e

        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Value of '{key}' is not valid JSON: {e}") from e

    def set_json(self, key: str, value: Any) -> None:
        """Encode and write a JSON value."""
        raw = json.dumps(value, ensure_ascii=False)
        if self.use_mock:
            with self._mock_lock:
                self._mock_store[key] = raw
            return
        try:
            self._client.set(self._key(key), raw)
        except redis.RedisError as e:
            raise StorageError(f"Write of '{key}' failed: {e}") from e

    def delete(self, key: str) -> None:
        if self.use_mock:
            with self._mock_lock:
                self._mock_store.pop(key, None)
            return
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Delete of '{key}' failed: {e}") from e

    def health_check(self) -> bool:
        if self.use_mock:
            return True
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
