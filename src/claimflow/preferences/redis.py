"""Redis preference store."""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import redis

from claimflow.models.mapping import CSVSchemaType, MappingPreferences
from claimflow.preferences.base import DEFAULT_TTL, MappingPreferenceStore, preference_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisPreferenceStore(MappingPreferenceStore):
    """
    Redis-backed preference store for multi-process deployments.

    Entries are written with SETEX so Redis expires them on its own.
    If Redis is unreachable the store is disabled: saves are dropped and
    loads return None.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        prefix: str = "claimflow:",
        ttl: int = DEFAULT_TTL,
    ):
        """
        Args:
            url: Redis connection URL
            prefix: Namespace for keys
            ttl: Retention in seconds
        """
        super().__init__(ttl)
        self._url = url
        self._prefix = prefix
        self._client: redis.Redis | None = None
        self._connected = False
        self._errors = 0

        self._connect()

    def _connect(self) -> None:
        try:
            self._client = redis.from_url(self._url, decode_responses=True)
            self._client.ping()
        except Exception as e:
            logger.warning(f"Redis unavailable at {self._url}: {e}, saved mappings disabled")
            self._connected = False
            return
        self._connected = True
        logger.info(f"Saving column mappings to Redis at {self._url}")

    def _key(self, schema_type: CSVSchemaType) -> str:
        return f"{self._prefix}{preference_key(schema_type)}"

    def _call(self, operation: str, command: Callable[[redis.Redis], T], default: T) -> T:
        """Run a command, counting failures and returning ``default`` on error or when disconnected."""
        if not self._connected:
            return default
        try:
            return command(self._client)
        except Exception as e:
            logger.warning(f"Redis {operation} error: {e}")
            self._errors += 1
            return default

    def save(self, preferences: MappingPreferences) -> None:
        payload = preferences.model_dump_json(by_alias=True)
        key = self._key(preferences.schema_type)
        self._call("set", lambda client: client.setex(key, self._ttl, payload), None)

    def load(self, schema_type: CSVSchemaType) -> MappingPreferences | None:
        key = self._key(schema_type)
        data = self._call("get", lambda client: client.get(key), None)
        if data is None:
            return None

        preferences = MappingPreferences.model_validate_json(data)
        # Entries saved under a longer TTL outlive the current one in Redis
        if self.is_expired(preferences):
            self.clear(schema_type)
            return None
        return preferences

    def clear(self, schema_type: CSVSchemaType) -> bool:
        key = self._key(schema_type)
        return self._call("delete", lambda client: client.delete(key) > 0, False)

    def stats(self) -> dict[str, Any]:
        return {
            "backend": "redis",
            "connected": self._connected,
            "url": self._url,
            "prefix": self._prefix,
            "errors": self._errors,
            "ttl": self._ttl,
        }

    def is_connected(self) -> bool:
        return self._connected

    def reconnect(self) -> bool:
        """Retry the connection; returns whether Redis is now reachable."""
        self._connect()
        return self._connected
