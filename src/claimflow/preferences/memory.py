"""In-memory preference store."""

from threading import Lock
from typing import Any

from claimflow.models.mapping import CSVSchemaType, MappingPreferences
from claimflow.preferences.base import DEFAULT_TTL, MappingPreferenceStore, preference_key


class MemoryPreferenceStore(MappingPreferenceStore):
    """
    Thread-safe in-memory store with TTL support.

    Suitable for development and single-process deployments.
    For multi-process deployments, use RedisPreferenceStore.
    """

    def __init__(self, ttl: int = DEFAULT_TTL):
        super().__init__(ttl)
        self._entries: dict[str, MappingPreferences] = {}
        self._lock = Lock()

    def save(self, preferences: MappingPreferences) -> None:
        with self._lock:
            self._entries[preference_key(preferences.schema_type)] = preferences

    def load(self, schema_type: CSVSchemaType) -> MappingPreferences | None:
        key = preference_key(schema_type)

        with self._lock:
            preferences = self._entries.get(key)
            if preferences is None:
                return None

            if self.is_expired(preferences):
                del self._entries[key]
                return None

            return preferences

    def clear(self, schema_type: CSVSchemaType) -> bool:
        with self._lock:
            return self._entries.pop(preference_key(schema_type), None) is not None

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "size": len(self._entries),
                "ttl": self._ttl,
            }
