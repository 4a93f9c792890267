"""Saved column-mapping preferences."""

from claimflow.config import PreferencesBackend, Settings
from claimflow.preferences.base import MappingPreferenceStore, preference_key
from claimflow.preferences.memory import MemoryPreferenceStore
from claimflow.preferences.redis import RedisPreferenceStore


def create_preference_store(settings: Settings) -> MappingPreferenceStore:
    """Build the store selected by configuration."""
    if settings.preferences_backend == PreferencesBackend.REDIS:
        return RedisPreferenceStore(url=settings.redis_url, ttl=settings.preferences_ttl_seconds)
    return MemoryPreferenceStore(ttl=settings.preferences_ttl_seconds)


__all__ = [
    "MappingPreferenceStore",
    "MemoryPreferenceStore",
    "RedisPreferenceStore",
    "create_preference_store",
    "preference_key",
]
