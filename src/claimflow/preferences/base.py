"""Base interface for saved column-mapping preferences."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from claimflow.models.mapping import ColumnMapping, CSVSchemaType, MappingPreferences

DEFAULT_TTL = 30 * 24 * 60 * 60  # 30 days


def preference_key(schema_type: CSVSchemaType) -> str:
    """Storage key for one schema type's preferences."""
    return f"column-mappings-{schema_type.value}"


class MappingPreferenceStore(ABC):
    """
    Abstract base class for preference stores.

    Preferences are kept per schema type and expire ``ttl`` seconds after
    they were saved.
    """

    def __init__(self, ttl: int = DEFAULT_TTL):
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        return self._ttl

    def is_expired(self, preferences: MappingPreferences, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        saved_at = preferences.saved_at
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=timezone.utc)
        return saved_at < now - timedelta(seconds=self._ttl)

    def save_mappings(
        self,
        schema_type: CSVSchemaType,
        mappings: Sequence[ColumnMapping],
    ) -> MappingPreferences:
        """Save mappings stamped with the current time."""
        preferences = MappingPreferences(
            schema_type=schema_type,
            mappings=list(mappings),
            saved_at=datetime.now(timezone.utc),
        )
        self.save(preferences)
        return preferences

    def load_mappings(self, schema_type: CSVSchemaType) -> list[ColumnMapping] | None:
        """Saved mappings for a schema type, or None if absent or expired."""
        preferences = self.load(schema_type)
        return preferences.mappings if preferences else None

    @abstractmethod
    def save(self, preferences: MappingPreferences) -> None:
        """Store preferences, replacing any for the same schema type."""
        pass

    @abstractmethod
    def load(self, schema_type: CSVSchemaType) -> MappingPreferences | None:
        """
        Get preferences by schema type.

        Returns None if not found or expired; expired entries are removed.
        """
        pass

    @abstractmethod
    def clear(self, schema_type: CSVSchemaType) -> bool:
        """
        Delete preferences for a schema type.

        Returns True if an entry existed.
        """
        pass

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        pass
