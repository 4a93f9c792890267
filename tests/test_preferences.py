"""Tests for saved column-mapping preferences."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from claimflow.config import PreferencesBackend, Settings
from claimflow.models.mapping import ColumnMapping, CSVSchemaType, MappingPreferences
from claimflow.preferences import (
    MemoryPreferenceStore,
    RedisPreferenceStore,
    create_preference_store,
    preference_key,
)


@pytest.fixture
def mappings() -> list[ColumnMapping]:
    return [
        ColumnMapping(source="cat", target="Category", confidence=0.9, is_required=True),
        ColumnMapping(source="January", target="Jan-2024", confidence=0.8, is_required=True),
    ]


def _stale(schema_type: CSVSchemaType, mappings: list[ColumnMapping], days: int = 31) -> MappingPreferences:
    return MappingPreferences(
        schema_type=schema_type,
        mappings=mappings,
        saved_at=datetime.now(timezone.utc) - timedelta(days=days),
    )


def test_preference_key() -> None:
    assert preference_key(CSVSchemaType.HEALTHCARE_COSTS) == "column-mappings-healthcare_costs"


class TestMemoryPreferenceStore:
    """Tests for MemoryPreferenceStore."""

    def test_save_and_load(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore()
        saved = store.save_mappings(CSVSchemaType.HEALTHCARE_COSTS, mappings)

        assert saved.saved_at.tzinfo is not None
        assert store.load_mappings(CSVSchemaType.HEALTHCARE_COSTS) == mappings
        assert store.load_mappings(CSVSchemaType.HIGH_COST_CLAIMANTS) is None

    def test_save_replaces(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore()
        store.save_mappings(CSVSchemaType.HEALTHCARE_COSTS, mappings)
        store.save_mappings(CSVSchemaType.HEALTHCARE_COSTS, mappings[:1])

        assert store.load_mappings(CSVSchemaType.HEALTHCARE_COSTS) == mappings[:1]

    def test_expired_entries_dropped(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore()
        store.save(_stale(CSVSchemaType.HEALTHCARE_COSTS, mappings))

        assert store.load(CSVSchemaType.HEALTHCARE_COSTS) is None
        assert store.stats()["size"] == 0

    def test_within_ttl(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore()
        store.save(_stale(CSVSchemaType.HEALTHCARE_COSTS, mappings, days=29))

        assert store.load(CSVSchemaType.HEALTHCARE_COSTS) is not None

    def test_custom_ttl(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore(ttl=60)
        store.save(_stale(CSVSchemaType.HEALTHCARE_COSTS, mappings, days=1))

        assert store.load(CSVSchemaType.HEALTHCARE_COSTS) is None

    def test_clear(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore()
        store.save_mappings(CSVSchemaType.HEALTHCARE_COSTS, mappings)

        assert store.clear(CSVSchemaType.HEALTHCARE_COSTS)
        assert not store.clear(CSVSchemaType.HEALTHCARE_COSTS)
        assert store.load(CSVSchemaType.HEALTHCARE_COSTS) is None

    def test_stats(self, mappings: list[ColumnMapping]) -> None:
        store = MemoryPreferenceStore()
        store.save_mappings(CSVSchemaType.CLAIMS, mappings)

        assert store.stats() == {"backend": "memory", "size": 1, "ttl": 30 * 24 * 60 * 60}


class TestRedisPreferenceStore:
    """Tests for RedisPreferenceStore against a mocked client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def store(self, client: MagicMock) -> RedisPreferenceStore:
        with patch("claimflow.preferences.redis.redis.from_url", return_value=client):
            return RedisPreferenceStore(url="redis://test:6379", ttl=120)

    def test_save_uses_setex(self, store: RedisPreferenceStore, client: MagicMock, mappings: list[ColumnMapping]) -> None:
        store.save_mappings(CSVSchemaType.HEALTHCARE_COSTS, mappings)

        key, ttl, payload = client.setex.call_args.args
        assert key == "claimflow:column-mappings-healthcare_costs"
        assert ttl == 120
        assert '"schemaType":"healthcare_costs"' in payload

    def test_load(self, store: RedisPreferenceStore, client: MagicMock, mappings: list[ColumnMapping]) -> None:
        saved = MappingPreferences(
            schema_type=CSVSchemaType.CLAIMS,
            mappings=mappings,
            saved_at=datetime.now(timezone.utc),
        )
        client.get.return_value = saved.model_dump_json(by_alias=True)

        assert store.load(CSVSchemaType.CLAIMS) == saved

    def test_load_missing(self, store: RedisPreferenceStore, client: MagicMock) -> None:
        client.get.return_value = None
        assert store.load(CSVSchemaType.CLAIMS) is None

    def test_errors_are_counted(self, store: RedisPreferenceStore, client: MagicMock) -> None:
        client.get.side_effect = ConnectionError("gone")

        assert store.load(CSVSchemaType.CLAIMS) is None
        assert store.stats()["errors"] == 1

    def test_unreachable_redis_disables_store(self, mappings: list[ColumnMapping]) -> None:
        client = MagicMock()
        client.ping.side_effect = ConnectionError("refused")
        with patch("claimflow.preferences.redis.redis.from_url", return_value=client):
            store = RedisPreferenceStore()

        assert not store.is_connected()
        store.save_mappings(CSVSchemaType.CLAIMS, mappings)
        client.setex.assert_not_called()
        assert store.load(CSVSchemaType.CLAIMS) is None
        assert not store.clear(CSVSchemaType.CLAIMS)

    def test_reconnect(self) -> None:
        client = MagicMock()
        client.ping.side_effect = [ConnectionError("refused"), True]
        with patch("claimflow.preferences.redis.redis.from_url", return_value=client):
            store = RedisPreferenceStore()
            assert not store.is_connected()
            assert store.reconnect()

        assert store.stats()["connected"] is True


def test_factory_selects_backend(tmp_path) -> None:
    memory = create_preference_store(Settings(uploads_path=tmp_path, preferences_ttl_days=7))
    assert isinstance(memory, MemoryPreferenceStore)
    assert memory.ttl == 7 * 24 * 60 * 60

    with patch("claimflow.preferences.redis.redis.from_url", return_value=MagicMock()):
        store = create_preference_store(Settings(uploads_path=tmp_path, preferences_backend=PreferencesBackend.REDIS))
    assert isinstance(store, RedisPreferenceStore)
