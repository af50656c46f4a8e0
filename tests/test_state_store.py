"""
Tests for the state store backends.

Tests:
- Save/load/delete round trips on both backends
- TTL expiry
- Key listing per record type
- Decimal and datetime serialization
"""

import pytest
from datetime import datetime
from decimal import Decimal

from src.core.state_store import (
    RecordType,
    InMemoryStateStore,
    SQLiteStateStore,
    create_state_store,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, clock):
    if request.param == "memory":
        return InMemoryStateStore(clock=clock)
    return SQLiteStateStore(str(tmp_path / "state.db"), clock=clock)


class TestStateStore:
    """Behaviour shared by every backend."""

    def test_missing_record_returns_none(self, store):
        assert store.load(RecordType.HIGH_WATER_MARK) is None

    def test_save_and_load(self, store):
        store.save(RecordType.POSITION, {"amount": "10", "buy_price": "0.5"}, key="TokenA")

        assert store.load(RecordType.POSITION, "TokenA") == {"amount": "10", "buy_price": "0.5"}
        assert store.load(RecordType.POSITION, "TokenB") is None

    def test_scalar_values(self, store):
        store.save(RecordType.HIGH_WATER_MARK, "12.5")
        store.save(RecordType.CMC_DATA_VALID, False)

        assert store.load(RecordType.HIGH_WATER_MARK) == "12.5"
        assert store.load(RecordType.CMC_DATA_VALID) is False

    def test_decimal_and_datetime_serialized_as_strings(self, store):
        store.save(
            RecordType.WALLET_BALANCE,
            {"balance": Decimal("1.25"), "timestamp": datetime(2025, 1, 1, 12, 0)},
        )

        assert store.load(RecordType.WALLET_BALANCE) == {
            "balance": "1.25",
            "timestamp": "2025-01-01T12:00:00",
        }

    def test_overwrite(self, store):
        store.save(RecordType.HIGH_WATER_MARK, "10")
        store.save(RecordType.HIGH_WATER_MARK, "11")

        assert store.load(RecordType.HIGH_WATER_MARK) == "11"

    def test_delete(self, store):
        store.save(RecordType.TRAILING_STOP, {"amount": "5"}, key="TokenA")

        assert store.delete(RecordType.TRAILING_STOP, "TokenA") is True
        assert store.delete(RecordType.TRAILING_STOP, "TokenA") is False
        assert store.load(RecordType.TRAILING_STOP, "TokenA") is None

    def test_ttl_expiry(self, store, clock):
        store.save(RecordType.TRADING_PAUSED, {"paused": True}, ttl=3600)

        clock.now += 3599
        assert store.load(RecordType.TRADING_PAUSED) == {"paused": True}

        clock.now += 2
        assert store.load(RecordType.TRADING_PAUSED) is None

    def test_list_keys_per_type(self, store, clock):
        store.save(RecordType.POSITION, {}, key="A")
        store.save(RecordType.POSITION, {}, key="B")
        store.save(RecordType.TRAILING_STOP, {}, key="C")
        store.save(RecordType.POSITION, {}, key="EXPIRING", ttl=10)

        clock.now += 11

        assert sorted(store.list_keys(RecordType.POSITION)) == ["A", "B"]
        assert store.list_keys(RecordType.TRAILING_STOP) == ["C"]

    def test_load_all(self, store):
        store.save(RecordType.TOKEN_STATS, {"trades": 1}, key="A")
        store.save(RecordType.TOKEN_STATS, {"trades": 2}, key="B")

        assert store.load_all(RecordType.TOKEN_STATS) == {"A": {"trades": 1}, "B": {"trades": 2}}


class TestSQLiteStateStore:
    """SQLite-specific behaviour."""

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "state.db")
        SQLiteStateStore(path).save(RecordType.HIGH_WATER_MARK, "42")

        assert SQLiteStateStore(path).load(RecordType.HIGH_WATER_MARK) == "42"

    def test_purge_expired(self, tmp_path, clock):
        store = SQLiteStateStore(str(tmp_path / "state.db"), clock=clock)
        store.save(RecordType.TRADING_PAUSED, {"paused": True}, ttl=5)
        store.save(RecordType.HIGH_WATER_MARK, "1")

        clock.now += 10

        assert store.purge_expired() == 1
        assert store.load(RecordType.HIGH_WATER_MARK) == "1"


class TestCreateStateStore:
    """Tests for the backend factory."""

    def test_memory(self):
        assert isinstance(create_state_store("memory", ""), InMemoryStateStore)

    def test_sqlite(self, tmp_path):
        store = create_state_store("sqlite", str(tmp_path / "s.db"))
        assert isinstance(store, SQLiteStateStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_state_store("redis", "")
