"""
State Store for cross-cycle engine state.

Provides:
- RecordType: semantic record namespaces (high-water mark, trailing stops, ...)
- StateStore: load/save/delete interface keyed by record type plus key
- InMemoryStateStore: dict-backed store for tests and dry runs
- SQLiteStateStore: durable SQLite store with JSON payloads

Values are JSON-compatible structures. Decimals and datetimes are
serialized as strings; callers convert back on load.
"""

import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"


class RecordType(Enum):
    """Semantic record namespaces."""

    # Portfolio risk
    HIGH_WATER_MARK = "high_water_mark"
    PERFORMANCE_HISTORY = "performance_history"
    POSITION = "position"

    # Position monitoring
    TRAILING_STOP = "trailing_stop"

    # Slippage model
    SLIPPAGE_SETTINGS = "slippage_settings"
    SLIPPAGE_HISTORY = "slippage_history"
    LAST_SLIPPAGE_OPTIMIZATION = "last_slippage_optimization"
    SPECIAL_SLIPPAGE_TOKENS = "special_slippage_tokens"
    TOKEN_SLIPPAGE = "token_slippage"
    TOKEN_TAX = "token_tax"

    # Circuit breaker and data quality
    CIRCUIT_BREAKER = "circuit_breaker"
    TRADING_PAUSED = "trading_paused"
    DATA_QUALITY = "data_quality"
    SCORING_WEIGHTS = "scoring_weights"
    CMC_DATA_VALID = "cmc_data_valid"

    # Trade history
    TRADE = "trade"
    TOKEN_STATS = "token_stats"

    # Raw signal feeds published by collectors
    SIGNAL_FEED = "signal_feed"
    FEED_METADATA = "feed_metadata"

    # Engine
    WALLET_BALANCE = "wallet_balance"


class StateEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and datetime objects."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class StateStore(ABC):
    """Key/value state keyed by (record type, key) with optional TTL."""

    @abstractmethod
    def load(self, record_type: RecordType, key: str = DEFAULT_KEY) -> Optional[Any]:
        """Return the stored value, or None if missing or expired."""

    @abstractmethod
    def save(
        self,
        record_type: RecordType,
        value: Any,
        key: str = DEFAULT_KEY,
        ttl: Optional[float] = None,
    ) -> None:
        """Store a value; ttl in seconds, None for no expiry."""

    @abstractmethod
    def delete(self, record_type: RecordType, key: str = DEFAULT_KEY) -> bool:
        """Remove a record. Returns True if it existed."""

    @abstractmethod
    def list_keys(self, record_type: RecordType) -> List[str]:
        """Keys of all live records of a type."""

    def load_all(self, record_type: RecordType) -> Dict[str, Any]:
        """All live records of a type, keyed by record key."""
        records = {}
        for key in self.list_keys(record_type):
            value = self.load(record_type, key)
            if value is not None:
                records[key] = value
        return records

    def close(self) -> None:
        """Release resources."""


class InMemoryStateStore(StateStore):
    """
    Dict-backed store.

    Values are round-tripped through JSON on save so callers see the same
    shapes as with the SQLite store.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: Dict[Tuple[str, str], Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _live(self, entry: Tuple[str, Optional[float]]) -> bool:
        expires_at = entry[1]
        return expires_at is None or self._clock() <= expires_at

    def load(self, record_type: RecordType, key: str = DEFAULT_KEY) -> Optional[Any]:
        with self._lock:
            entry = self._records.get((record_type.value, key))
            if entry is None:
                return None
            if not self._live(entry):
                del self._records[(record_type.value, key)]
                return None
            return json.loads(entry[0])

    def save(
        self,
        record_type: RecordType,
        value: Any,
        key: str = DEFAULT_KEY,
        ttl: Optional[float] = None,
    ) -> None:
        payload = json.dumps(value, cls=StateEncoder)
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._records[(record_type.value, key)] = (payload, expires_at)

    def delete(self, record_type: RecordType, key: str = DEFAULT_KEY) -> bool:
        with self._lock:
            return self._records.pop((record_type.value, key), None) is not None

    def list_keys(self, record_type: RecordType) -> List[str]:
        with self._lock:
            return [
                key
                for (rtype, key), entry in self._records.items()
                if rtype == record_type.value and self._live(entry)
            ]


class SQLiteStateStore(StateStore):
    """
    Durable state store on SQLite.

    Usage:
        store = SQLiteStateStore("data/engine_state.db")
        store.save(RecordType.HIGH_WATER_MARK, "12.5")
        hwm = store.load(RecordType.HIGH_WATER_MARK)
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS records (
        record_type TEXT NOT NULL,
        record_key TEXT NOT NULL,
        value_json TEXT NOT NULL,
        expires_at REAL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (record_type, record_key)
    );

    CREATE INDEX IF NOT EXISTS idx_records_type ON records(record_type);
    CREATE INDEX IF NOT EXISTS idx_records_expiry ON records(expires_at);
    """

    def __init__(
        self,
        db_path: str = "data/engine_state.db",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            clock: Time source for TTL checks
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()

        self._init_database()
        logger.info(f"SQLiteStateStore initialized with database: {self._db_path}")

    def _init_database(self) -> None:
        """Initialize database schema."""
        with sqlite3.connect(self._db_path) as conn:
            conn.executescript(self.SCHEMA)
            conn.commit()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def load(self, record_type: RecordType, key: str = DEFAULT_KEY) -> Optional[Any]:
        with self._lock, self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT value_json, expires_at FROM records
                WHERE record_type = ? AND record_key = ?
                """,
                (record_type.value, key),
            ).fetchone()

            if row is None:
                return None

            if row["expires_at"] is not None and self._clock() > row["expires_at"]:
                conn.execute(
                    "DELETE FROM records WHERE record_type = ? AND record_key = ?",
                    (record_type.value, key),
                )
                conn.commit()
                return None

        return json.loads(row["value_json"])

    def save(
        self,
        record_type: RecordType,
        value: Any,
        key: str = DEFAULT_KEY,
        ttl: Optional[float] = None,
    ) -> None:
        value_json = json.dumps(value, cls=StateEncoder)
        expires_at = self._clock() + ttl if ttl is not None else None

        with self._lock, self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO records
                    (record_type, record_key, value_json, expires_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record_type.value,
                    key,
                    value_json,
                    expires_at,
                    datetime.utcnow().isoformat(),
                ),
            )
            conn.commit()

        logger.debug(f"Saved {record_type.value}:{key}")

    def delete(self, record_type: RecordType, key: str = DEFAULT_KEY) -> bool:
        with self._lock, self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE record_type = ? AND record_key = ?",
                (record_type.value, key),
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_keys(self, record_type: RecordType) -> List[str]:
        with self._lock, self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT record_key FROM records
                WHERE record_type = ? AND (expires_at IS NULL OR expires_at >= ?)
                ORDER BY record_key
                """,
                (record_type.value, self._clock()),
            ).fetchall()
        return [row["record_key"] for row in rows]

    def purge_expired(self) -> int:
        """Delete expired records. Returns number removed."""
        with self._lock, self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE expires_at IS NOT NULL AND expires_at < ?",
                (self._clock(),),
            )
            conn.commit()
            removed = cursor.rowcount

        if removed:
            logger.info(f"Purged {removed} expired state records")
        return removed


def create_state_store(backend: str, path: str) -> StateStore:
    """Build the configured state store backend."""
    if backend == "memory":
        return InMemoryStateStore()
    if backend == "sqlite":
        return SQLiteStateStore(path)
    raise ValueError(f"Unknown state store backend: {backend}")
