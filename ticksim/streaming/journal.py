"""
Snapshot journal for the trading ledgers.
Best-effort persistence: failures are logged and never interrupt the
simulation, which stays the source of truth in memory.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json
import logging

from ..core.types import Order, PositionHistory, Trade
from .serialization import (
    deserialize_history, deserialize_order, deserialize_trade,
    serialize_history, serialize_order, serialize_trade
)

logger = logging.getLogger(__name__)

K_ORDERS = "orders"
K_TRADES = "trades"
K_POSITION_HISTORY = "positionHistory"

MAX_JOURNAL_RECORDS = 2000

# ============================================================================
# BLOB STORES
# ============================================================================

class BlobStore(ABC):
    """Opaque key-value store of JSON-compatible values"""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any):
        pass


class InMemoryBlobStore(BlobStore):

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any):
        self._data[key] = value


class JsonFileBlobStore(BlobStore):
    """One JSON file per key under a directory; indent=None writes compact JSON"""

    def __init__(self, directory: Path = Path("./state"), indent: Optional[int] = None):
        self.directory = Path(directory)
        self.indent = indent
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path) as f:
            return json.load(f)

    def set(self, key: str, value: Any):
        # Write then rename so a crash never leaves a torn file
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, 'w') as f:
            json.dump(value, f, indent=self.indent)
        tmp.replace(path)

# ============================================================================
# JOURNAL
# ============================================================================

@dataclass
class JournalSnapshot:
    """Restored ledgers, newest first"""
    orders: List[Order] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    position_history: List[PositionHistory] = field(default_factory=list)


class SnapshotJournal:
    """
    Saves and restores orders, trades and position history.

    Each save keeps only the most recent MAX_JOURNAL_RECORDS entries per
    ledger. Errors are swallowed after logging; there are no retries.
    """

    def __init__(self, store: BlobStore, max_records: int = MAX_JOURNAL_RECORDS):
        self.store = store
        self.max_records = max_records

        # Stats
        self.saves = 0
        self.failures = 0

    def save(
        self,
        orders: Iterable[Order],
        trades: Iterable[Trade],
        position_history: Iterable[PositionHistory]
    ):
        """
        Save all three ledgers.

        Orders must come in submission order, oldest first; the newest
        submissions are kept. Trades and history may come in any order and
        are kept by timestamp.
        """
        try:
            self.store.set(K_ORDERS, [serialize_order(o) for o in orders][-self.max_records:])
            self.store.set(K_TRADES, self._cap([serialize_trade(t) for t in trades], 'timestamp'))
            self.store.set(K_POSITION_HISTORY, self._cap(
                [serialize_history(h) for h in position_history], 'close_timestamp'
            ))
            self.saves += 1
        except Exception as e:
            self.failures += 1
            logger.error(f"Journal save failed: {e}", exc_info=True)

    def load(self) -> JournalSnapshot:
        """Restore the ledgers newest first; empty on any failure"""
        try:
            orders = [deserialize_order(d) for d in self.store.get(K_ORDERS) or []]
            trades = [deserialize_trade(d) for d in self.store.get(K_TRADES) or []]
            history = [deserialize_history(d) for d in self.store.get(K_POSITION_HISTORY) or []]
        except Exception as e:
            self.failures += 1
            logger.error(f"Journal load failed: {e}", exc_info=True)
            return JournalSnapshot()

        # Orders are stored oldest submission first
        orders.reverse()
        trades.sort(key=lambda t: t.timestamp, reverse=True)
        history.sort(key=lambda h: h.close_timestamp, reverse=True)

        return JournalSnapshot(
            orders=orders[:self.max_records],
            trades=trades[:self.max_records],
            position_history=history[:self.max_records]
        )

    def clear(self):
        try:
            for key in (K_ORDERS, K_TRADES, K_POSITION_HISTORY):
                self.store.set(key, [])
        except Exception as e:
            self.failures += 1
            logger.error(f"Journal clear failed: {e}", exc_info=True)

    def _cap(self, records: List[dict], time_key: str) -> List[dict]:
        records.sort(key=lambda r: r[time_key])
        return records[-self.max_records:]

    def get_stats(self) -> dict:
        return {
            'saves': self.saves,
            'failures': self.failures,
            'max_records': self.max_records
        }
