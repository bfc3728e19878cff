"""In-memory whale statistics store.

The store owns every WhaleRecord, trade ledger and DayRollup. Values are
immutable and replaced whole by `commit()`, which never awaits, so a reader
always sees either the state before or after an ingest, never a mix.

Writers must hold the per-address lock (and the per-day lock when touching
a rollup) for the whole read-modify-write sequence. Lock order is always
address before day.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from decimal import Decimal

from whale_copytrade.aggregator.models import DayRollup, TradeEntry, WhaleRecord


class WhaleStatisticsStore:
    """Keyed store of whale records, trade ledgers and day rollups."""

    def __init__(self) -> None:
        self._records: dict[str, WhaleRecord] = {}
        self._ledgers: dict[str, tuple[TradeEntry, ...]] = {}
        self._trade_index: dict[str, str] = {}
        self._days: dict[int, DayRollup] = {}
        self._address_locks: dict[str, asyncio.Lock] = {}
        self._day_locks: dict[int, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._records

    # Locks

    def address_lock(self, address: str) -> asyncio.Lock:
        """Return the lock serializing writes for one address."""
        key = address.lower()
        if key not in self._address_locks:
            self._address_locks[key] = asyncio.Lock()
        return self._address_locks[key]

    def day_lock(self, day: int) -> asyncio.Lock:
        """Return the lock serializing writes for one UTC day."""
        if day not in self._day_locks:
            self._day_locks[day] = asyncio.Lock()
        return self._day_locks[day]

    # Reads

    def get_whale(self, address: str) -> WhaleRecord | None:
        return self._records.get(address.lower())

    def get_ledger(self, address: str) -> tuple[TradeEntry, ...]:
        return self._ledgers.get(address.lower(), ())

    def address_for_trade(self, tx_hash: str) -> str | None:
        return self._trade_index.get(tx_hash.lower())

    def has_trade(self, tx_hash: str) -> bool:
        return tx_hash.lower() in self._trade_index

    def get_day(self, day: int) -> DayRollup | None:
        return self._days.get(day)

    def all_whales(self) -> list[WhaleRecord]:
        """All records sorted by lifetime win rate, best first."""
        return sorted(self._records.values(), key=lambda r: r.win_rate, reverse=True)

    def top_whales(self, limit: int = 10) -> list[WhaleRecord]:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        return self.all_whales()[:limit]

    def active_whales(self) -> list[WhaleRecord]:
        return [r for r in self.all_whales() if r.is_active]

    def qualified_whales(
        self,
        *,
        min_win_rate: float = 0.55,
        min_trades: int = 20,
        min_volume_usd: Decimal = Decimal("10000"),
    ) -> list[WhaleRecord]:
        """Records meeting the whale qualification thresholds (strict)."""
        return [
            r
            for r in self.all_whales()
            if r.win_rate > min_win_rate
            and r.total_trades > min_trades
            and r.total_volume_usd > min_volume_usd
        ]

    def days(self) -> list[DayRollup]:
        return [self._days[d] for d in sorted(self._days)]

    # Writes

    def commit(
        self,
        record: WhaleRecord,
        ledger: tuple[TradeEntry, ...],
        *,
        rollup: DayRollup | None = None,
        new_entry: TradeEntry | None = None,
    ) -> None:
        """Publish a new record/ledger (and rollup) in one step.

        Must be called while holding the address lock (and the day lock if
        a rollup is given). Contains no await points.
        """
        address = record.address
        self._records[address] = record
        self._ledgers[address] = ledger
        if new_entry is not None:
            self._trade_index[new_entry.tx_hash] = address
        if rollup is not None:
            self._days[rollup.day] = rollup

    def load(
        self,
        records: Iterable[WhaleRecord],
        ledgers: dict[str, tuple[TradeEntry, ...]],
        rollups: Iterable[DayRollup],
    ) -> None:
        """Bulk-load state restored from a mirror (startup only)."""
        for record in records:
            ledger = ledgers.get(record.address, ())
            self.commit(record, ledger)
            for entry in ledger:
                self._trade_index[entry.tx_hash] = record.address
        for rollup in rollups:
            self._days[rollup.day] = rollup
