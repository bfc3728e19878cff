"""Incremental whale statistics aggregation.

This module provides the WhaleAggregator, the only writer of the
WhaleStatisticsStore. It turns a stream of trade events into per-whale
running statistics and per-day rollups, and applies later settlement
signals to already-recorded trades.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import numpy as np

from whale_copytrade.aggregator.models import (
    DayRollup,
    IngestResult,
    SkipReason,
    TradeEntry,
    WhaleRecord,
    day_index,
)
from whale_copytrade.aggregator.risk import LinearRiskScorer, RiskScorer
from whale_copytrade.aggregator.store import WhaleStatisticsStore
from whale_copytrade.config import Settings
from whale_copytrade.ingestor.models import ZERO_ADDRESS, TradeEvent

if TYPE_CHECKING:
    from whale_copytrade.storage.redis_mirror import WhaleStateMirror

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MIN_TRADE_USD = Decimal("1000")
DEFAULT_REFERENCE_PRICE_USD = Decimal("675")
DEFAULT_NON_WALLET_PREFIXES = ("0x0000",)

SHORT_WINDOW = timedelta(days=7)
LONG_WINDOW = timedelta(days=30)


class AggregatorConsistencyError(Exception):
    """Raised when a whale record would violate its invariants.

    This indicates a programming error and is never absorbed.
    """


class UnknownTradeError(Exception):
    """Raised when a settlement arrives for a trade that was never ingested."""


def _window_win_rate(ledger: tuple[TradeEntry, ...], *, as_of: datetime, window: timedelta) -> float:
    cutoff = as_of - window
    in_window = [e for e in ledger if cutoff <= e.timestamp <= as_of]
    if not in_window:
        return 0.0
    wins = sum(1 for e in in_window if e.is_success)
    return wins / len(in_window)


def _realized_metrics(ledger: tuple[TradeEntry, ...], total_volume_usd: Decimal) -> tuple[float, float]:
    """Return (max_drawdown, sharpe_ratio) over settled trades."""
    settled = sorted((e for e in ledger if e.is_settled), key=lambda e: e.timestamp)
    if not settled:
        return 0.0, 0.0

    pnl = np.cumsum([float(e.profit_usd) for e in settled])
    curve = np.concatenate(([0.0], pnl))
    drawdown = float(np.max(np.maximum.accumulate(curve) - curve))
    volume = float(total_volume_usd)
    max_drawdown = min(1.0, drawdown / volume) if volume > 0 else 0.0

    sharpe = 0.0
    returns = np.array(
        [float(e.profit_usd / e.amount_usd) for e in settled if e.amount_usd > 0],
        dtype=float,
    )
    if returns.size >= 2:
        std = float(np.std(returns, ddof=1))
        if std > 0:
            sharpe = float(np.mean(returns)) / std
    return max_drawdown, sharpe


class WhaleAggregator:
    """Maintains whale statistics from trade events.

    This aggregator:
    - Discards sub-threshold, non-wallet and replayed events without error
    - Creates a WhaleRecord on an address's first qualifying trade
    - Recomputes derived fields (win rates, average size, risk) from totals
      and the trade ledger on every mutation
    - Maintains per-day volume / trade / unique-whale rollups
    - Serializes read-modify-write per address and per day

    Example:
        ```python
        store = WhaleStatisticsStore()
        aggregator = WhaleAggregator(store)

        result = await aggregator.ingest(event)
        if result.recorded:
            print(result.record.total_trades)

        await aggregator.record_outcome(event.tx_hash, is_success=True, profit_usd=Decimal("120"))
        ```
    """

    def __init__(
        self,
        store: WhaleStatisticsStore,
        *,
        scorer: RiskScorer | None = None,
        mirror: WhaleStateMirror | None = None,
        min_trade_usd: Decimal = DEFAULT_MIN_TRADE_USD,
        reference_price_usd: Decimal = DEFAULT_REFERENCE_PRICE_USD,
        non_wallet_prefixes: tuple[str, ...] = DEFAULT_NON_WALLET_PREFIXES,
    ) -> None:
        """Initialize the aggregator.

        Args:
            store: The store this aggregator owns writes to.
            scorer: Risk scoring strategy. Defaults to LinearRiskScorer.
            mirror: Optional Redis mirror written before each publish.
            min_trade_usd: Events below this USD value are skipped.
            reference_price_usd: Default input-asset price for USD conversion.
            non_wallet_prefixes: Sender prefixes treated as non-wallets.
        """
        self._store = store
        self._scorer = scorer or LinearRiskScorer()
        self._mirror = mirror
        self._min_trade_usd = min_trade_usd
        self._reference_price = reference_price_usd
        self._non_wallet_prefixes = tuple(p.lower() for p in non_wallet_prefixes)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: WhaleStatisticsStore,
        *,
        scorer: RiskScorer | None = None,
        mirror: WhaleStateMirror | None = None,
    ) -> WhaleAggregator:
        return cls(
            store,
            scorer=scorer,
            mirror=mirror,
            min_trade_usd=settings.aggregator.min_trade_usd,
            reference_price_usd=settings.aggregator.reference_price_usd,
            non_wallet_prefixes=settings.aggregator.non_wallet_prefixes,
        )

    @property
    def store(self) -> WhaleStatisticsStore:
        return self._store

    def is_non_wallet(self, address: str) -> bool:
        """Return True for the zero address and configured non-wallet prefixes."""
        normalized = address.lower()
        if normalized == ZERO_ADDRESS:
            return True
        return any(normalized.startswith(p) for p in self._non_wallet_prefixes)

    async def ingest(
        self,
        event: TradeEvent,
        *,
        reference_price: Decimal | None = None,
    ) -> IngestResult:
        """Apply one trade event to the store.

        Args:
            event: The swap to record.
            reference_price: USD price of the input asset; defaults to the
                configured reference price.

        Returns:
            IngestResult with the published record and rollup, or a skip reason.
        """
        address = event.sender_address
        if self.is_non_wallet(address):
            logger.debug("Skipping non-wallet sender %s", address[:10] + "...")
            return IngestResult.skipped(SkipReason.NON_WALLET)

        price = self._reference_price if reference_price is None else reference_price
        amount_usd = event.usd_value(price)
        if amount_usd < self._min_trade_usd:
            logger.debug("Skipping sub-threshold trade %s ($%s)", event.tx_hash, amount_usd)
            return IngestResult.skipped(SkipReason.BELOW_THRESHOLD, amount_usd=amount_usd)

        tx_hash = event.tx_hash.lower()
        day = day_index(event.timestamp)

        async with self._store.address_lock(address):
            if self._store.has_trade(tx_hash):
                logger.debug("Skipping replayed trade %s", tx_hash)
                return IngestResult.skipped(SkipReason.DUPLICATE, amount_usd=amount_usd)

            entry = TradeEntry(
                tx_hash=tx_hash,
                address=address,
                timestamp=event.timestamp,
                amount_usd=amount_usd,
            )
            ledger = self._store.get_ledger(address) + (entry,)
            record = self._apply_trade(self._store.get_whale(address), entry)
            record = self._refresh_derived(record, ledger)
            self._check_invariants(record)

            async with self._store.day_lock(day):
                rollup = self._apply_day(self._store.get_day(day) or DayRollup(day=day), entry)
                if self._mirror is not None:
                    await self._mirror.write(record, entry, rollup=rollup)
                self._store.commit(record, ledger, rollup=rollup, new_entry=entry)

        logger.info("Trade recorded: %s - $%s", address[:10] + "...", amount_usd.quantize(Decimal("0.01")))
        return IngestResult(record=record, rollup=rollup, amount_usd=amount_usd)

    async def record_outcome(
        self,
        tx_hash: str,
        *,
        is_success: bool,
        profit_usd: Decimal = Decimal(0),
    ) -> WhaleRecord:
        """Settle (or re-settle) a previously ingested trade.

        Any earlier settlement of the same trade is reversed before the new
        one is applied, so `successful_trades`, `profit_usd` and `loss_usd`
        never double-count. `total_trades` is not touched.

        Raises:
            UnknownTradeError: If the trade was never ingested.
        """
        tx_hash = tx_hash.lower()
        address = self._store.address_for_trade(tx_hash)
        if address is None:
            raise UnknownTradeError(f"No ingested trade with hash {tx_hash}")

        async with self._store.address_lock(address):
            record = self._store.get_whale(address)
            ledger = self._store.get_ledger(address)
            if record is None:
                raise AggregatorConsistencyError(f"Trade {tx_hash} indexed to {address} without a record")

            position = next((i for i, e in enumerate(ledger) if e.tx_hash == tx_hash), None)
            if position is None:
                raise AggregatorConsistencyError(f"Trade {tx_hash} missing from ledger of {address}")
            previous = ledger[position]
            settled = dataclasses.replace(previous, is_success=is_success, profit_usd=profit_usd)

            successful = record.successful_trades
            profit = record.profit_usd
            loss = record.loss_usd
            if previous.is_success:
                successful -= 1
            profit, loss = self._revert_pnl(profit, loss, previous.profit_usd)
            if is_success:
                successful += 1
            profit, loss = self._apply_pnl(profit, loss, profit_usd)

            new_ledger = ledger[:position] + (settled,) + ledger[position + 1 :]
            new_record = dataclasses.replace(
                record,
                successful_trades=successful,
                profit_usd=profit,
                loss_usd=loss,
            )
            new_record = self._refresh_derived(new_record, new_ledger)
            self._check_invariants(new_record)

            if self._mirror is not None:
                await self._mirror.write(new_record, settled)
            self._store.commit(new_record, new_ledger)

        logger.debug(
            "Trade settled: %s success=%s pnl=%s",
            tx_hash,
            is_success,
            profit_usd,
        )
        return new_record

    @staticmethod
    def _apply_pnl(profit: Decimal, loss: Decimal, amount: Decimal) -> tuple[Decimal, Decimal]:
        if amount > 0:
            return profit + amount, loss
        return profit, loss - amount

    @staticmethod
    def _revert_pnl(profit: Decimal, loss: Decimal, amount: Decimal) -> tuple[Decimal, Decimal]:
        if amount > 0:
            return profit - amount, loss
        return profit, loss + amount

    def _apply_trade(self, record: WhaleRecord | None, entry: TradeEntry) -> WhaleRecord:
        if record is None:
            record = WhaleRecord(
                address=entry.address,
                first_seen_at=entry.timestamp,
                last_trade_at=entry.timestamp,
            )
        return dataclasses.replace(
            record,
            first_seen_at=min(record.first_seen_at, entry.timestamp),
            last_trade_at=max(record.last_trade_at, entry.timestamp),
            total_trades=record.total_trades + 1,
            total_volume_usd=record.total_volume_usd + entry.amount_usd,
            is_active=True,
        )

    def _refresh_derived(self, record: WhaleRecord, ledger: tuple[TradeEntry, ...]) -> WhaleRecord:
        win_rate_7d = _window_win_rate(ledger, as_of=record.last_trade_at, window=SHORT_WINDOW)
        win_rate_30d = _window_win_rate(ledger, as_of=record.last_trade_at, window=LONG_WINDOW)
        max_drawdown, sharpe = _realized_metrics(ledger, record.total_volume_usd)
        risk_score = self._scorer.score(
            win_rate_30d=win_rate_30d,
            total_trades=record.total_trades,
            total_volume_usd=record.total_volume_usd,
        )
        return dataclasses.replace(
            record,
            win_rate_7d=win_rate_7d,
            win_rate_30d=win_rate_30d,
            risk_score=risk_score,
            max_drawdown=max_drawdown,
            sharpe_ratio=sharpe,
        )

    @staticmethod
    def _apply_day(rollup: DayRollup, entry: TradeEntry) -> DayRollup:
        return dataclasses.replace(
            rollup,
            volume_usd=rollup.volume_usd + entry.amount_usd,
            trade_count=rollup.trade_count + 1,
            whale_addresses=rollup.whale_addresses | {entry.address},
        )

    @staticmethod
    def _check_invariants(record: WhaleRecord) -> None:
        if record.total_trades < 0 or record.successful_trades < 0:
            raise AggregatorConsistencyError(f"Negative trade counts for {record.address}")
        if record.successful_trades > record.total_trades:
            raise AggregatorConsistencyError(
                f"successful_trades ({record.successful_trades}) exceeds "
                f"total_trades ({record.total_trades}) for {record.address}"
            )
        if record.total_volume_usd < 0 or record.profit_usd < 0 or record.loss_usd < 0:
            raise AggregatorConsistencyError(f"Negative USD totals for {record.address}")
        if not (0.0 <= record.win_rate_7d <= 1.0 and 0.0 <= record.win_rate_30d <= 1.0):
            raise AggregatorConsistencyError(f"Win rate out of range for {record.address}")
