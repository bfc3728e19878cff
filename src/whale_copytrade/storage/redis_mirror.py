"""Redis mirror of aggregator state.

Every aggregator mutation is written in one MULTI/EXEC pipeline so a
restarted process (or another reader of Redis) never observes a record
without its matching ledger entry and day rollup.

Layout (prefix defaults to ``whale:``):
  {prefix}whales              set of tracked addresses
  {prefix}record:{address}    JSON WhaleRecord
  {prefix}trades:{address}    hash tx_hash -> JSON TradeEntry
  {prefix}days                set of day indexes
  {prefix}day:{day}           hash volume_usd / trade_count
  {prefix}day:{day}:whales    set of addresses seen that day
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal

from redis.asyncio import Redis
from redis.exceptions import RedisError

from whale_copytrade.aggregator.models import DayRollup, TradeEntry, WhaleRecord

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "whale:"


class MirrorError(Exception):
    """Raised when aggregator state cannot be written to or read from Redis."""


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class WhaleStateMirror:
    """Write-through Redis persistence for whale records and day rollups."""

    def __init__(self, redis: Redis, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._redis = redis
        self._prefix = key_prefix

    def _record_key(self, address: str) -> str:
        return f"{self._prefix}record:{address}"

    def _trades_key(self, address: str) -> str:
        return f"{self._prefix}trades:{address}"

    def _day_key(self, day: int) -> str:
        return f"{self._prefix}day:{day}"

    def _day_whales_key(self, day: int) -> str:
        return f"{self._prefix}day:{day}:whales"

    async def write(
        self,
        record: WhaleRecord,
        entry: TradeEntry,
        *,
        rollup: DayRollup | None = None,
    ) -> None:
        """Persist a record, one ledger entry and optionally a rollup atomically."""
        pipe = self._redis.pipeline(transaction=True)
        pipe.sadd(f"{self._prefix}whales", record.address)
        pipe.set(self._record_key(record.address), json.dumps(record.to_dict()))
        pipe.hset(self._trades_key(record.address), entry.tx_hash, json.dumps(entry.to_dict()))
        if rollup is not None:
            pipe.sadd(f"{self._prefix}days", str(rollup.day))
            pipe.hset(
                self._day_key(rollup.day),
                mapping={
                    "volume_usd": str(rollup.volume_usd),
                    "trade_count": str(rollup.trade_count),
                },
            )
            pipe.sadd(self._day_whales_key(rollup.day), record.address)
        try:
            await pipe.execute()
        except RedisError as e:
            raise MirrorError(f"Failed to mirror state for {record.address}: {e}") from e

    async def load_all(
        self,
    ) -> tuple[list[WhaleRecord], dict[str, tuple[TradeEntry, ...]], list[DayRollup]]:
        """Read back every mirrored record, ledger and rollup."""
        try:
            addresses = [_decode(a) for a in await self._redis.smembers(f"{self._prefix}whales")]
            records: list[WhaleRecord] = []
            ledgers: dict[str, tuple[TradeEntry, ...]] = {}
            for address in sorted(addresses):
                raw = await self._redis.get(self._record_key(address))
                if raw is None:
                    raise MirrorError(f"Missing mirrored record for {address}")
                records.append(WhaleRecord.from_dict(json.loads(_decode(raw))))
                trades = await self._redis.hgetall(self._trades_key(address))
                entries = [TradeEntry.from_dict(json.loads(_decode(v))) for v in trades.values()]
                ledgers[address] = tuple(sorted(entries, key=lambda e: e.timestamp))

            rollups: list[DayRollup] = []
            days = sorted(int(_decode(d)) for d in await self._redis.smembers(f"{self._prefix}days"))
            for day in days:
                data = {_decode(k): _decode(v) for k, v in (await self._redis.hgetall(self._day_key(day))).items()}
                members = await self._redis.smembers(self._day_whales_key(day))
                rollups.append(
                    DayRollup(
                        day=day,
                        volume_usd=Decimal(data.get("volume_usd", "0")),
                        trade_count=int(data.get("trade_count", "0")),
                        whale_addresses=frozenset(_decode(m) for m in members),
                    )
                )
        except RedisError as e:
            raise MirrorError(f"Failed to load mirrored state: {e}") from e

        logger.info("Loaded %d whales and %d day rollups from Redis", len(records), len(rollups))
        return records, ledgers, rollups
