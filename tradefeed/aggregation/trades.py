"""
Trade aggregation.

Groups fill records into per-order histories and reports each order once its
remaining quantity drops to zero.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

FillRecord = Mapping[str, Any]
OrderKey = Hashable
TradeCloseCallback = Callable[[list[FillRecord]], None]

# Some feeds serialise a fully-filled order's quantity as this literal
_CLOSED_QUANTITY_LITERAL = "0.0"

# Leading numeric text of a quantity string; trailing text such as units is ignored
_NUMERIC_PREFIX = re.compile(
    r"\s*[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)


@dataclass
class AggregatorStats:
    """Statistics for the trade aggregator."""

    records_received: int = 0
    records_skipped: int = 0
    orders_opened: int = 0
    orders_closed: int = 0
    sink_errors: int = 0


def _parse_quantity(value: Any) -> Optional[float]:
    """
    Parse a remaining quantity, returning None when it is not numeric.

    Strings are read up to the end of their leading number, so "0 lots"
    parses as 0.0.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    match = _NUMERIC_PREFIX.match(value)
    if match is None:
        return None
    return float(match.group())


class TradeAggregator:
    """
    Ledger of open orders keyed by ``[sourceId:]correlationOrderId``.

    Every fill after the first one for a key is checked for closure. A closed
    order is handed to ``on_trade_close`` with all its fills in arrival order
    and then dropped from the ledger. Without a callback, closed orders are
    kept and keep accumulating fills.
    """

    def __init__(self, on_trade_close: Optional[TradeCloseCallback] = None) -> None:
        self._trades: dict[OrderKey, list[FillRecord]] = {}
        self._on_trade_close = on_trade_close
        self._stats = AggregatorStats()

    @property
    def stats(self) -> AggregatorStats:
        return self._stats

    @staticmethod
    def order_key(trade: FillRecord) -> OrderKey:
        """Derive the grouping key for a fill record."""
        correlation_id = trade.get("correlationOrderId")
        source_id = trade.get("sourceId")
        if source_id:
            return f"{source_id}:{correlation_id}"
        return correlation_id

    def add_new_trade(self, trades: Iterable[Any]) -> None:
        """Add a batch of fill records, processing them in input order."""
        for trade in trades:
            self._stats.records_received += 1
            if not isinstance(trade, Mapping) or not trade:
                self._stats.records_skipped += 1
                logger.debug(f"Skipping malformed fill record: {trade!r}")
                continue

            key = self.order_key(trade)
            fills = self._trades.get(key)
            if fills is None:
                self._trades[key] = [trade]
                self._stats.orders_opened += 1
                continue

            fills.append(trade)
            if self._is_closing(trade) and self._on_trade_close is not None:
                del self._trades[key]
                self._stats.orders_closed += 1
                try:
                    self._on_trade_close(fills)
                except Exception as e:
                    # The order is already out of the ledger; keep processing the batch
                    self._stats.sink_errors += 1
                    logger.error(f"Closed trade sink failed for {key}: {e}", exc_info=True)

    @staticmethod
    def _is_closing(trade: FillRecord) -> bool:
        raw = trade.get("remainingQuantity")
        remaining = _parse_quantity(raw)
        if remaining is None:
            # Unparsable quantity: closure cannot be determined
            return False
        return remaining == 0 or raw == _CLOSED_QUANTITY_LITERAL

    def get_not_closed_trades(self) -> list[list[FillRecord]]:
        """Snapshot of every open order's fills, in ledger order."""
        return [list(fills) for fills in self._trades.values()]

    def __len__(self) -> int:
        return len(self._trades)
