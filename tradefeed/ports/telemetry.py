"""Telemetry Port Interface.

Contract: Log structured lifecycle events (closed trades, subscription errors,
shutdown state) to an external sink.
"""
from __future__ import annotations
from typing import Protocol, Any

class Telemetry(Protocol):
    def log(self, event: str, **fields: Any) -> None: ...
