"""
Event sinks for the append-only run log.

The pipeline records every state transition (swap start/end, batch
completion, percentile snapshots, errors) through an EventSink. Sink
failures are reported on the console logger and never propagate into
transaction logic.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import aiofiles

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    RUN_STARTED = "run_started"
    ITERATION_STARTED = "iteration_started"
    SWAP_STARTED = "swap_started"
    SWAP_COMPLETED = "swap_completed"
    SWAP_SUBMITTED = "swap_submitted"
    SWAP_FAILED = "swap_failed"
    CUSTODY_RESPONSE = "custody_response"
    RELAY_FORWARDED = "relay_forwarded"
    RELAY_FAILED = "relay_failed"
    BATCH_COMPLETED = "batch_completed"
    PERCENTILES = "percentiles"
    SLEEPING = "sleeping"
    RUN_COMPLETED = "run_completed"


class EventSink(ABC):

    @abstractmethod
    async def record_event(self, timestamp: datetime, kind: str, detail: str) -> None:
        """Record one event. Implementations must not raise."""

    async def emit(self, kind: Union[EventKind, str], detail: str = "") -> None:
        kind_value = kind.value if isinstance(kind, EventKind) else kind
        await self.record_event(datetime.now(timezone.utc), kind_value, detail)


class NullEventSink(EventSink):

    async def record_event(self, timestamp: datetime, kind: str, detail: str) -> None:
        return None


class FileEventSink(EventSink):
    """Appends "<iso timestamp>, <kind>, <detail>" lines to a local file."""

    def __init__(self, path: Union[str, Path], encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding

    @staticmethod
    def format_line(timestamp: datetime, kind: str, detail: str) -> str:
        line = f"{timestamp.isoformat()}, {kind}"
        if detail:
            line += f", {detail}"
        return line.replace("\n", " | ") + "\n"

    async def reset(self, header: Optional[str] = None) -> None:
        """Start a fresh log for a new run."""
        header = header or f"Script started at {datetime.now(timezone.utc).isoformat()}"
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, "w", encoding=self.encoding) as f:
                await f.write(header + "\n")
        except OSError as e:
            logger.warning(f"Failed to initialize run log {self.path}: {e}")

    async def record_event(self, timestamp: datetime, kind: str, detail: str) -> None:
        try:
            async with aiofiles.open(self.path, "a", encoding=self.encoding) as f:
                await f.write(self.format_line(timestamp, kind, detail))
        except OSError as e:
            logger.warning(f"Failed to write to run log {self.path}: {e}")


__all__ = ["EventKind", "EventSink", "NullEventSink", "FileEventSink"]
