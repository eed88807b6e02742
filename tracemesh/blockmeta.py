"""Block metadata as seen by the command-line tools."""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass
class BlockMeta:
    """Metadata describing a stored block; compacted blocks carry compacted_time."""

    block_id: uuid.UUID = field(default_factory=lambda: uuid.UUID(int=0))
    tenant_id: str = ""
    version: str = ""
    encoding: str = ""
    total_objects: int = 0
    size: int = 0
    compaction_level: int = 0
    start_time: datetime = ZERO_TIME
    end_time: datetime = ZERO_TIME
    compacted_time: Optional[datetime] = None


@dataclass
class UnifiedBlockMeta:
    """A block's metadata together with its compaction window and state."""

    meta: BlockMeta
    window: int
    compacted: bool = False

    @property
    def compacted_time(self) -> Optional[datetime]:
        return self.meta.compacted_time


def _unix_seconds(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return math.floor((moment - datetime(1970, 1, 1, tzinfo=timezone.utc)).total_seconds())


def _window(end_time: datetime, window_range: timedelta) -> int:
    span = int(window_range.total_seconds())
    if span <= 0:
        raise ValueError("window range must be at least one second")
    seconds = _unix_seconds(end_time)
    quotient = abs(seconds) // span
    return quotient if seconds >= 0 else -quotient


def get_meta(
    meta: Optional[BlockMeta],
    compacted_meta: Optional[BlockMeta],
    window_range: timedelta,
) -> UnifiedBlockMeta:
    """Prefer live metadata, fall back to compacted metadata, else a placeholder."""
    if meta is not None:
        return UnifiedBlockMeta(meta=meta, window=_window(meta.end_time, window_range))
    if compacted_meta is not None:
        return UnifiedBlockMeta(
            meta=compacted_meta,
            window=_window(compacted_meta.end_time, window_range),
            compacted=True,
        )
    return UnifiedBlockMeta(
        meta=BlockMeta(compaction_level=0, total_objects=-1), window=-1
    )


def sort_by_end_time(results: Iterable[UnifiedBlockMeta]) -> list[UnifiedBlockMeta]:
    """Return the results ordered by block end time, earliest first."""
    return sorted(results, key=lambda r: r.meta.end_time)