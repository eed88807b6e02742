"""Reports on stored blocks: listings, compaction summaries and content scans."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import humanize
from tabulate import tabulate

from tracemesh.blockmeta import ZERO_TIME, UnifiedBlockMeta

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_BYTE_SIZES = ("B", "kB", "MB", "GB", "TB", "PB", "EB")
_PROGRESS_EVERY = 100_000
_ID_WIDTH = 16

BLOCK_COLUMNS = (
    "id",
    "lvl",
    "objects",
    "size",
    "encoding",
    "vers",
    "window",
    "start",
    "end",
    "duration",
    "age",
)
SUMMARY_COLUMNS = (
    "lvl",
    "blocks",
    "total",
    "smallest block",
    "largest block",
    "earliest",
    "latest",
)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return _aware(now) if now is not None else datetime.now(timezone.utc)


def _elapsed(later: datetime, earlier: datetime) -> float:
    return (_aware(later) - _aware(earlier)).total_seconds()


def format_duration(seconds: float) -> str:
    """Render a duration rounded to whole seconds, e.g. 1h2m3s, 4m0s or 5s."""
    whole = math.floor(abs(seconds) + 0.5)
    sign = "-" if seconds < 0 and whole else ""
    if whole == 0:
        return "0s"
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


def _bytes(size: int) -> str:
    if size < 10:
        return f"{size} B"
    exponent = min(int(math.floor(math.log(size) / math.log(1000))), len(_BYTE_SIZES) - 1)
    value = math.floor(size / 1000**exponent * 10 + 0.5) / 10
    if value < 10:
        return f"{value:.1f} {_BYTE_SIZES[exponent]}"
    return f"{value:.0f} {_BYTE_SIZES[exponent]}"


def _rfc3339(moment: datetime) -> str:
    text = _aware(moment).isoformat(timespec="seconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _time_string(moment: datetime) -> str:
    moment = _aware(moment)
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.strftime("%z") or "+0000"
    return f"{text} {offset} {moment.tzname()}"


def _render(columns: Sequence[str], rows: list[list[str]]) -> str:
    headers = [column.upper() for column in columns]
    return tabulate(rows, headers=headers, tablefmt="psql", disable_numparse=True)


def blocks_table(
    results: Sequence[UnifiedBlockMeta],
    window_range: timedelta,
    include_compacted: bool,
    now: Optional[datetime] = None,
) -> str:
    """Render one row per block plus a footer with total objects and size."""
    now = _now(now)
    columns = list(BLOCK_COLUMNS)
    if include_compacted:
        columns.append("cmp")
    window_seconds = int(window_range.total_seconds())

    total_objects = 0
    total_bytes = 0
    rows: list[list[str]] = []
    for result in results:
        meta = result.meta
        cells = {
            "id": str(meta.block_id),
            "lvl": str(meta.compaction_level),
            "objects": str(meta.total_objects),
            "size": _bytes(meta.size),
            "encoding": meta.encoding,
            "vers": meta.version,
            "window": _rfc3339(
                _EPOCH + timedelta(seconds=result.window * window_seconds)
            ),
            "start": _rfc3339(meta.start_time),
            "end": _rfc3339(meta.end_time),
            "duration": format_duration(_elapsed(meta.end_time, meta.start_time)),
            "age": format_duration(_elapsed(now, meta.end_time)),
            "cmp": "Y" if result.compacted else " ",
        }
        rows.append([cells[column] for column in columns])
        total_objects += meta.total_objects
        total_bytes += meta.size

    footer_cells = {"objects": str(total_objects), "size": _bytes(total_bytes)}
    rows.append([footer_cells.get(column, "") for column in columns])
    return _render(columns, rows)


def compaction_summary_table(
    results: Sequence[UnifiedBlockMeta], now: Optional[datetime] = None
) -> str:
    """Render per-compaction-level statistics, lowest level first."""
    now = _now(now)
    by_level: dict[int, list[UnifiedBlockMeta]] = {}
    for result in results:
        by_level.setdefault(result.meta.compaction_level, []).append(result)

    rows: list[list[str]] = []
    for level in sorted(by_level):
        members = by_level[level]
        size_sum = size_min = size_max = 0
        count_sum = count_min = count_max = 0
        oldest = ZERO_TIME
        newest = ZERO_TIME
        for result in members:
            meta = result.meta
            size_sum += meta.size
            count_sum += meta.total_objects
            if meta.size < size_min or size_min == 0:
                size_min = meta.size
            size_max = max(size_max, meta.size)
            if meta.total_objects < count_min or count_min == 0:
                count_min = meta.total_objects
            count_max = max(count_max, meta.total_objects)
            start = _aware(meta.start_time)
            if start < oldest or oldest == ZERO_TIME:
                oldest = start
            end = _aware(meta.end_time)
            if end > newest:
                newest = end

        cells = {
            "lvl": str(level),
            "blocks": f"{len(members)} ({len(members) * 100 // len(results)} %)",
            "total": f"{humanize.intcomma(count_sum)} objects ({_bytes(size_sum)})",
            "smallest block": f"{humanize.intcomma(count_min)} objects ({_bytes(size_min)})",
            "largest block": f"{humanize.intcomma(count_max)} objects ({_bytes(size_max)})",
            "earliest": format_duration(_elapsed(now, oldest)) + " ago",
            "latest": format_duration(_elapsed(now, newest)) + " ago",
        }
        rows.append([cells[column] for column in SUMMARY_COLUMNS])
    return _render(SUMMARY_COLUMNS, rows)


def block_details(meta: UnifiedBlockMeta, now: Optional[datetime] = None) -> str:
    """Describe a single block, one labelled line per attribute."""
    now = _now(now)
    block = meta.meta
    lines = [
        ("ID            : ", str(block.block_id)),
        ("Version       : ", block.version),
        ("Total Objects : ", str(block.total_objects)),
        ("Data Size     : ", _bytes(block.size)),
        ("Encoding      : ", block.encoding),
        ("Level         : ", str(block.compaction_level)),
        ("Window        : ", str(meta.window)),
        ("Start         : ", _time_string(block.start_time)),
        ("End           : ", _time_string(block.end_time)),
        ("Duration      : ", format_duration(_elapsed(block.end_time, block.start_time))),
        ("Age           : ", format_duration(_elapsed(now, block.end_time))),
    ]
    return "\n".join(f"{label} {value}" for label, value in lines)


@dataclass
class ScanStats:
    """What a scan of a block's objects found."""

    objects: int = 0
    duplicates: int = 0
    smallest: int = 0
    largest: int = 0

    def __str__(self) -> str:
        return "\n".join(
            [
                "Scanning results:",
                f"Objects scanned :  {self.objects}",
                f"Duplicates      :  {self.duplicates}",
                f"Smallest object :  {_bytes(self.smallest)}",
                f"Largest object  :  {_bytes(self.largest)}",
            ]
        )


def scan_objects(objects: Iterable[tuple[bytes, bytes]]) -> ScanStats:
    """Count objects, adjacent duplicate IDs and object sizes in iteration order."""
    stats = ScanStats()
    previous = bytes(_ID_WIDTH)
    for object_id, obj in objects:
        size = len(obj)
        stats.largest = max(stats.largest, size)
        if size < stats.smallest or stats.smallest == 0:
            stats.smallest = size
        if object_id == previous:
            stats.duplicates += 1
        copied = min(len(object_id), _ID_WIDTH)
        previous = object_id[:copied] + previous[copied:]
        stats.objects += 1
        if stats.objects % _PROGRESS_EVERY == 0:
            logger.info("Record: %d", stats.objects)
    return stats