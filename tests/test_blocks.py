import uuid
from datetime import datetime, timedelta, timezone

from tracemesh.blockmeta import BlockMeta, get_meta
from tracemesh.blocks import (
    ScanStats,
    block_details,
    blocks_table,
    compaction_summary_table,
    format_duration,
    scan_objects,
)

UTC = timezone.utc
HOUR = timedelta(hours=1)
NOW = datetime(2021, 6, 1, 12, tzinfo=UTC)


def _meta(level, objects, size, start, end, compacted=False):
    block = BlockMeta(
        block_id=uuid.uuid4(),
        version="v2",
        encoding="zstd",
        total_objects=objects,
        size=size,
        compaction_level=level,
        start_time=start,
        end_time=end,
    )
    if compacted:
        return get_meta(None, block, HOUR)
    return get_meta(block, None, HOUR)


def _rows(text):
    return [
        [cell.strip() for cell in line.strip().strip("|").split("|")]
        for line in text.splitlines()
        if line.startswith("|")
    ]


def _sample():
    a = _meta(0, 10, 100, datetime(2021, 1, 1, 4, tzinfo=UTC), datetime(2021, 1, 1, 5, 30, tzinfo=UTC))
    b = _meta(1, 20, 200, datetime(2021, 1, 1, 2, tzinfo=UTC), datetime(2021, 1, 1, 3, tzinfo=UTC), compacted=True)
    return a, b


def test_format_duration_zero():
    assert format_duration(0) == "0s"


def test_format_duration_hours():
    assert format_duration(3661) == "1h1m1s"


def test_format_duration_rounds_to_seconds():
    assert format_duration(59.6) == format_duration(60)
    assert format_duration(-59.6) == "-" + format_duration(60)
    assert format_duration(0.4) == format_duration(0)


def test_blocks_table_headers_and_ids():
    a, b = _sample()
    out = blocks_table([a, b], HOUR, False, NOW)
    header = _rows(out)[0]
    assert header[:3] == ["ID", "LVL", "OBJECTS"]
    assert "CMP" not in header
    assert str(a.meta.block_id) in out
    assert str(b.meta.block_id) in out


def test_blocks_table_compacted_column():
    a, b = _sample()
    rows = _rows(blocks_table([a, b], HOUR, True, NOW))
    assert rows[0][-1] == "CMP"
    by_id = {row[0]: row for row in rows[1:]}
    assert by_id[str(b.meta.block_id)][-1] == "Y"
    assert by_id[str(a.meta.block_id)][-1] == ""


def test_blocks_table_footer_totals():
    a, b = _sample()
    rows = _rows(blocks_table([a, b], HOUR, False, NOW))
    footer = rows[-1]
    assert footer[0] == ""
    assert footer[2] == str(a.meta.total_objects + b.meta.total_objects)
    assert len(rows) == 4


def test_blocks_table_window_column():
    a, _ = _sample()
    rows = _rows(blocks_table([a], HOUR, False, NOW))
    header = rows[0]
    assert rows[1][header.index("WINDOW")] == "2021-01-01T05:00:00Z"


def test_compaction_summary_orders_levels():
    a, b = _sample()
    c = _meta(0, 5, 50, datetime(2021, 1, 1, 1, tzinfo=UTC), datetime(2021, 1, 1, 2, tzinfo=UTC))
    rows = _rows(compaction_summary_table([b, a, c], NOW))
    assert [row[0] for row in rows[1:]] == ["0", "1"]
    assert rows[1][1].startswith("2 (")
    assert rows[2][1].startswith("1 (")


def test_compaction_summary_earliest_and_latest():
    a, _ = _sample()
    rows = _rows(compaction_summary_table([a], NOW))
    earliest = format_duration((NOW - a.meta.start_time).total_seconds()) + " ago"
    latest = format_duration((NOW - a.meta.end_time).total_seconds()) + " ago"
    assert rows[1][5] == earliest
    assert rows[1][6] == latest


def test_compaction_summary_empty():
    rows = _rows(compaction_summary_table([], NOW))
    assert rows == [["LVL", "BLOCKS", "TOTAL", "SMALLEST BLOCK", "LARGEST BLOCK", "EARLIEST", "LATEST"]]


def test_block_details_lines():
    a, _ = _sample()
    lines = block_details(a, NOW).splitlines()
    assert len(lines) == 11
    assert lines[0].endswith(str(a.meta.block_id))
    assert lines[1].endswith("v2")
    assert lines[2].startswith("Total Objects")
    assert lines[2].endswith(str(a.meta.total_objects))
    assert lines[6].endswith(str(a.window))


def test_scan_objects_counts():
    first = bytes(range(1, 17))
    second = bytes(range(2, 18))
    stats = scan_objects([(first, b"abc"), (first, b"abcde"), (second, b"a")])
    assert stats.objects == 3
    assert stats.duplicates == 1
    assert stats.smallest == len(b"a")
    assert stats.largest == len(b"abcde")


def test_scan_objects_empty():
    assert scan_objects([]) == ScanStats()


def test_scan_objects_zero_id_matches_initial_previous():
    stats = scan_objects([(bytes(16), b"x")])
    assert stats.duplicates == 1


def test_scan_stats_text():
    text = str(scan_objects([(bytes(range(16)), b"abc")]))
    assert text.splitlines()[0] == "Scanning results:"
    assert "Objects scanned" in text