"""Tests for the streaming export pipeline."""

import tracemalloc
from datetime import datetime
from io import StringIO

import pytest

from sql_export.core.cursor import IterableCursorSource
from sql_export.core.exceptions import (
    ConfigError,
    QueryExecutionError,
    RowProcessingError,
    WriteError,
)
from sql_export.core.export import encode_values, export_query, export_rows, open_sink
from sql_export.core.models import ExportConfiguration, ExportStats
from tests.fakes import FakeClient, RecordingCursor, columns

SCENARIO_ROWS = [(1, "O'Brien, J.", True), (2, None, False)]
SCENARIO_OUTPUT = b"id,name,active\r\n1,\"O'Brien, J.\",1\r\n2,,0\r\n"


class CountingSink:
    """Discards text, remembering only how much was written."""

    def __init__(self):
        self.chars = 0
        self.writes = 0

    def write(self, text):
        self.chars += len(text)
        self.writes += 1
        return len(text)


class FailingSink:
    def __init__(self, fail_after):
        self.fail_after = fail_after
        self.lines = []

    def write(self, text):
        if len(self.lines) >= self.fail_after:
            raise OSError(28, "No space left on device")
        self.lines.append(text)
        return len(text)


class RecordingProgress:
    def __init__(self):
        self.batches = []
        self.completed = []

    def on_rows(self, rows_exported):
        self.batches.append(rows_exported)

    def on_complete(self, stats):
        self.completed.append(stats.rows_exported)


def _export_to_string(cols, rows, config=None, progress=None):
    sink = StringIO(newline="")
    stats = export_rows(
        IterableCursorSource(cols, rows), sink, config or ExportConfiguration(), progress
    )
    return sink.getvalue(), stats


# -- export_rows --


@pytest.mark.unit
def test_end_to_end_scenario(temp_dir, export_config):
    path = temp_dir / "out.csv"
    with open_sink(path, export_config) as sink:
        stats = export_rows(
            IterableCursorSource(columns("id", "name", "active"), SCENARIO_ROWS),
            sink,
            export_config,
        )
    assert path.read_bytes() == SCENARIO_OUTPUT
    assert stats.rows_exported == 2


@pytest.mark.unit
def test_empty_result_is_header_only():
    text, stats = _export_to_string(columns("id", "name"), [])
    assert text == "id,name\r\n"
    assert stats.rows_exported == 0


@pytest.mark.unit
def test_rows_keep_cursor_order():
    rows = [(i,) for i in range(50, 0, -1)]
    text, _ = _export_to_string(columns("n"), rows)
    assert text.split("\r\n")[1:-1] == [str(i) for i in range(50, 0, -1)]


@pytest.mark.unit
def test_custom_terminator_and_delimiter():
    config = ExportConfiguration(delimiter="\t", newline="\n")
    text, _ = _export_to_string(columns("a", "b"), [("x,y", "z")], config)
    assert text == "a\tb\nx,y\tz\n"


@pytest.mark.unit
def test_dates_use_configured_mask():
    config = ExportConfiguration(date_format="yyyyMMdd")
    text, _ = _export_to_string(columns("d"), [(datetime(2021, 4, 21, 13, 5, 9),)], config)
    assert text == "d\r\n20210421\r\n"


@pytest.mark.unit
def test_each_row_is_one_write():
    sink = CountingSink()
    export_rows(
        IterableCursorSource(columns("a", "b"), [(1, 2)] * 10),
        sink,
        ExportConfiguration(),
    )
    # header + one write per row
    assert sink.writes == 11


@pytest.mark.unit
def test_elapsed_time_is_recorded():
    _, stats = _export_to_string(columns("a"), [(1,)])
    assert stats.elapsed_seconds >= 0.0


# -- Progress --


@pytest.mark.unit
def test_progress_is_batched():
    progress = RecordingProgress()
    config = ExportConfiguration(progress_every=2)
    _export_to_string(columns("a"), [(i,) for i in range(5)], config, progress)
    assert progress.batches == [2, 4]
    assert progress.completed == [5]


@pytest.mark.unit
def test_progress_not_called_below_batch_size():
    progress = RecordingProgress()
    _export_to_string(columns("a"), [(1,)] * 3, ExportConfiguration(), progress)
    assert progress.batches == []
    assert progress.completed == [3]


# -- Row errors --


@pytest.mark.unit
def test_row_shape_mismatch_raises():
    with pytest.raises(RowProcessingError, match="Row 2 has 1 values, expected 2"):
        _export_to_string(columns("a", "b"), [(1, 2), (3,)])


@pytest.mark.unit
def test_format_error_names_row_and_column(export_config):
    class BrokenDatetime(datetime):
        @property
        def year(self):
            raise ValueError("no calendar fields")

    with pytest.raises(RowProcessingError, match="Row 1, column 'ts'"):
        encode_values((1, BrokenDatetime(2021, 1, 1)), columns("id", "ts"), 1, export_config)


@pytest.mark.unit
def test_row_error_keeps_stats_for_partial_export():
    stats = ExportStats()
    with pytest.raises(RowProcessingError):
        export_rows(
            IterableCursorSource(columns("a", "b"), [(1, 2), (3, 4), (5,)]),
            StringIO(),
            ExportConfiguration(),
            stats=stats,
        )
    assert stats.rows_exported == 2


# -- Write errors --


@pytest.mark.unit
def test_disk_full_raises_write_error():
    with pytest.raises(WriteError, match="No space left"):
        export_rows(
            IterableCursorSource(columns("a"), [(1,), (2,), (3,)]),
            FailingSink(fail_after=2),
            ExportConfiguration(),
        )


@pytest.mark.unit
def test_unencodable_text_raises_write_error(temp_dir):
    config = ExportConfiguration(encoding="ascii")
    path = temp_dir / "out.csv"
    with open_sink(path, config) as sink, pytest.raises(WriteError, match="ascii"):
        export_rows(IterableCursorSource(columns("name"), [("café",)]), sink, config)


@pytest.mark.unit
def test_sink_uses_configured_encoding(temp_dir):
    config = ExportConfiguration(encoding="latin-1")
    path = temp_dir / "out.csv"
    with open_sink(path, config) as sink:
        export_rows(IterableCursorSource(columns("name"), [("café",)]), sink, config)
    assert path.read_bytes() == b"name\r\ncaf\xe9\r\n"


@pytest.mark.unit
def test_sink_truncates_existing_file(temp_dir, export_config):
    path = temp_dir / "out.csv"
    path.write_text("old content that is longer than the new one\n" * 10)
    with open_sink(path, export_config) as sink:
        export_rows(IterableCursorSource(columns("a"), []), sink, export_config)
    assert path.read_bytes() == b"a\r\n"


@pytest.mark.unit
def test_unwritable_path_is_config_error(temp_dir, export_config):
    with pytest.raises(ConfigError, match="Cannot open output file"):
        open_sink(temp_dir / "missing" / "out.csv", export_config)


# -- Memory bound --


@pytest.mark.unit
def test_memory_does_not_grow_with_row_count():
    def synthetic_rows(n):
        stamp = datetime(2021, 4, 21, 13, 5, 9)
        for i in range(n):
            yield (i, f"name {i}, with comma", i % 2 == 0, None, stamp, 1.25)

    cols = columns("id", "name", "flag", "empty", "ts", "amount")
    config = ExportConfiguration()
    # warm up caches so they do not count toward the peak
    export_rows(IterableCursorSource(cols, synthetic_rows(10)), CountingSink(), config)

    tracemalloc.start()
    try:
        sink = CountingSink()
        stats = export_rows(IterableCursorSource(cols, synthetic_rows(50_000)), sink, config)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()

    assert stats.rows_exported == 50_000
    assert sink.chars > 2_000_000
    assert peak < 1024 * 1024


# -- export_query: scoped resources and cancellation --


@pytest.mark.unit
def test_export_query_writes_file(temp_dir, export_config):
    path = temp_dir / "out.csv"
    events = []
    cursor = RecordingCursor(columns("id", "name", "active"), SCENARIO_ROWS, events)
    client = FakeClient(cursor, events=events)

    stats = export_query(client, "SELECT 1", path, export_config)

    assert stats.rows_exported == 2
    assert path.read_bytes() == SCENARIO_OUTPUT
    assert client.executed == ["SELECT 1"]
    assert events == ["cursor closed", "connection closed"]
    assert not cursor.cancelled


@pytest.mark.unit
def test_interrupt_cancels_and_keeps_complete_rows(temp_dir, export_config):
    path = temp_dir / "out.csv"
    events = []
    rows = [(i, f"row {i}") for i in range(10)]
    cursor = RecordingCursor(columns("id", "label"), rows, events, interrupt_after=3)
    client = FakeClient(cursor, events=events)

    with pytest.raises(KeyboardInterrupt):
        export_query(client, "SELECT 1", path, export_config)

    assert events == ["cancel", "cursor closed", "connection closed"]
    content = path.read_bytes()
    assert content == b"id,label\r\n0,row 0\r\n1,row 1\r\n2,row 2\r\n"
    assert content.endswith(b"\r\n")


@pytest.mark.unit
def test_row_error_cancels_and_closes(temp_dir, export_config):
    events = []
    cursor = RecordingCursor(columns("a", "b"), [(1, 2), (3,)], events)
    client = FakeClient(cursor, events=events)

    with pytest.raises(RowProcessingError):
        export_query(client, "SELECT 1", temp_dir / "out.csv", export_config)

    assert events == ["cancel", "cursor closed", "connection closed"]


@pytest.mark.unit
def test_query_error_closes_connection(temp_dir, export_config):
    path = temp_dir / "out.csv"
    client = FakeClient(error=QueryExecutionError("SQL error: syntax"))

    with pytest.raises(QueryExecutionError, match="syntax"):
        export_query(client, "SELECTT 1", path, export_config)

    assert client.closed
    assert path.read_bytes() == b""


@pytest.mark.unit
def test_unwritable_output_never_connects(temp_dir, export_config):
    client = FakeClient(IterableCursorSource(columns("a"), []))

    with pytest.raises(ConfigError):
        export_query(client, "SELECT 1", temp_dir / "nope" / "out.csv", export_config)

    assert not client.entered
    assert client.executed == []


@pytest.mark.unit
def test_cancel_after_completion_is_harmless():
    source = IterableCursorSource(columns("a"), [(1,)])
    export_rows(source, StringIO(), ExportConfiguration())
    source.cancel()
    source.close()
    source.cancel()
