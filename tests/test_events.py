import asyncio
import logging
from datetime import datetime, timezone

from custody_swap.events import EventKind, FileEventSink


def test_lines_are_appended(tmp_path):
    sink = FileEventSink(tmp_path / "run.log")

    async def runner():
        await sink.reset("Script started at test")
        await sink.emit(EventKind.SWAP_STARTED, "Started individual swap")
        await sink.emit(EventKind.BATCH_COMPLETED, "Batch completed in 10ms\nsecond line")

    asyncio.run(runner())

    lines = (tmp_path / "run.log").read_text().splitlines()
    assert lines[0] == "Script started at test"
    assert lines[1].endswith(", swap_started, Started individual swap")
    assert lines[2].endswith(", batch_completed, Batch completed in 10ms | second line")
    assert len(lines) == 3


def test_reset_truncates(tmp_path):
    path = tmp_path / "run.log"
    path.write_text("old run\n")

    asyncio.run(FileEventSink(path).reset())

    content = path.read_text()
    assert "old run" not in content
    assert content.startswith("Script started at ")


def test_format_line_without_detail():
    ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert FileEventSink.format_line(ts, "sleeping", "") == "2024-01-02T03:04:05+00:00, sleeping\n"


def test_write_failure_is_logged_not_raised(tmp_path, caplog):
    # A directory cannot be opened for appending.
    sink = FileEventSink(tmp_path)

    with caplog.at_level(logging.WARNING, logger="custody_swap.events"):
        asyncio.run(sink.emit(EventKind.SWAP_FAILED, "boom"))

    assert "Failed to write to run log" in caplog.text
