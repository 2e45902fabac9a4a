"""Tests for line spool module."""

import io
import threading

import pytest

from tailwatch.exceptions import SpoolClosedError
from tailwatch.models import ROTATION_SENTINEL
from tailwatch.spool import LineSpool, PrintSink, SpoolSink, open_spool


class TestLineSpool:
    """Tests for LineSpool class."""

    def test_create_spool(self, tmp_path):
        db_path = tmp_path / "lines.db"
        spool = LineSpool(db_path)
        assert db_path.exists()
        spool.close()

    def test_enqueue_dequeue(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            line_id = spool.enqueue("/var/log/app.log", "hello")
            assert line_id > 0

            items = spool.dequeue()
            assert items == [(line_id, {"path": "/var/log/app.log", "line": "hello", "rotation": False})]

    def test_sentinel_flagged_as_rotation(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            spool.enqueue("/var/log/app.log", "before")
            spool.enqueue("/var/log/app.log", ROTATION_SENTINEL)
            spool.enqueue("/var/log/app.log", "after")

            records = [record for _, record in spool.dequeue()]
            assert [r["rotation"] for r in records] == [False, True, False]
            assert [r["line"] for r in records] == ["before", "", "after"]

    def test_fifo_order(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            for i in range(5):
                spool.enqueue("/var/log/app.log", f"line {i}")

            items = spool.dequeue(batch_size=5)
            assert [record["line"] for _, record in items] == [f"line {i}" for i in range(5)]

    def test_dequeue_batch_size(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            spool.enqueue_batch("/var/log/app.log", ["a", "b", "c"])

            assert len(spool.dequeue(batch_size=2)) == 2
            assert len(spool.dequeue(batch_size=2)) == 1
            assert spool.dequeue() == []

    def test_enqueue_batch(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            ids = spool.enqueue_batch("/var/log/app.log", [f"l{i}" for i in range(10)])

            assert len(ids) == 10
            assert ids == sorted(ids)
            assert spool.size() == 10

    def test_enqueue_batch_empty(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            assert spool.enqueue_batch("/var/log/app.log", []) == []

    def test_in_flight_not_counted(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            spool.enqueue_batch("/var/log/app.log", ["a", "b"])
            spool.dequeue(batch_size=1)

            assert spool.size() == 1

    def test_ack_removes(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            spool.enqueue("/var/log/app.log", "a")
            ids = [line_id for line_id, _ in spool.dequeue()]

            spool.ack(ids)

            assert spool.requeue_unacked() == 0
            assert spool.size() == 0

    def test_nack_returns_to_pending(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            spool.enqueue("/var/log/app.log", "a")
            ids = [line_id for line_id, _ in spool.dequeue()]

            spool.nack(ids)

            assert spool.size() == 1
            assert spool.dequeue()[0][1]["line"] == "a"

    def test_requeue_after_restart(self, tmp_path):
        db_path = tmp_path / "lines.db"
        with LineSpool(db_path) as spool:
            spool.enqueue_batch("/var/log/app.log", ["a", "b"])
            spool.dequeue()

        with LineSpool(db_path) as spool:
            assert spool.size() == 0
            assert spool.requeue_unacked() == 2
            assert spool.size() == 2

    def test_closed_spool_raises(self, tmp_path):
        spool = LineSpool(tmp_path / "lines.db")
        spool.close()
        spool.close()

        with pytest.raises(SpoolClosedError):
            spool.enqueue("/var/log/app.log", "a")
        with pytest.raises(SpoolClosedError):
            spool.size()

    def test_concurrent_enqueue(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            def worker(n):
                for i in range(50):
                    spool.enqueue(f"/var/log/{n}.log", f"line {i}")

            threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert spool.size() == 200

    def test_custom_table_name(self, tmp_path):
        db_path = tmp_path / "lines.db"
        with LineSpool(db_path, table_name="first") as first, LineSpool(db_path, table_name="second") as second:
            first.enqueue("/var/log/app.log", "a")
            assert second.size() == 0


class TestSinks:
    """Tests for SpoolSink and PrintSink."""

    def test_spool_sink(self, tmp_path):
        with LineSpool(tmp_path / "lines.db") as spool:
            sink = SpoolSink(spool, "/var/log/app.log")
            sink.process("hello")
            sink.process(ROTATION_SENTINEL)

            records = [record for _, record in spool.dequeue()]
            assert records[0] == {"path": "/var/log/app.log", "line": "hello", "rotation": False}
            assert records[1]["rotation"] is True

    def test_print_sink(self):
        stream = io.StringIO()
        sink = PrintSink("/var/log/app.log", stream)

        sink.process("hello")
        sink.process(ROTATION_SENTINEL)

        assert stream.getvalue() == "hello\n--- rotated: /var/log/app.log ---\n"


class TestOpenSpool:
    """Tests for open_spool."""

    def test_none_path(self):
        assert open_spool(None) is None

    def test_creates_parent_dirs(self, tmp_path):
        db_path = tmp_path / "data" / "spool" / "lines.db"
        spool = open_spool(db_path)
        try:
            assert db_path.exists()
        finally:
            spool.close()

    def test_requeues_in_flight(self, tmp_path):
        db_path = tmp_path / "lines.db"
        with LineSpool(db_path) as spool:
            spool.enqueue("/var/log/app.log", "a")
            spool.dequeue()

        spool = open_spool(db_path)
        try:
            assert spool.size() == 1
        finally:
            spool.close()
