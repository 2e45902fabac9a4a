"""Tests for models module."""

import os
import time

import pytest

from tailwatch.models import (
    ROTATION_SENTINEL,
    FileIdentity,
    LogState,
    ParentWatch,
    WatchEvent,
    WatchEventType,
    WatchMask,
    normalize_path,
    parent_path_of,
)


class TestWatchMask:
    """Tests for WatchMask flags."""

    def test_values(self):
        assert WatchMask.FILE_CREATED == 0x1
        assert WatchMask.FILE_DELETED == 0x2
        assert WatchMask.FILE_MODIFIED == 0x4
        assert WatchMask.FILE_RENAMED == 0x8

    def test_any_contains_all(self):
        for flag in (WatchMask.FILE_CREATED, WatchMask.FILE_DELETED,
                     WatchMask.FILE_MODIFIED, WatchMask.FILE_RENAMED):
            assert flag in WatchMask.FILE_ANY

    def test_single_mask_excludes_others(self):
        assert WatchMask.FILE_MODIFIED not in WatchMask.FILE_CREATED


class TestWatchEvent:
    """Tests for WatchEvent."""

    def test_created_fields(self):
        event = WatchEvent(WatchEventType.CREATED, path="/var/log", name="app.log", timestamp=12.5)

        assert event.event_type is WatchEventType.CREATED
        assert event.name == "app.log"
        assert event.old_name is None
        assert event.timestamp == 12.5

    def test_renamed_fields(self):
        event = WatchEvent(WatchEventType.RENAMED, path="/var/log", old_name="app.log", new_name="app.log.1")

        assert event.old_name == "app.log"
        assert event.new_name == "app.log.1"
        assert event.name is None

    def test_default_timestamp(self):
        before = time.time()
        event = WatchEvent(WatchEventType.MODIFIED, path="/var/log/app.log")
        assert event.timestamp >= before

    def test_frozen(self):
        event = WatchEvent(WatchEventType.MODIFIED, path="/a")
        with pytest.raises(AttributeError):
            event.path = "/b"


class TestFileIdentity:
    """Tests for FileIdentity."""

    def test_of_missing_path(self, tmp_path):
        assert FileIdentity.of_path(str(tmp_path / "missing.log")) is None

    def test_same_file_same_identity(self, tmp_path):
        log = tmp_path / "app.log"
        log.write_text("x\n")
        assert FileIdentity.of_path(str(log)) == FileIdentity.of_path(str(log))

    def test_replaced_file_differs(self, tmp_path):
        log = tmp_path / "app.log"
        log.write_text("old\n")
        with open(log, "rb"):
            before = FileIdentity.of_path(str(log))
            log.rename(tmp_path / "app.log.1")
            log.write_text("new\n")
            after = FileIdentity.of_path(str(log))
        assert before != after

    def test_from_stat(self, tmp_path):
        log = tmp_path / "app.log"
        log.write_text("x")
        st = os.stat(log)
        identity = FileIdentity.from_stat(st)
        assert identity.inode == st.st_ino
        assert identity.device == st.st_dev


class TestHelpers:
    """Tests for path helpers and constants."""

    def test_sentinel_is_empty(self):
        assert ROTATION_SENTINEL == ""

    def test_parent_path_of(self):
        assert parent_path_of("/var/log/app.log") == os.path.abspath("/var/log")

    def test_normalize_relative(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert normalize_path("app.log") == str(tmp_path / "app.log")

    def test_normalize_pathlike(self, tmp_path):
        assert normalize_path(tmp_path / "a" / ".." / "b.log") == str(tmp_path / "b.log")

    def test_parent_watch_children_default(self):
        parent = ParentWatch(parent_path="/var/log", descriptor=1)
        assert parent.children == set()

    def test_log_states(self):
        assert {s.value for s in LogState} == {"normal", "rotating", "reset", "unwatched"}
