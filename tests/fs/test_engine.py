"""Tests for the storage engine.

The engine is the file system every connection shares: a file table,
a block-chain allocator, and a backing image, all behind one
reader-writer lock.  Each mutation rewrites the whole image, so a new
engine opened on the same path sees exactly the state the last one
left behind.
"""

import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from py_fs.fs.engine import StorageEngine
from py_fs.fs.errors import ErrorKind, FileSystemError
from py_fs.fs.persistence import image_size
from py_fs.fs.structures import Geometry
from py_fs.logging import Logger, LogLevel

BLOCK_SIZE = 16
GEOMETRY = Geometry(max_files=5, max_blocks=10, block_size=BLOCK_SIZE)
ONE_BLOCK = b"x" * BLOCK_SIZE
THREE_BLOCKS = 3
READER_THREADS = 4
WRITE_ROUNDS = 200


def _engine(
    tmp_path: Path, geometry: Geometry = GEOMETRY, logger: Logger | None = None
) -> StorageEngine:
    """Open an engine on an image inside *tmp_path*."""
    return StorageEngine(tmp_path / "fs.dat", geometry, logger=logger)


def _kind(excinfo: pytest.ExceptionInfo[FileSystemError]) -> ErrorKind:
    return excinfo.value.kind


# -- Startup --------------------------------------------------------------------


class TestStartup:
    """Verify first-run initialisation and image recovery."""

    def test_first_run_writes_image(self, tmp_path: Path) -> None:
        """A missing image is created at full size."""
        engine = _engine(tmp_path)
        assert engine.image_path.stat().st_size == image_size(GEOMETRY)

    def test_first_run_is_empty(self, tmp_path: Path) -> None:
        """A fresh engine has no files and every block free."""
        engine = _engine(tmp_path)
        assert engine.list_files() == []
        assert engine.free_blocks() == GEOMETRY.max_blocks

    def test_truncated_image_reinitialised(self, tmp_path: Path) -> None:
        """A truncated image is replaced by an empty one."""
        (tmp_path / "fs.dat").write_bytes(b"PYFS")
        engine = _engine(tmp_path)
        assert engine.list_files() == []
        assert engine.image_path.stat().st_size == image_size(GEOMETRY)

    def test_corrupt_image_reinitialised(self, tmp_path: Path) -> None:
        """An image of the right size but wrong content starts empty."""
        (tmp_path / "fs.dat").write_bytes(b"\xff" * image_size(GEOMETRY))
        engine = _engine(tmp_path)
        assert engine.list_files() == []

    def test_geometry_change_reinitialised(self, tmp_path: Path) -> None:
        """Reopening with another geometry discards the old image."""
        engine = _engine(tmp_path)
        engine.create_file("old")
        bigger = Geometry(max_files=8, max_blocks=10, block_size=BLOCK_SIZE)
        reopened = _engine(tmp_path, bigger)
        assert reopened.list_files() == []
        assert reopened.image_path.stat().st_size == image_size(bigger)

    def test_recovery_is_logged(self, tmp_path: Path) -> None:
        """Starting over on a bad image logs a warning."""
        (tmp_path / "fs.dat").write_bytes(b"junk")
        logger = Logger()
        _engine(tmp_path, logger=logger)
        warnings = logger.filter(min_level=LogLevel.WARNING, source="engine")
        assert len(warnings) == 1

    def test_repr(self, tmp_path: Path) -> None:
        """The repr names the class and the image."""
        assert "StorageEngine" in repr(_engine(tmp_path))


# -- Create ---------------------------------------------------------------------


class TestCreate:
    """Verify file creation through the engine."""

    def test_create_then_stat(self, tmp_path: Path) -> None:
        """A new file has size 0 and no blocks."""
        engine = _engine(tmp_path)
        engine.create_file("a.txt")
        info = engine.stat("a.txt")
        assert info.name == "a.txt"
        assert info.size == 0
        assert info.block_count == 0

    def test_create_twice(self, tmp_path: Path) -> None:
        """The second create fails and the first file keeps its content."""
        engine = _engine(tmp_path)
        engine.create_file("a.txt")
        engine.write_file("a.txt", b"keep")
        with pytest.raises(FileSystemError) as excinfo:
            engine.create_file("a.txt")
        assert _kind(excinfo) is ErrorKind.ALREADY_EXISTS
        assert engine.read_file("a.txt") == b"keep"

    def test_eleven_and_twelve_chars(self, tmp_path: Path) -> None:
        """Eleven characters fit; twelve do not."""
        engine = _engine(tmp_path)
        engine.create_file("abcdefghijk")
        with pytest.raises(FileSystemError) as excinfo:
            engine.create_file("abcdefghijkl")
        assert _kind(excinfo) is ErrorKind.NAME_TOO_LONG

    def test_table_full_then_delete(self, tmp_path: Path) -> None:
        """The sixth create fails until a file is deleted."""
        engine = _engine(tmp_path)
        for i in range(GEOMETRY.max_files):
            engine.create_file(f"f{i}")
        with pytest.raises(FileSystemError) as excinfo:
            engine.create_file("f5")
        assert _kind(excinfo) is ErrorKind.TABLE_FULL
        engine.delete_file("f2")
        engine.create_file("f5")
        assert engine.list_files() == ["f0", "f1", "f5", "f3", "f4"]

    def test_unencodable_name_leaves_image_writable(self, tmp_path: Path) -> None:
        """A rejected surrogate name does not block later saves."""
        engine = _engine(tmp_path)
        with pytest.raises(FileSystemError) as excinfo:
            engine.create_file("bad\ud800")
        assert _kind(excinfo) is ErrorKind.INVALID_NAME
        engine.create_file("good")
        assert engine.list_files() == ["good"]
        assert _engine(tmp_path).list_files() == ["good"]


# -- Write and read -------------------------------------------------------------


class TestWriteRead:
    """Verify content round-trips through block chains."""

    @pytest.mark.parametrize(
        "payload",
        [b"", ONE_BLOCK, b"hello", b"y" * (BLOCK_SIZE * 2 + 5)],
        ids=["empty", "one-block", "short", "multi-block"],
    )
    def test_write_then_read(self, tmp_path: Path, payload: bytes) -> None:
        """Read returns exactly what was written."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", payload)
        assert engine.read_file("f") == payload
        assert engine.stat("f").size == len(payload)

    def test_block_accounting(self, tmp_path: Path) -> None:
        """A write takes ceil(size / block_size) blocks."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"z" * (BLOCK_SIZE * 2 + 1))
        assert engine.stat("f").block_count == THREE_BLOCKS
        assert engine.free_blocks() == GEOMETRY.max_blocks - THREE_BLOCKS

    def test_overwrite_releases_old_blocks(self, tmp_path: Path) -> None:
        """Shrinking a file returns its surplus blocks."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"z" * (BLOCK_SIZE * 3))
        engine.write_file("f", b"small")
        assert engine.read_file("f") == b"small"
        assert engine.free_blocks() == GEOMETRY.max_blocks - 1

    def test_write_missing(self, tmp_path: Path) -> None:
        """Writing an unknown file fails with NOT_FOUND."""
        engine = _engine(tmp_path)
        with pytest.raises(FileSystemError) as excinfo:
            engine.write_file("ghost", b"boo")
        assert _kind(excinfo) is ErrorKind.NOT_FOUND

    def test_read_missing(self, tmp_path: Path) -> None:
        """Reading an unknown file fails with NOT_FOUND."""
        engine = _engine(tmp_path)
        with pytest.raises(FileSystemError) as excinfo:
            engine.read_file("ghost")
        assert _kind(excinfo) is ErrorKind.NOT_FOUND


class TestInsufficientSpace:
    """Verify the reuse-aware space check."""

    def test_too_large_keeps_old_content(self, tmp_path: Path) -> None:
        """A write that cannot fit leaves the previous content intact."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"original")
        too_big = b"!" * (GEOMETRY.total_bytes + 1)
        with pytest.raises(FileSystemError) as excinfo:
            engine.write_file("f", too_big)
        assert _kind(excinfo) is ErrorKind.INSUFFICIENT_SPACE
        assert engine.read_file("f") == b"original"
        assert engine.free_blocks() == GEOMETRY.max_blocks - 1

    def test_file_may_reuse_its_own_blocks(self, tmp_path: Path) -> None:
        """A full disk can still rewrite its only file at the same size."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"a" * GEOMETRY.total_bytes)
        assert engine.free_blocks() == 0
        engine.write_file("f", b"b" * GEOMETRY.total_bytes)
        assert engine.read_file("f") == b"b" * GEOMETRY.total_bytes

    def test_other_files_count_against_space(self, tmp_path: Path) -> None:
        """Blocks held by another file are not available."""
        engine = _engine(tmp_path)
        engine.create_file("big")
        engine.create_file("small")
        engine.write_file("big", b"a" * (GEOMETRY.total_bytes - BLOCK_SIZE))
        with pytest.raises(FileSystemError) as excinfo:
            engine.write_file("small", b"b" * (BLOCK_SIZE + 1))
        assert _kind(excinfo) is ErrorKind.INSUFFICIENT_SPACE
        assert engine.read_file("small") == b""


# -- Delete ---------------------------------------------------------------------


class TestDelete:
    """Verify deletion through the engine."""

    def test_delete_then_read(self, tmp_path: Path) -> None:
        """A deleted file can no longer be read."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"secret")
        engine.delete_file("f")
        with pytest.raises(FileSystemError) as excinfo:
            engine.read_file("f")
        assert _kind(excinfo) is ErrorKind.NOT_FOUND

    def test_delete_zeroes_image_blocks(self, tmp_path: Path) -> None:
        """The deleted content no longer appears in the backing image."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"top-secret-payload")
        engine.delete_file("f")
        assert b"top-secret" not in engine.image_path.read_bytes()
        assert engine.free_blocks() == GEOMETRY.max_blocks

    def test_delete_missing(self, tmp_path: Path) -> None:
        """Deleting an unknown file fails with NOT_FOUND."""
        engine = _engine(tmp_path)
        with pytest.raises(FileSystemError) as excinfo:
            engine.delete_file("ghost")
        assert _kind(excinfo) is ErrorKind.NOT_FOUND


# -- Usage ----------------------------------------------------------------------


class TestUsage:
    """Verify the combined file list and free-space view."""

    def test_empty_disk(self, tmp_path: Path) -> None:
        """A fresh disk has no files and every block free."""
        usage = _engine(tmp_path).usage()
        assert usage.files == ()
        assert usage.free_blocks == GEOMETRY.max_blocks

    def test_matches_separate_queries(self, tmp_path: Path) -> None:
        """The combined view agrees with list_files and free_blocks."""
        engine = _engine(tmp_path)
        engine.create_file("a")
        engine.create_file("b")
        engine.write_file("b", ONE_BLOCK * THREE_BLOCKS)
        usage = engine.usage()
        assert list(usage.files) == engine.list_files()
        assert usage.free_blocks == engine.free_blocks() == GEOMETRY.max_blocks - THREE_BLOCKS

    def test_takes_read_lock_once(self, tmp_path: Path) -> None:
        """Both values come from a single read-locked section."""
        engine = _engine(tmp_path)
        with patch.object(engine.lock, "read_locked", wraps=engine.lock.read_locked) as gate:
            engine.usage()
        gate.assert_called_once_with()


# -- Persistence ----------------------------------------------------------------


class TestPersistence:
    """Verify state survives reopening and persistence failures."""

    def test_state_survives_restart(self, tmp_path: Path) -> None:
        """A new engine on the same image sees the same files."""
        engine = _engine(tmp_path)
        engine.create_file("a")
        engine.create_file("b")
        engine.write_file("b", b"persisted across restarts")
        engine.delete_file("a")

        reopened = _engine(tmp_path)
        assert reopened.list_files() == ["b"]
        assert reopened.read_file("b") == b"persisted across restarts"

    def test_write_is_on_disk_immediately(self, tmp_path: Path) -> None:
        """Each mutation rewrites the image before returning."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        engine.write_file("f", b"flushed")
        assert b"flushed" in engine.image_path.read_bytes()

    def test_failure_reports_kind(self, tmp_path: Path) -> None:
        """An I/O error while saving surfaces as PERSISTENCE_FAILURE."""
        engine = _engine(tmp_path)
        with (
            patch("py_fs.fs.engine.dump_image", side_effect=OSError("disk full")),
            pytest.raises(FileSystemError) as excinfo,
        ):
            engine.create_file("f")
        assert _kind(excinfo) is ErrorKind.PERSISTENCE_FAILURE
        assert "disk full" in excinfo.value.detail

    def test_encode_failure_reports_kind(self, tmp_path: Path) -> None:
        """A value that cannot be encoded also surfaces as PERSISTENCE_FAILURE."""
        engine = _engine(tmp_path)
        with (
            patch("py_fs.fs.engine.dump_image", side_effect=ValueError("bad record")),
            pytest.raises(FileSystemError) as excinfo,
        ):
            engine.create_file("f")
        assert _kind(excinfo) is ErrorKind.PERSISTENCE_FAILURE
        assert not engine.lock.is_writing

    def test_failure_releases_lock(self, tmp_path: Path) -> None:
        """After a failed save the engine is still usable."""
        engine = _engine(tmp_path)
        with (
            patch("py_fs.fs.engine.dump_image", side_effect=OSError("disk full")),
            pytest.raises(FileSystemError),
        ):
            engine.create_file("f")
        assert not engine.lock.is_writing
        engine.create_file("g")
        assert engine.list_files() == ["f", "g"]

    def test_failure_is_logged(self, tmp_path: Path) -> None:
        """A failed save is logged at ERROR."""
        logger = Logger()
        engine = _engine(tmp_path, logger=logger)
        with (
            patch("py_fs.fs.engine.dump_image", side_effect=OSError("disk full")),
            pytest.raises(FileSystemError),
        ):
            engine.create_file("f")
        assert logger.filter(min_level=LogLevel.ERROR, source="engine")

    def test_failed_operation_skips_save(self, tmp_path: Path) -> None:
        """A mutation that raises does not rewrite the image."""
        engine = _engine(tmp_path)
        with patch("py_fs.fs.engine.dump_image") as dump, pytest.raises(FileSystemError):
            engine.delete_file("ghost")
        dump.assert_not_called()


# -- Concurrency ----------------------------------------------------------------


class TestConcurrency:
    """Verify that concurrent access never exposes partial state."""

    def test_readers_never_see_partial_write(self, tmp_path: Path) -> None:
        """Every read returns one complete payload or the other."""
        engine = _engine(tmp_path)
        engine.create_file("f")
        first = b"a" * (BLOCK_SIZE * 4)
        second = b"b" * (BLOCK_SIZE * 4)
        engine.write_file("f", first)
        seen: list[bytes] = []
        done = threading.Event()

        def _writer() -> None:
            for i in range(WRITE_ROUNDS):
                engine.write_file("f", second if i % 2 else first)
            done.set()

        def _reader() -> None:
            while True:
                seen.append(engine.read_file("f"))
                if done.is_set():
                    break

        threads = [threading.Thread(target=_reader) for _ in range(READER_THREADS)]
        threads.append(threading.Thread(target=_writer))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen
        assert all(data in (first, second) for data in seen)

    def test_concurrent_creates_are_unique(self, tmp_path: Path) -> None:
        """Racing creates of one name succeed exactly once."""
        engine = _engine(tmp_path)
        results: list[bool] = []
        results_lock = threading.Lock()

        def _create() -> None:
            try:
                engine.create_file("race")
                ok = True
            except FileSystemError:
                ok = False
            with results_lock:
                results.append(ok)

        threads = [threading.Thread(target=_create) for _ in range(READER_THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert engine.list_files() == ["race"]
