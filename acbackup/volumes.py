"""Backup storage that spreads file data over numbered, size-limited volume files."""

from __future__ import annotations

import hashlib
import io
import lzma
import os
import stat
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from acbackup.config import DEFAULT_HASH_ALGORITHM, DEFAULT_VOLUME_SIZE_MIB, HASH_ALGORITHMS, MIB

_MAX_OPEN_VOLUMES = 100
_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


@dataclass(frozen=True)
class Block:
    """A contiguous piece of a file's data stored inside one volume."""

    volume_number: int
    offset: int
    size: int


@dataclass
class _VolumeForReading:
    file: BinaryIO | None = None
    counter: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


@dataclass
class _OpenVolumeForWriting:
    number: int
    file: BinaryIO
    left_size: int
    owner: VolumesOutputStream | None


class _HashMismatchError(ValueError):
    pass


class _CheckedHashingReader(io.RawIOBase):
    """Hashes what passes through and compares the digest once the end is reached."""

    def __init__(self, inner: BinaryIO, hash_algorithm: str, expected: str) -> None:
        super().__init__()
        self._inner = inner
        self._hasher = hashlib.new(HASH_ALGORITHMS.get(hash_algorithm, hash_algorithm))
        self._expected = expected.lower()
        self._verified = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._inner.read(len(buffer))
        if not data:
            if not self._verified:
                self._verified = True
                actual = self._hasher.hexdigest().lower()
                if actual != self._expected:
                    raise _HashMismatchError(
                        f"Hash mismatch: expected {self._expected}, got {actual}"
                    )
            return 0
        self._hasher.update(data)
        buffer[: len(data)] = data
        return len(data)


class _ChainedReader(io.RawIOBase):
    """Reads from the last of a chain of streams and closes all of them together."""

    def __init__(self, streams: list) -> None:
        super().__init__()
        self._streams = streams

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._streams[-1].read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def close(self) -> None:
        if not self.closed:
            for stream in reversed(self._streams):
                stream.close()
        super().close()


def _node_path(path: str | PurePosixPath) -> PurePosixPath:
    return PurePosixPath(path)


class FlatVolumesFileSystem:
    """Stores file data as blocks in the volume files 0, 1, 2, ... of one directory."""

    def __init__(
        self,
        dir_path: str | PathLike[str],
        volume_size: int = DEFAULT_VOLUME_SIZE_MIB * MIB,
        blocks: Mapping[str | PurePosixPath, Iterable[Block]] | None = None,
    ) -> None:
        if volume_size <= 0:
            raise ValueError("Volume size must be positive")
        self.dir_path = Path(dir_path)
        self.volume_size = volume_size
        self._blocks: dict[PurePosixPath, list[Block]] = {
            _node_path(path): list(node_blocks) for path, node_blocks in (blocks or {}).items()
        }

        self._volumes_lock = threading.Lock()
        self._reading: dict[int, _VolumeForReading] = {
            block.volume_number: _VolumeForReading()
            for node_blocks in self._blocks.values()
            for block in node_blocks
        }
        self._open_count_lock = threading.Lock()
        self._open_volume_count = 0

        self._writing_lock = threading.RLock()
        self._created_data_dir = False
        self._next_volume_number = 0
        self._open_for_writing: list[_OpenVolumeForWriting] = []

    # writing

    def create_file(self, file_path: str | PurePosixPath) -> VolumesOutputStream:
        """Return a stream whose data is stored as blocks of file_path."""
        path = _node_path(file_path)
        with self._writing_lock:
            self._blocks.setdefault(path, [])
        return VolumesOutputStream(self, path)

    def blocks_of(self, file_path: str | PurePosixPath) -> list[Block]:
        """Return the blocks holding a file's data; raise KeyError for unknown files."""
        with self._writing_lock:
            return list(self._blocks[_node_path(file_path)])

    def write_bytes(self, writer: VolumesOutputStream, data: bytes) -> None:
        """Store data for writer, filling volumes up to their size limit."""
        view = memoryview(data).cast("B")
        with self._writing_lock:
            while view:
                volume = self._find_volume(writer)
                count = min(volume.left_size, len(view))
                offset = volume.file.tell()
                written = volume.file.write(view[:count])
                view = view[written:]
                self._bytes_written(writer, volume, offset, written)

    def close_file(self, writer: VolumesOutputStream) -> None:
        """Release the volume owned by writer so that other writers may fill it."""
        with self._writing_lock:
            for volume in self._open_for_writing:
                if volume.owner is writer:
                    volume.file.flush()
                    volume.owner = None
                    break

    def write_protect(self) -> None:
        """Close all volumes and make the directory and its files read-only."""
        with self._writing_lock:
            for volume in self._open_for_writing:
                volume.file.close()
            self._open_for_writing.clear()

        if not self.dir_path.exists():
            return
        for root, _dirs, files in os.walk(self.dir_path):
            for name in files:
                _remove_write_permission(Path(root) / name)
        _remove_write_permission(self.dir_path)

    def _find_volume(self, writer: VolumesOutputStream) -> _OpenVolumeForWriting:
        free = None
        for volume in self._open_for_writing:
            if volume.owner is writer:
                return volume
            if volume.owner is None:
                free = volume
        if free is not None:
            free.owner = writer
            return free

        if not self._created_data_dir:
            self.dir_path.mkdir(parents=True, exist_ok=True)
            self._created_data_dir = True

        number = self._next_volume_number
        self._next_volume_number += 1
        volume = _OpenVolumeForWriting(
            number=number,
            file=open(self.dir_path / str(number), "wb"),
            left_size=self.volume_size,
            owner=writer,
        )
        self._open_for_writing.append(volume)
        return volume

    def _bytes_written(
        self, writer: VolumesOutputStream, volume: _OpenVolumeForWriting, offset: int, count: int
    ) -> None:
        self._blocks.setdefault(writer.path, []).append(Block(volume.number, offset, count))
        volume.left_size -= count
        if volume.left_size == 0:
            volume.file.close()
            self._open_for_writing.remove(volume)

    # reading

    def open_file_for_reading(
        self,
        file_path: str | PurePosixPath,
        compressed: bool = False,
        expected_hash: str | None = None,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ) -> BinaryIO:
        """Open a stored file; decompress it and check its hash when asked to."""
        block_stream = FlatVolumesBlockInputStream(self, self.blocks_of(file_path))
        streams: list = [block_stream, io.BufferedReader(block_stream)]
        if compressed:
            streams.append(lzma.LZMAFile(streams[-1], "rb"))
        if expected_hash is not None:
            streams.append(_CheckedHashingReader(streams[-1], hash_algorithm, expected_hash))
        return io.BufferedReader(_ChainedReader(streams))

    def read_bytes(self, volume_number: int, offset: int, count: int) -> bytes:
        """Read count bytes at offset of a volume; raise EOFError if the volume is too short."""
        self._close_unused_volumes()
        volume = self._volume_for_reading(volume_number)
        with volume.lock:
            if volume.file is None:
                volume.file = open(self.dir_path / str(volume_number), "rb")
                with self._open_count_lock:
                    self._open_volume_count += 1
            volume.file.seek(offset)
            data = volume.file.read(count)
        if len(data) != count:
            raise EOFError(
                f"Volume {volume_number} ended before {count} bytes at offset {offset} were read"
            )
        return data

    def _volume_for_reading(self, volume_number: int) -> _VolumeForReading:
        with self._volumes_lock:
            return self._reading.setdefault(volume_number, _VolumeForReading())

    def _increment_volume_counters(self, blocks: Iterable[Block]) -> None:
        for block in blocks:
            volume = self._volume_for_reading(block.volume_number)
            with volume.lock:
                volume.counter += 1

    def _decrement_volume_count(self, volume_number: int) -> None:
        volume = self._volume_for_reading(volume_number)
        with volume.lock:
            volume.counter -= 1

    def _close_unused_volumes(self) -> None:
        with self._open_count_lock:
            if self._open_volume_count <= _MAX_OPEN_VOLUMES:
                return
            with self._volumes_lock:
                volumes = list(self._reading.values())
            for volume in volumes:
                with volume.lock:
                    if volume.counter == 0 and volume.file is not None:
                        volume.file.close()
                        volume.file = None
                        self._open_volume_count -= 1


def _remove_write_permission(path: Path) -> None:
    mode = stat.S_IMODE(path.stat().st_mode)
    path.chmod(mode & ~_WRITE_BITS)


class VolumesOutputStream:
    """Writable stream whose data goes into the volumes of a file system."""

    def __init__(self, file_system: FlatVolumesFileSystem, path: str | PurePosixPath) -> None:
        self.file_system = file_system
        self.path = _node_path(path)
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to closed stream")
        self.file_system.write_bytes(self, data)
        return len(data)

    def flush(self) -> None:
        """Data is handed on at once, so there is nothing to flush."""

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.file_system.close_file(self)

    def __enter__(self) -> VolumesOutputStream:
        return self

    def __exit__(self, *args) -> None:
        self.close()


class FlatVolumesBlockInputStream(io.RawIOBase):
    """Reads the blocks of one file one after another; it keeps no buffer."""

    def __init__(self, file_system: FlatVolumesFileSystem, blocks: Iterable[Block]) -> None:
        super().__init__()
        self._file_system = file_system
        self._blocks = list(blocks)
        self._current = 0
        self._block_offset = 0
        file_system._increment_volume_counters(self._blocks)

    def readable(self) -> bool:
        return True

    def at_end(self) -> bool:
        return self._current >= len(self._blocks)

    def read(self, size: int | None = -1) -> bytes:
        unlimited = size is None or size < 0
        out = bytearray()
        while (unlimited or len(out) < size) and not self.at_end():
            block = self._blocks[self._current]
            if self._block_offset >= block.size:
                self._file_system._decrement_volume_count(block.volume_number)
                self._current += 1
                self._block_offset = 0
                continue
            count = block.size - self._block_offset
            if not unlimited:
                count = min(count, size - len(out))
            data = self._file_system.read_bytes(
                block.volume_number, block.offset + self._block_offset, count
            )
            out += data
            self._block_offset += len(data)
        return bytes(out)

    def readall(self) -> bytes:
        return self.read(-1)

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def close(self) -> None:
        if not self.closed:
            for block in self._blocks[self._current:]:
                self._file_system._decrement_volume_count(block.volume_number)
            self._current = len(self._blocks)
        super().close()