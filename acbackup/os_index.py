"""Index of a directory tree on the local file system."""

from __future__ import annotations

import hashlib
import io
import os
from collections.abc import Iterable
from os import PathLike
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from acbackup.config import DEFAULT_HASH_ALGORITHM, HASH_ALGORITHMS
from acbackup.errors import LinkPointsOutOfIndexDirError, StreamPipingFailedError
from acbackup.filters import FileFilter, default_filters
from acbackup.node_index import FileSystemNodeAttributes, FileSystemNodeIndex, FileType

_CHUNK_SIZE = 1024 * 1024


class OSFileSystemNodeIndex(FileSystemNodeIndex):
    """Indexes every node below base_path, skipping files matched by a filter."""

    def __init__(
        self,
        base_path: str | PathLike[str],
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
        filters: Iterable[FileFilter] | None = None,
    ) -> None:
        super().__init__()
        self.base_path = Path(os.path.abspath(base_path))
        self.hash_algorithm = hash_algorithm
        self.filters = list(default_filters() if filters is None else filters)
        self._index_node(PurePosixPath("/"))

    def compute_node_hash(self, node_index: int) -> str:
        """Hash the data of a file, or the target of a link, as lower-case hex."""
        attributes = self.node_attributes(node_index)
        if attributes.type is FileType.DIRECTORY:
            raise ValueError("Can't hash directory")
        node_path = self.node_path(node_index)

        if attributes.type is FileType.LINK:
            stream = self.open_link_target_as_stream(node_path)
        else:
            stream = self.open_file(node_path)

        hasher = hashlib.new(HASH_ALGORITHMS.get(self.hash_algorithm, self.hash_algorithm))
        read_size = 0
        with stream:
            while chunk := stream.read(_CHUNK_SIZE):
                hasher.update(chunk)
                read_size += len(chunk)
        if read_size != attributes.size:
            raise StreamPipingFailedError(node_path)
        return hasher.hexdigest().lower()

    def open_link_target_as_stream(self, node_path: str | PurePosixPath) -> BinaryIO:
        """Return the link's target path as a UTF-8 byte stream."""
        target = os.readlink(self._file_system_path(node_path))
        return io.BytesIO(target.encode("utf-8"))

    def open_file(self, node_path: str | PurePosixPath) -> BinaryIO:
        return open(self._file_system_path(node_path), "rb")

    def _file_system_path(self, node_path: str | PurePosixPath) -> Path:
        return Path(str(self.base_path) + str(PurePosixPath(node_path)))

    def _index_node(self, node_path: PurePosixPath) -> None:
        fs_path = self._file_system_path(node_path)
        attributes = FileSystemNodeAttributes.from_path(fs_path)

        if attributes.type is FileType.FILE and not self._should_be_indexed(fs_path):
            return
        if attributes.type is FileType.LINK:
            self._verify_link_points_inside(node_path, fs_path)

        self.add_node(node_path, attributes)

        if attributes.type is FileType.DIRECTORY:
            for name in sorted(os.listdir(fs_path)):
                self._index_node(node_path / name)

    def _should_be_indexed(self, fs_path: Path) -> bool:
        return not any(file_filter.matches(fs_path) for file_filter in self.filters)

    def _verify_link_points_inside(self, node_path: PurePosixPath, fs_path: Path) -> None:
        target = os.readlink(fs_path)
        if os.path.isabs(target):
            absolute_target = Path(os.path.normpath(target))
        else:
            absolute_target = Path(
                os.path.normpath(self._file_system_path(node_path.parent / target))
            )
        base = Path(os.path.normpath(self.base_path))
        if absolute_target == base or base not in absolute_target.parents:
            raise LinkPointsOutOfIndexDirError()