"""Attributes of file-system nodes and an index of nodes by path."""

from __future__ import annotations

import os
import stat
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from os import PathLike
from pathlib import PurePosixPath


class FileType(Enum):
    """Kind of a file-system node."""

    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"


@dataclass
class FileSystemNodeAttributes:
    """Type, size, modification time and permissions of a node.

    Two attribute sets are equal when type, size and modification time agree;
    permissions are not compared.
    """

    type: FileType
    size: int
    last_modified_time: datetime | None = None
    permissions: int | None = field(default=None, compare=False)

    @classmethod
    def from_path(cls, path: str | PathLike[str]) -> FileSystemNodeAttributes:
        """Read the attributes of a node on disk without following links."""
        info = os.lstat(path)
        if stat.S_ISLNK(info.st_mode):
            node_type = FileType.LINK
        elif stat.S_ISDIR(info.st_mode):
            node_type = FileType.DIRECTORY
        else:
            node_type = FileType.FILE
        return cls(
            type=node_type,
            size=0 if node_type is FileType.DIRECTORY else info.st_size,
            last_modified_time=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
            permissions=stat.S_IMODE(info.st_mode),
        )

    def copy_from(self, other: FileSystemNodeAttributes) -> None:
        """Take over type, size and modification time, keeping the permissions."""
        self.type = other.type
        self.size = other.size
        self.last_modified_time = other.last_modified_time


class FileSystemNodeIndex:
    """Numbered nodes with a one-to-one mapping between node paths and numbers."""

    def __init__(self) -> None:
        self._attributes: list[FileSystemNodeAttributes] = []
        self._paths: list[PurePosixPath] = []
        self._indices: dict[PurePosixPath, int] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._attributes)

    @property
    def path_map(self) -> dict[PurePosixPath, int]:
        """A copy of the mapping from node path to node number."""
        with self._lock:
            return dict(self._indices)

    def add_node(
        self, path: str | PurePosixPath, attributes: FileSystemNodeAttributes
    ) -> int:
        """Add a node; relative paths are made absolute. Return its number."""
        node_path = PurePosixPath(path)
        if not node_path.is_absolute():
            node_path = PurePosixPath("/" + str(node_path))
        with self._lock:
            if node_path in self._indices:
                raise ValueError(f"Node '{node_path}' is already indexed")
            index = len(self._attributes)
            self._attributes.append(attributes)
            self._paths.append(node_path)
            self._indices[node_path] = index
            return index

    def node_attributes(self, index: int) -> FileSystemNodeAttributes:
        with self._lock:
            return self._attributes[index]

    def node_index(self, path: str | PurePosixPath) -> int:
        """Return the number of the node at path; raise KeyError if unknown."""
        with self._lock:
            return self._indices[PurePosixPath(path)]

    def node_path(self, index: int) -> PurePosixPath:
        with self._lock:
            return self._paths[index]

    def has_node_index(self, path: str | PurePosixPath) -> bool:
        with self._lock:
            return PurePosixPath(path) in self._indices

    def compute_total_size(self, node_indices: Iterable[int] | None = None) -> int:
        """Sum of the raw sizes of the given nodes, or of all nodes."""
        with self._lock:
            if node_indices is None:
                return sum(attributes.size for attributes in self._attributes)
            return sum(self._attributes[index].size for index in node_indices)