"""Exceptions raised while configuring, indexing and storing backups."""

from __future__ import annotations

from os import PathLike
from pathlib import PurePath


class StreamPipingFailedError(Exception):
    """The data of a node could not be streamed completely."""

    def __init__(self, path: str | PathLike[str]) -> None:
        self.path = PurePath(path)
        super().__init__(
            f"The streaming of data of the following node failed: {self.path.as_posix()}"
        )


class ConfigError(Exception):
    """The backup configuration is missing a field or holds an invalid value."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class LinkPointsOutOfIndexDirError(Exception):
    """A symbolic link points outside the directory being indexed."""

    def __init__(self) -> None:
        super().__init__(
            "A link was found that points out of the directory that is being indexed. "
            "Such a link can not be saved."
        )