"""Filters that recognise operating-system clutter files which are not backed up."""

from __future__ import annotations

from abc import ABC, abstractmethod
from os import PathLike
from pathlib import Path
from typing import BinaryIO

_UTF16_BOM = 0xFEFF
_SHELL_CLASS_INFO = "[.ShellClassInfo]"
_COMPOUND_FILE_SIGNATURE = bytes([0xD0, 0xCF, 0x11, 0xE0, 0xA1, 0xB1, 0x1A])


class FileFilter(ABC):
    """Decides whether a file on disk should be left out of a backup."""

    @abstractmethod
    def matches(self, path: str | PathLike[str]) -> bool:
        """Return True if the file at path is matched by this filter."""


class DesktopIniFilter(FileFilter):
    """Matches the desktop.ini files that Windows Explorer creates."""

    def matches(self, path: str | PathLike[str]) -> bool:
        path = Path(path)
        if path.name != "desktop.ini":
            return False
        with path.open("rb") as stream:
            return self.matches_data(stream)

    def matches_data(self, stream: BinaryIO) -> bool:
        """Check for a UTF-16LE text whose first line is empty and second is the shell section."""
        bom = stream.read(2)
        if len(bom) < 2 or int.from_bytes(bom, "little") != _UTF16_BOM:
            return False
        text = stream.read().decode("utf-16-le", errors="replace")
        lines = [line.rstrip("\r") for line in text.split("\n")]
        if lines[0]:
            return False
        second = lines[1] if len(lines) > 1 else ""
        return second == _SHELL_CLASS_INFO


class ThumbsDbFilter(FileFilter):
    """Matches the Thumbs.db thumbnail caches that Windows creates."""

    def matches(self, path: str | PathLike[str]) -> bool:
        path = Path(path)
        if path.name != "Thumbs.db":
            return False
        with path.open("rb") as stream:
            return self.matches_data(stream)

    def matches_data(self, stream: BinaryIO) -> bool:
        """Check for the compound-file signature at the start of the data."""
        signature = stream.read(len(_COMPOUND_FILE_SIGNATURE))
        return signature == _COMPOUND_FILE_SIGNATURE


def default_filters() -> list[FileFilter]:
    """Return the filters applied when indexing a source directory."""
    return [DesktopIniFilter(), ThumbsDbFilter()]