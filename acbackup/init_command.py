"""The init command: set up an empty backup directory."""

from __future__ import annotations

import sys
from os import PathLike
from pathlib import Path

from acbackup.compression_stats import CompressionStatistics
from acbackup.config import ConfigManager

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

INCOMPRESSIBLE_EXTENSIONS = (
    # archives
    "7z", "cab", "dmg", "gz", "rar", "zip",
    # audio
    "m4a", "mp3",
    # images
    "jpeg", "jpg",
    # video
    "avi", "bik", "flv", "m2ts", "mkv", "mpg", "mov", "mp4", "msi", "webm", "wmv", "vob",
)


def add_incompressible_file_extensions(statistics: CompressionStatistics) -> None:
    """Mark file types that are already compressed as incompressible."""
    for extension in INCOMPRESSIBLE_EXTENSIONS:
        statistics.set_as_incompressible(extension)


def _is_empty_directory(path: Path) -> bool:
    return path.is_dir() and next(path.iterdir(), None) is None


def command_init(
    backup_path: str | PathLike[str], source_path: str | PathLike[str]
) -> int:
    """Create config, statistics and data directories; return the exit status."""
    backup_path = Path(backup_path)
    manager = ConfigManager(backup_path, source_path)

    if not backup_path.exists():
        backup_path.mkdir(parents=True)
    if not _is_empty_directory(backup_path):
        print("Directory is not empty. Can not create backup dir here...", file=sys.stderr)
        return EXIT_FAILURE

    manager.write(backup_path)

    statistics = CompressionStatistics()
    add_incompressible_file_extensions(statistics)
    statistics.write(backup_path)

    manager.config.data_path.mkdir(parents=True, exist_ok=True)
    manager.config.index_path.mkdir(parents=True, exist_ok=True)
    return EXIT_SUCCESS