"""Per file-extension statistics of how well data compresses."""

from __future__ import annotations

import csv
import math
import threading
from os import PathLike
from pathlib import Path

COMPRESSION_STATS_FILE_NAME = "compression_stats.csv"


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


class CompressionStatistics:
    """Compression rates by lower-case file extension; 0 compresses perfectly, 1 not at all."""

    def __init__(self) -> None:
        self._stats: dict[str, float] = {}
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: str | PathLike[str]) -> CompressionStatistics:
        """Read the statistics file stored in the directory path."""
        statistics = cls()
        with open(Path(path) / COMPRESSION_STATS_FILE_NAME, encoding="utf-8", newline="") as fh:
            rows = csv.reader(fh, dialect="excel")
            next(rows, None)
            for row in rows:
                if len(row) < 2:
                    continue
                extension, rate = row[0], row[1]
                statistics._stats[extension] = float(rate)
        return statistics

    def add_compression_rate_sample(self, file_extension: str, compression_rate: float) -> None:
        """Blend a new sample, clamped to [0, 1], into the extension's rate."""
        rate = min(max(compression_rate, 0.0), 1.0)
        ext = file_extension.lower()
        with self._lock:
            self._stats[ext] = (self._stats.get(ext, 0.0) + rate) / 2.0

    def compression_level(self, compression_rate: float, max_compression_level: int) -> int:
        """Map a compression rate to a compression level between 0 and 9."""
        c = (max_compression_level + 1) * (1 - compression_rate)
        level = _round_half_away(c) - 1
        return int(min(max(level, 0.0), 9.0))

    def compression_rate(self, file_extension: str) -> float:
        """Return the rate of an extension; unknown extensions start as perfectly compressible."""
        ext = file_extension.lower()
        with self._lock:
            return self._stats.setdefault(ext, 0.0)

    def set_as_incompressible(self, extension: str) -> None:
        with self._lock:
            self._stats[extension] = 1.0

    def write(self, dir_path: str | PathLike[str]) -> None:
        """Write the statistics as CSV into the directory dir_path."""
        with self._lock:
            items = sorted(self._stats.items())
        with open(
            Path(dir_path) / COMPRESSION_STATS_FILE_NAME, "w", encoding="utf-8", newline=""
        ) as fh:
            writer = csv.writer(fh, dialect="excel")
            writer.writerow(["File extension", "Compression rate"])
            writer.writerows((ext, repr(rate)) for ext, rate in items)