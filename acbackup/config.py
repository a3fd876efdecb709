"""Backup configuration: its settings and the config.json file that holds them."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from pathlib import Path
from typing import Any

from acbackup.errors import ConfigError

KIB = 1024
MIB = 1024 * KIB

CONFIG_FILE_NAME = "config.json"

HASH_ALGORITHMS = {
    "md5": "md5",
    "sha1": "sha1",
    "sha256": "sha256",
    "sha512": "sha512",
    "sha512-256": "sha512_256",
}
DEFAULT_HASH_ALGORITHM = "sha512-256"

DEFAULT_BLOCK_SIZE_KIB = 1024
DEFAULT_VOLUME_SIZE_MIB = 100
DEFAULT_MAX_COMPRESSION_LEVEL = 6
DEFAULT_STATUS_TRACKER_PORT = 8080

_KEY_SOURCE_PATH = "sourcePath"
_KEY_BLOCK_SIZE = "blockSize"
_KEY_VOLUME_SIZE = "volumeSize"
_KEY_COMPRESSION = "compression"
_KEY_MAX_COMPRESSION_LEVEL = "maxCompressionLevel"
_KEY_HASH_ALGORITHM = "hashAlgorithm"
_KEY_STATUS_TRACKER = "statusTracker"
_KEY_STATUS_TRACKER_PORT = "statusTrackerPort"


class CompressionSetting(Enum):
    """Compression method selectable in the configuration."""

    LZMA = "lzma"


class StatusTrackerType(Enum):
    """How progress is reported."""

    TERMINAL = "terminal"
    WEB = "web"


@dataclass(frozen=True)
class CompressionSettings:
    """Compression algorithm and container format belonging to a setting."""

    algorithm: str
    stream_format: str


_COMPRESSION_SETTINGS = {
    CompressionSetting.LZMA: CompressionSettings(algorithm="lzma", stream_format="lzma"),
}


def compression_settings_for(setting: CompressionSetting) -> CompressionSettings:
    """Return the algorithm and stream format used for a compression setting."""
    return _COMPRESSION_SETTINGS[CompressionSetting(setting)]


def _default_compression() -> CompressionSettings:
    return compression_settings_for(CompressionSetting.LZMA)


@dataclass
class Config:
    """Settings of one backup directory; sizes are in bytes."""

    source_path: Path
    backup_path: Path
    block_size: int = DEFAULT_BLOCK_SIZE_KIB * KIB
    volume_size: int = DEFAULT_VOLUME_SIZE_MIB * MIB
    max_compression_level: int = DEFAULT_MAX_COMPRESSION_LEVEL
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    status_tracker_type: StatusTrackerType = StatusTrackerType.WEB
    status_tracker_port: int = DEFAULT_STATUS_TRACKER_PORT
    compression: CompressionSettings = field(default_factory=_default_compression)

    @property
    def data_path(self) -> Path:
        return self.backup_path / "data"

    @property
    def index_path(self) -> Path:
        return self.backup_path / "index"


def _relax_json(text: str) -> str:
    """Remove comments and trailing commas so that the text is plain JSON."""
    out: list[str] = []
    pending_comma: int | None = None
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end < 0 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end < 0:
                raise ConfigError("Unterminated comment in configuration file")
            i = end + 2
            continue
        if ch.isspace():
            out.append(ch)
            i += 1
            continue
        if ch in "}]" and pending_comma is not None:
            out[pending_comma] = " "
        pending_comma = len(out) if ch == "," else None
        if ch == '"':
            in_string = True
        out.append(ch)
        i += 1
    return "".join(out)


def _require(data: dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ConfigError(f"Missing field '{key}'") from None


def _require_int(data: dict[str, Any], key: str) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Invalid value for field '{key}'")
    return value


def _require_str(data: dict[str, Any], key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid value for field '{key}'")
    return value


def _parse_config(data: dict[str, Any], backup_path: Path) -> Config:
    source_path = Path(_require_str(data, _KEY_SOURCE_PATH))
    block_size = _require_int(data, _KEY_BLOCK_SIZE)
    volume_size = _require_int(data, _KEY_VOLUME_SIZE)

    try:
        compression = CompressionSetting(_require_str(data, _KEY_COMPRESSION))
    except ValueError:
        raise ConfigError(f"Invalid value for field '{_KEY_COMPRESSION}'") from None

    max_level = _require_int(data, _KEY_MAX_COMPRESSION_LEVEL)

    hash_algorithm = _require_str(data, _KEY_HASH_ALGORITHM)
    if hash_algorithm not in HASH_ALGORITHMS:
        raise ConfigError(f"Invalid value for field '{_KEY_HASH_ALGORITHM}'")

    try:
        tracker = StatusTrackerType(_require_str(data, _KEY_STATUS_TRACKER))
    except ValueError:
        raise ConfigError(f"Invalid value for field '{_KEY_STATUS_TRACKER}'") from None
    port = _require_int(data, _KEY_STATUS_TRACKER_PORT)

    if not 0 <= max_level <= 9:
        raise ConfigError(f"Invalid value for field '{_KEY_MAX_COMPRESSION_LEVEL}'")

    return Config(
        source_path=source_path,
        backup_path=backup_path,
        block_size=block_size * KIB,
        volume_size=volume_size * MIB,
        max_compression_level=max_level,
        hash_algorithm=hash_algorithm,
        status_tracker_type=tracker,
        status_tracker_port=port,
        compression=compression_settings_for(compression),
    )


class ConfigManager:
    """Holds the configuration of a backup directory and reads or writes its file."""

    def __init__(
        self, backup_path: str | PathLike[str], source_path: str | PathLike[str]
    ) -> None:
        self.config = Config(source_path=Path(source_path), backup_path=Path(backup_path))

    @classmethod
    def load(cls, backup_path: str | PathLike[str]) -> ConfigManager:
        """Read config.json from a backup directory."""
        backup_path = Path(backup_path)
        text = (backup_path / CONFIG_FILE_NAME).read_text(encoding="utf-8")
        try:
            data = json.loads(_relax_json(text))
        except json.JSONDecodeError as error:
            raise ConfigError(f"Malformed configuration file: {error}") from error
        if not isinstance(data, dict):
            raise ConfigError("The configuration file must hold an object")
        config = _parse_config(data, backup_path)
        manager = cls(backup_path, config.source_path)
        manager.config = config
        return manager

    @property
    def compression_setting(self) -> CompressionSetting:
        return CompressionSetting.LZMA

    def write(self, dir_path: str | PathLike[str]) -> None:
        """Write the configuration as commented JSON into dir_path/config.json."""
        config = self.config
        entries = [
            (_KEY_SOURCE_PATH, json.dumps(str(config.source_path)),
             "The path to the directory that should be backed up"),
            (_KEY_BLOCK_SIZE, str(config.block_size // KIB),
             "The maximum size of a block in KiB"),
            (_KEY_VOLUME_SIZE, str(config.volume_size // MIB),
             "The maximum size of a volume in MiB"),
            (_KEY_COMPRESSION, json.dumps(self.compression_setting.value),
             "The used compression method"),
            (_KEY_MAX_COMPRESSION_LEVEL, str(config.max_compression_level),
             "The maximum compression level"),
            (_KEY_HASH_ALGORITHM, json.dumps(config.hash_algorithm),
             "The algorithm used to compute hash values"),
            (_KEY_STATUS_TRACKER, json.dumps(config.status_tracker_type.value),
             "The type of status reporting that should be used. "
             "Currently there is 'terminal' and 'web'."),
            (_KEY_STATUS_TRACKER_PORT, str(config.status_tracker_port),
             "Port that the status tracking web service will listen on if enabled."),
        ]
        lines = ["{"]
        lines.extend(f'\t"{key}": {value}, //{comment}' for key, value, comment in entries)
        lines.append("}")
        path = Path(dir_path) / CONFIG_FILE_NAME
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")