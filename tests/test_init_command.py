from pathlib import Path

from acbackup.compression_stats import COMPRESSION_STATS_FILE_NAME, CompressionStatistics
from acbackup.config import CONFIG_FILE_NAME, ConfigManager
from acbackup.init_command import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    INCOMPRESSIBLE_EXTENSIONS,
    add_incompressible_file_extensions,
    command_init,
)


def test_add_incompressible_file_extensions():
    stats = CompressionStatistics()
    add_incompressible_file_extensions(stats)
    assert stats.compression_rate("mp3") == 1.0
    assert stats.compression_rate("txt") == 0.0


def test_init_creates_layout(tmp_path):
    assert command_init(tmp_path, "/source") == EXIT_SUCCESS
    assert (tmp_path / CONFIG_FILE_NAME).is_file()
    assert (tmp_path / COMPRESSION_STATS_FILE_NAME).is_file()
    assert (tmp_path / "data").is_dir()
    assert (tmp_path / "index").is_dir()


def test_init_config_can_be_loaded(tmp_path):
    command_init(tmp_path, "/source")
    assert ConfigManager.load(tmp_path).config.source_path == Path("/source")


def test_init_statistics_mark_all_incompressible(tmp_path):
    command_init(tmp_path, "/source")
    stats = CompressionStatistics.load(tmp_path)
    assert all(stats.compression_rate(ext) == 1.0 for ext in INCOMPRESSIBLE_EXTENSIONS)


def test_init_refuses_non_empty_directory(tmp_path, capsys):
    (tmp_path / "existing.txt").write_text("x")
    assert command_init(tmp_path, "/source") == EXIT_FAILURE
    assert "Directory is not empty" in capsys.readouterr().err
    assert not (tmp_path / CONFIG_FILE_NAME).exists()


def test_init_creates_missing_directory(tmp_path):
    target = tmp_path / "new" / "backup"
    assert command_init(target, "/source") == EXIT_SUCCESS
    assert (target / "data").is_dir()