# acbackup

A library with the building blocks of a snapshot backup tool: the backup
directory's configuration and compression statistics, an index of a
source directory tree, filters for operating-system clutter files, and a
storage layer that writes file data as blocks into numbered, size-limited
volume files.

## Layout of a backup directory

`acbackup.init_command.command_init(backup_path, source_path)` sets up a
backup directory. The directory is created if it does not exist; if it
exists and is not empty, a message goes to standard error and the call
returns `1` without writing anything. On success it returns `0` and the
directory holds:

- `config.json` – the backup's settings, written as JSON with a `//`
  comment after every entry.
- `compression_stats.csv` – the compression rate per file extension.
  Formats that are already compressed (archives, audio, JPEG images,
  video; see `INCOMPRESSIBLE_EXTENSIONS`) start out with rate `1`.
- `data/` and `index/` – empty directories.

```python
from pathlib import Path

from acbackup.init_command import command_init

status = command_init(Path("/backups/photos"), Path("/srv/photos"))
```

## Configuration

`acbackup.config.ConfigManager` holds a `Config`. A new manager has the
defaults: block size 1024 KiB, volume size 100 MiB, LZMA compression,
maximum compression level 6, hash algorithm `sha512-256`, status tracker
`web` on port 8080. `write(dir_path)` stores them in `dir_path/config.json`;
`ConfigManager.load(backup_path)` reads that file back.

```python
from acbackup.config import ConfigManager

manager = ConfigManager.load(Path("/backups/photos"))
config = manager.config
print(config.source_path, config.block_size, config.volume_size)
print(config.data_path, config.index_path)
```

In the file, block and volume sizes are given in KiB and MiB; in `Config`
they are in bytes. Comments and trailing commas are accepted when loading.
A missing field, a value of the wrong kind, an unknown compression method,
hash algorithm (`md5`, `sha1`, `sha256`, `sha512`, `sha512-256`) or status
tracker type (`terminal`, `web`), and a maximum compression level outside
0–9 raise `acbackup.errors.ConfigError`.

`compression_settings_for(CompressionSetting.LZMA)` gives the algorithm and
stream format belonging to a compression setting.

## Compression statistics

```python
from acbackup.compression_stats import CompressionStatistics

stats = CompressionStatistics.load(Path("/backups/photos"))
rate = stats.compression_rate("txt")        # 0.0 for an unseen extension
level = stats.compression_level(rate, config.max_compression_level)
stats.add_compression_rate_sample("TXT", 0.35)  # averaged with the old rate
stats.write(Path("/backups/photos"))
```

Extensions are compared in lower case. Samples are clamped to 0–1, and
`compression_level` maps a rate to a level between 0 and 9: the better a
type compresses, the higher the level.

## Indexing a source tree

`acbackup.node_index.FileSystemNodeIndex` numbers nodes in the order they
are added and maps absolute node paths to numbers and back
(`add_node`, `node_index`, `node_path`, `node_attributes`,
`has_node_index`, `compute_total_size`, `len()`). Each node has
`FileSystemNodeAttributes`: type (`FileType.FILE`, `DIRECTORY`, `LINK`),
size (0 for directories), modification time and permission bits; two
attribute sets compare equal when type, size and modification time agree.

`acbackup.os_index.OSFileSystemNodeIndex` walks a directory on disk, in
sorted order, and records every node under a path relative to the indexed
root (the root itself is `/`). Links are not followed. Files matched by a
filter are skipped; by default these are Windows `Thumbs.db` thumbnail
caches and `desktop.ini` folder settings, recognised by their content
(`acbackup.filters.default_filters()`). A symbolic link that points outside
the indexed directory raises `acbackup.errors.LinkPointsOutOfIndexDirError`.

```python
from acbackup.filters import default_filters
from acbackup.os_index import OSFileSystemNodeIndex

index = OSFileSystemNodeIndex(Path("/srv/photos"), config.hash_algorithm, default_filters())
print(len(index), index.compute_total_size())
digest = index.compute_node_hash(index.node_index("/album/cover.jpg"))
```

`compute_node_hash` hashes a file's data, or a link's target path, and
returns lower-case hex. If fewer or more bytes are read than the recorded
size it raises `acbackup.errors.StreamPipingFailedError`; for a directory
it raises `ValueError`.

## Volume storage

`acbackup.volumes.FlatVolumesFileSystem` stores file data in the volume
files `0`, `1`, `2`, … of one directory, none larger than the volume size.
Each stored file is a list of `Block`s (volume number, offset, size).

```python
from acbackup.volumes import FlatVolumesFileSystem

storage = FlatVolumesFileSystem(config.data_path, config.volume_size)
with storage.create_file("/notes.txt") as out:
    out.write(b"some data")
blocks = storage.blocks_of("/notes.txt")

# later, with the block lists kept by the caller
storage = FlatVolumesFileSystem(config.data_path, config.volume_size, {"/notes.txt": blocks})
with storage.open_file_for_reading("/notes.txt") as stream:
    data = stream.read()
```

Data is stored exactly as written. `open_file_for_reading` decompresses
LZMA data when `compressed=True`, and when `expected_hash` is given it
hashes what is read and raises `ValueError` on reaching the end if the
digest differs. A volume that is shorter than a block says raises
`EOFError`. `write_protect()` closes all volumes and removes the write
permission from the directory and its files.

## What the package does not do

- There is no command-line program; `command_init` is the only command and
  is called from Python.
- There is no snapshot management: snapshots are not created, listed,
  compared or verified, and indexes are not saved to or read from the
  `index/` directory.
- The block lists of stored files are not saved; the caller must keep them
  and pass them to `FlatVolumesFileSystem` to read the files again.
- Data is not compressed on writing, and no progress is reported; the
  status tracker settings are only stored in the configuration.