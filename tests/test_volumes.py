import hashlib
import lzma
import stat

import pytest

from acbackup.volumes import (
    Block,
    FlatVolumesBlockInputStream,
    FlatVolumesFileSystem,
    VolumesOutputStream,
)


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


def _store(fs, path, data):
    with fs.create_file(path) as out:
        out.write(data)


def test_round_trip_across_volumes(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=10)
    data = bytes(range(25))
    _store(fs, "/a.bin", data)

    blocks = fs.blocks_of("/a.bin")
    assert sum(b.size for b in blocks) == len(data)
    assert all(b.size <= 10 for b in blocks)
    assert sorted({b.volume_number for b in blocks}) == [0, 1, 2]

    with fs.open_file_for_reading("/a.bin") as stream:
        assert stream.read() == data


def test_volume_files_are_numbered(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=4)
    _store(fs, "/x", b"abcdef")
    fs.write_protect()
    assert sorted(p.name for p in data_dir.iterdir()) == ["0", "1"]
    assert (data_dir / "0").read_bytes() + (data_dir / "1").read_bytes() == b"abcdef"


def test_concurrent_writers_use_separate_volumes(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=100)
    first = fs.create_file("/one")
    second = fs.create_file("/two")
    first.write(b"111")
    second.write(b"22")
    first.write(b"111")
    first.close()
    second.close()

    one_volumes = {b.volume_number for b in fs.blocks_of("/one")}
    two_volumes = {b.volume_number for b in fs.blocks_of("/two")}
    assert one_volumes.isdisjoint(two_volumes)
    assert fs.open_file_for_reading("/one").read() == b"111111"
    assert fs.open_file_for_reading("/two").read() == b"22"


def test_released_volume_is_reused(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=100)
    _store(fs, "/first", b"abc")
    _store(fs, "/second", b"de")

    first = fs.blocks_of("/first")
    second = fs.blocks_of("/second")
    assert second == [Block(first[0].volume_number, len(b"abc"), len(b"de"))]
    assert fs.open_file_for_reading("/second").read() == b"de"


def test_empty_file_has_no_blocks(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=8)
    _store(fs, "/empty", b"")
    assert fs.blocks_of("/empty") == []
    assert fs.open_file_for_reading("/empty").read() == b""


def test_unknown_file_raises_key_error(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=8)
    with pytest.raises(KeyError):
        fs.blocks_of("/missing")
    with pytest.raises(KeyError):
        fs.open_file_for_reading("/missing")


def test_invalid_volume_size(data_dir):
    with pytest.raises(ValueError):
        FlatVolumesFileSystem(data_dir, volume_size=0)


def test_reopen_with_existing_blocks(data_dir):
    writer_fs = FlatVolumesFileSystem(data_dir, volume_size=5)
    data = b"hello volumes"
    _store(writer_fs, "/doc.txt", data)
    blocks = writer_fs.blocks_of("/doc.txt")
    writer_fs.write_protect()

    reader_fs = FlatVolumesFileSystem(data_dir, volume_size=5, blocks={"/doc.txt": blocks})
    with reader_fs.open_file_for_reading("/doc.txt") as stream:
        assert stream.read() == data


def test_compressed_round_trip(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=16)
    original = b"compress me " * 50
    _store(fs, "/c", lzma.compress(original, format=lzma.FORMAT_ALONE))
    with fs.open_file_for_reading("/c", compressed=True) as stream:
        assert stream.read() == original


def test_hash_verification_accepts_correct_hash(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=7)
    data = b"verified content"
    _store(fs, "/h", data)
    expected = hashlib.sha256(data).hexdigest()
    with fs.open_file_for_reading("/h", expected_hash=expected, hash_algorithm="sha256") as s:
        assert s.read() == data


def test_hash_verification_rejects_wrong_hash(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=7)
    data = b"verified content"
    _store(fs, "/h", data)
    wrong = hashlib.sha256(b"other").hexdigest()
    stream = fs.open_file_for_reading("/h", expected_hash=wrong, hash_algorithm="sha256")
    with pytest.raises(ValueError):
        stream.read()


def test_block_stream_reads_in_pieces(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=3)
    data = b"0123456789"
    _store(fs, "/p", data)
    stream = FlatVolumesBlockInputStream(fs, fs.blocks_of("/p"))
    pieces = []
    while chunk := stream.read(4):
        assert len(chunk) <= 4
        pieces.append(chunk)
    assert b"".join(pieces) == data
    assert stream.at_end()


def test_block_stream_without_blocks_is_at_end(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=3)
    stream = FlatVolumesBlockInputStream(fs, [])
    assert stream.at_end()
    assert stream.read(10) == b""


def test_read_bytes_past_volume_end(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=100)
    _store(fs, "/short", b"abc")
    assert fs.read_bytes(0, 1, 2) == b"bc"
    with pytest.raises(EOFError):
        fs.read_bytes(0, 0, 50)


def test_write_after_close_fails(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=10)
    out = VolumesOutputStream(fs, "/z")
    assert out.write(b"ab") == 2
    out.close()
    with pytest.raises(ValueError):
        out.write(b"cd")


def test_write_protect_removes_write_permissions(data_dir):
    fs = FlatVolumesFileSystem(data_dir, volume_size=10)
    _store(fs, "/w", b"data")
    fs.write_protect()
    for path in [data_dir, *data_dir.iterdir()]:
        assert stat.S_IMODE(path.stat().st_mode) & stat.S_IWUSR == 0
    data_dir.chmod(0o755)


def test_write_protect_without_directory(tmp_path):
    fs = FlatVolumesFileSystem(tmp_path / "never", volume_size=10)
    fs.write_protect()
    assert not (tmp_path / "never").exists()