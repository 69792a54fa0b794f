import asyncio

import pytest

from conftest import FakeDir, FakeFile
from libsync.capability import LocalFolderCapability
from libsync.errors import FileReadError
from libsync.models import DiscoveredFile
from libsync.scanner import DirectoryScanner, filter_audio_files


def _make_tree(root):
    (root / "sub" / "deep").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "a.mp3").write_bytes(b"\x00" * 10)
    (root / "notes.txt").write_text("hi")
    (root / "._a.mp3").write_bytes(b"\x00")
    (root / "sub" / "c.FLAC").write_bytes(b"\x00" * 20)
    (root / "sub" / "cover.jpg").write_bytes(b"\x00")
    (root / "sub" / "deep" / "d.ogg").write_bytes(b"\x00" * 30)


@pytest.mark.asyncio
async def test_scan_local_tree_finds_only_audio(tmp_path):
    _make_tree(tmp_path)
    found = []
    files = await DirectoryScanner().scan(LocalFolderCapability(tmp_path, granted=True), on_file_found=found.append)

    by_path = {f.path: f for f in files}
    assert set(by_path) == {"a.mp3", "sub/c.FLAC", "sub/deep/d.ogg"}
    assert found == files
    assert by_path["sub/deep/d.ogg"].directory == "sub/deep"
    assert by_path["sub/deep/d.ogg"].size == 30
    assert by_path["sub/c.FLAC"].mime_type == "audio/flac"
    assert by_path["a.mp3"].local_path == str(tmp_path / "a.mp3")


@pytest.mark.asyncio
async def test_unreadable_file_is_skipped_and_recorded():
    root = FakeDir(
        "root",
        [
            FakeFile("1.mp3"),
            FakeFile("2.mp3"),
            FakeFile("3.mp3", fail=True),
            FakeDir("sub", [FakeFile("4.mp3"), FakeFile("5.mp3")]),
        ],
    )
    scanner = DirectoryScanner()
    files = await scanner.scan(root)

    assert [f.path for f in files] == ["1.mp3", "2.mp3", "sub/4.mp3", "sub/5.mp3"]
    assert len(scanner.errors) == 1
    assert scanner.errors[0].path == "3.mp3"


@pytest.mark.asyncio
async def test_unreadable_subdirectory_is_skipped():
    root = FakeDir("root", [FakeDir("locked", [], fail=True), FakeFile("ok.mp3")])
    scanner = DirectoryScanner()
    files = await scanner.scan(root)

    assert [f.path for f in files] == ["ok.mp3"]
    assert isinstance(scanner.errors[0], FileReadError)


@pytest.mark.asyncio
async def test_root_listing_failure_raises():
    with pytest.raises(FileReadError):
        await DirectoryScanner().scan(FakeDir("root", [], fail=True))


@pytest.mark.asyncio
async def test_ungranted_local_root_raises(tmp_path):
    with pytest.raises(FileReadError):
        await DirectoryScanner().scan(LocalFolderCapability(tmp_path))


@pytest.mark.asyncio
async def test_progress_reports_are_monotonic():
    root = FakeDir(
        "root",
        [FakeFile("a.mp3"), FakeDir("empty", []), FakeDir("sub", [FakeFile("b.mp3"), FakeFile("x.txt")])],
    )
    reports = []
    await DirectoryScanner().scan(root, on_progress=reports.append)

    counts = [p.files_found for p in reports]
    assert counts == sorted(counts)
    assert counts[-1] == 2
    # One report per entry (5) plus one per directory level (3)
    assert len(reports) == 8


@pytest.mark.asyncio
async def test_iter_audio_files_is_lazy():
    root = FakeDir("root", [FakeFile("a.mp3"), FakeFile("b.mp3", fail=True)])
    scanner = DirectoryScanner()
    gen = scanner.iter_audio_files(root)

    first = await gen.__anext__()
    assert first.name == "a.mp3"
    assert scanner.errors == []
    await gen.aclose()


@pytest.mark.asyncio
async def test_stop_event_ends_walk():
    stop = asyncio.Event()
    root = FakeDir("root", [FakeFile("a.mp3"), FakeFile("b.mp3")])
    found = []

    def on_found(f):
        found.append(f)
        stop.set()

    await DirectoryScanner().scan(root, on_file_found=on_found, stop_event=stop)
    assert [f.name for f in found] == ["a.mp3"]


def test_filter_audio_files():
    files = [
        DiscoveredFile(name="fileA.mp3", path="fileA.mp3", directory=""),
        DiscoveredFile(name="fileB.txt", path="fileB.txt", directory=""),
        DiscoveredFile(name="._fileC.mp3", path="._fileC.mp3", directory=""),
    ]
    assert [f.name for f in filter_audio_files(files)] == ["fileA.mp3"]


@pytest.mark.asyncio
async def test_errors_cover_only_the_latest_walk():
    root = FakeDir("root", [FakeFile("a.mp3"), FakeFile("b.mp3", fail=True)])
    scanner = DirectoryScanner()
    for _ in range(3):
        await scanner.scan(root)
    assert [e.path for e in scanner.errors] == ["b.mp3"]
