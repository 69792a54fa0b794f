import asyncio
import threading
from unittest.mock import AsyncMock, Mock

import pytest

from libsync.errors import MetadataExtractionError
from libsync.importer import ImportPipeline, build_track, source_path_of
from libsync.models import DiscoveredFile


def _file(name: str, size: int = 1000, **kw) -> DiscoveredFile:
    return DiscoveredFile(name=name, path=kw.pop("path", name), directory="", size=size, **kw)


class DictExtractor:
    def __init__(self, records=None, fail=()):
        self.records = records or {}
        self.fail = set(fail)

    def extract(self, file):
        if file.name in self.fail:
            raise MetadataExtractionError("corrupt", path=file.path)
        return dict(self.records.get(file.name, {}))


def test_build_track_prefers_tags():
    meta = {"title": "Song", "artist": "Band", "album": "LP", "year": "2001-02-03", "track": "4/10", "duration": 181.5}
    t = build_track(_file("whatever.mp3"), meta, "/music")

    assert (t.title, t.artist, t.album, t.year, t.track_number, t.duration) == ("Song", "Band", "LP", 2001, 4, 181.5)
    assert t.id == "track-band-lp-song-1000"
    assert t.source_path == "/music/whatever.mp3"
    assert t.folder_path == "/music"
    assert t.file_type == "audio/mpeg"
    assert t.play_count == 0


def test_build_track_falls_back_to_file_name():
    t = build_track(_file("Band - 02 - Tune.flac"), {"title": "  "})
    assert (t.title, t.artist, t.track_number) == ("Tune", "Band", 2)
    assert t.album is None


def test_build_track_uses_extractor_id():
    t = build_track(_file("a.mp3"), {"id": "mbid-123", "title": "A"})
    assert t.id == "mbid-123"


def test_source_path_prefers_local_path():
    f = _file("a.mp3", path="sub/a.mp3", local_path="/abs/sub/a.mp3")
    assert source_path_of(f, "/elsewhere") == "/abs/sub/a.mp3"
    assert source_path_of(_file("a.mp3", path="sub/a.mp3"), "/root/") == "/root/sub/a.mp3"


@pytest.mark.asyncio
async def test_extract_all_skips_failures():
    pipeline = ImportPipeline(DictExtractor({"a.mp3": {"title": "A"}}, fail={"b.mp3"}))
    tracks = await pipeline.extract_all([_file("a.mp3"), _file("b.mp3"), _file("c.mp3")])
    assert [t.title for t in tracks] == ["A", "c"]


@pytest.mark.asyncio
async def test_unexpected_extractor_error_skips_file():
    extractor = Mock()
    extractor.extract.side_effect = RuntimeError("decoder crashed")
    assert await ImportPipeline(extractor).extract_track(_file("a.mp3")) is None


@pytest.mark.asyncio
async def test_extractions_are_bounded_by_max_workers():
    active = 0
    peak = 0
    lock = threading.Lock()

    class SlowExtractor:
        def extract(self, file):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            threading.Event().wait(0.02)
            with lock:
                active -= 1
            return {}

    pipeline = ImportPipeline(SlowExtractor(), max_workers=2)
    tracks = await pipeline.extract_all([_file(f"{i}.mp3") for i in range(6)])

    assert len(tracks) == 6
    assert peak <= 2


@pytest.mark.asyncio
async def test_import_files_submits_one_batch():
    store = Mock()
    store.import_tracks = AsyncMock(return_value=True)
    pipeline = ImportPipeline(DictExtractor())

    tracks = await pipeline.import_files([_file("a.mp3"), _file("b.mp3")], store, "/music")

    store.import_tracks.assert_awaited_once()
    (batch,), _ = store.import_tracks.call_args
    assert [t.id for t in batch] == [t.id for t in tracks]


def test_semaphore_is_rebound_per_event_loop():
    pipeline = ImportPipeline(DictExtractor())
    first = asyncio.run(pipeline.extract_all([_file("a.mp3")]))
    second = asyncio.run(pipeline.extract_all([_file("b.mp3")]))
    assert len(first) == len(second) == 1


@pytest.mark.asyncio
async def test_submit_skips_empty_batch_and_forwards_save_flag():
    store = Mock()
    store.import_tracks = AsyncMock(return_value=True)
    pipeline = ImportPipeline(DictExtractor())

    assert await pipeline.submit([], store) == []
    store.import_tracks.assert_not_awaited()

    track = build_track(_file("a.mp3"), {}, "/music")
    assert await pipeline.submit(iter([track]), store, save=False) == [track]
    store.import_tracks.assert_awaited_once_with([track], save=False)
