import asyncio
from typing import Any, Dict, List

import pytest
from loguru import logger

from libsync.capability import FileInfo
from libsync.config import LibSettings
from libsync.importer import ImportPipeline
from libsync.models import DiscoveredFile, Track
from libsync.store import LibraryStore


class FakeExtractor:
    """Returns canned tags keyed by file name; unknown files get none."""

    def __init__(self, records: Dict[str, Dict[str, Any]] = None):
        self.records = records or {}
        self.seen = []

    def extract(self, file: DiscoveredFile) -> Dict[str, Any]:
        self.seen.append(file.name)
        return dict(self.records.get(file.name, {}))


class FakeFile:
    kind = "file"

    def __init__(self, name: str, size: int = 100, fail: bool = False):
        self.name = name
        self.size = size
        self.fail = fail

    async def get_file(self) -> FileInfo:
        if self.fail:
            raise OSError(f"I/O error reading {self.name}")
        return FileInfo(name=self.name, size=self.size, last_modified=0.0, mime_type="")


class FakeDir:
    """In-memory folder capability; also usable as a child directory handle."""

    kind = "directory"

    def __init__(self, name: str, children: List, fail: bool = False):
        self.name = name
        self.children = children
        self.fail = fail

    async def entries(self):
        if self.fail:
            raise PermissionError(f"cannot list {self.name}")
        for child in self.children:
            await asyncio.sleep(0)
            yield child.name, child


@pytest.fixture(autouse=True)
def quiet_logger():
    logger.remove()
    yield
    logger.remove()
    logger.configure(extra={})


@pytest.fixture
def settings(tmp_path):
    return LibSettings(db_path=str(tmp_path / "library.db"))


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def store(settings, extractor):
    """In-memory store: no snapshot or capability persistence."""
    return LibraryStore(settings, importer=ImportPipeline(extractor))


def make_track(tid: str, **kw) -> Track:
    return Track(
        id=tid,
        title=kw.pop("title", tid),
        source_path=kw.pop("source_path", f"/music/{tid}.mp3"),
        file_name=f"{tid}.mp3",
        **kw,
    )
