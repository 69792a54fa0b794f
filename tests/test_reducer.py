from dataclasses import replace

import pytest

from libsync import actions as a
from libsync.models import Album, Folder, LibraryState, Playlist, ScanPhase, Track
from libsync.reducer import reduce


def _track(tid: str, **kw) -> Track:
    return Track(id=tid, title=kw.pop("title", tid), source_path=f"/m/{tid}.mp3", file_name=f"{tid}.mp3", **kw)


def _scanning(state: LibraryState = LibraryState()) -> LibraryState:
    return reduce(state, a.ScanStarted())


def test_add_tracks_is_idempotent_by_id():
    batch = (_track("t1"), _track("t2"))
    once = reduce(LibraryState(), a.AddTracks(batch))
    twice = reduce(once, a.AddTracks(batch))

    assert [t.id for t in twice.tracks] == ["t1", "t2"]
    assert twice is once


def test_add_tracks_keeps_existing_entry_for_known_id():
    state = reduce(LibraryState(), a.AddTracks((_track("t1", title="Original"),)))
    state = reduce(state, a.AddTracks((_track("t1", title="Rescanned"), _track("t1", title="Dup"), _track("t2"))))

    assert [t.title for t in state.tracks] == ["Original", "t2"]


def test_folder_paths_are_unique():
    state = reduce(LibraryState(), a.AddFolder(Folder(path="/music", name="music")))
    again = reduce(state, a.AddFolder(Folder(path="/music", name="other name")))

    assert again is state
    assert len(again.folders) == 1


def test_restore_snapshot_dedups_folders_by_path():
    f = Folder(path="/music", name="music")
    state = reduce(
        LibraryState(),
        a.RestoreSnapshot(tracks=(), albums=(), artists=(), playlists=(), folders=(f, f), last_scan_date="2024-01-01"),
    )
    assert len(state.folders) == 1
    assert state.session.last_scan_date == "2024-01-01"


def test_unknown_action_returns_same_state():
    state = reduce(LibraryState(), a.AddTracks((_track("t1"),)))

    class Bogus:
        pass

    assert reduce(state, Bogus()) is state
    assert reduce(state, {"type": "ADD_TRACKS"}) is state


def test_progress_is_monotonic_and_clamped():
    state = _scanning()
    state = reduce(state, a.ScanTotalRevised(3))
    state = reduce(state, a.ScanProgressed(2))
    state = reduce(state, a.ScanProgressed(1))
    assert state.session.scan_progress == 2

    state = reduce(state, a.ScanProgressed(10))
    assert state.session.scan_progress == 3

    # The total never shrinks either
    state = reduce(state, a.ScanTotalRevised(1))
    assert state.session.scan_total == 3


def test_scan_started_is_noop_while_scanning():
    state = reduce(_scanning(), a.ScanTotalRevised(5))
    assert reduce(state, a.ScanStarted()) is state


def test_scan_started_resets_counters_but_keeps_last_scan_date():
    state = _scanning()
    state = reduce(state, a.ScanTotalRevised(4))
    state = reduce(state, a.ScanProgressed(4))
    state = reduce(state, a.ScanCompleted(finished_at="2024-05-01T00:00:00+00:00"))
    assert state.session.phase is ScanPhase.IDLE

    state = _scanning(state)
    assert state.session.scan_progress == 0
    assert state.session.scan_total == 0
    assert state.session.last_scan_date == "2024-05-01T00:00:00+00:00"


def test_scan_failed_and_cancelled_leave_scanning():
    failed = reduce(_scanning(), a.ScanFailed(kind="no_audio_files_found", message="nothing"))
    assert failed.session.phase is ScanPhase.FAILED
    assert not failed.session.is_scanning
    assert failed.session.error == "nothing"

    cancelled = reduce(_scanning(), a.ScanCancelled())
    assert cancelled.session.phase is ScanPhase.IDLE
    assert cancelled.session.error == "Scan cancelled."
    assert cancelled.session.last_scan_date is None


def test_completed_with_warning_surfaces_it():
    state = reduce(_scanning(), a.ScanCompleted(finished_at="2024-01-01", warning="1 file(s) skipped"))
    assert state.session.error == "1 file(s) skipped"
    assert state.session.error_kind == "warning"


def test_progress_ignored_when_not_scanning():
    state = LibraryState()
    assert reduce(state, a.ScanProgressed(3)) is state
    assert reduce(state, a.ScanCurrentFile("a.mp3")) is state


def test_increment_play_count():
    state = reduce(LibraryState(), a.AddTracks((_track("t1"), _track("t2"))))
    state = reduce(state, a.IncrementPlayCount("t1", "2024-02-02T10:00:00+00:00"))
    state = reduce(state, a.IncrementPlayCount("t1", "2024-02-03T10:00:00+00:00"))

    t1, t2 = state.tracks
    assert t1.play_count == 2
    assert t1.last_played == "2024-02-03T10:00:00+00:00"
    assert t2.play_count == 0


def test_update_track_ignores_unknown_fields_and_id():
    state = reduce(LibraryState(), a.AddTracks((_track("t1"),)))
    state = reduce(state, a.UpdateTrack("t1", {"title": "New", "id": "hijack", "bogus": 1}))
    assert state.tracks[0].id == "t1"
    assert state.tracks[0].title == "New"


def test_reset_library_keeps_folders():
    state = LibraryState(
        tracks=(_track("t1"),),
        albums=(Album(id="album-x", key="x", title="X", track_ids=("t1",)),),
        playlists=(Playlist(id="p1", name="Mix"),),
        folders=(Folder(path="/music", name="music"),),
        is_initialized=True,
    )
    state = reduce(state, a.ResetLibrary())
    assert state.tracks == () and state.albums == () and state.playlists == ()
    assert len(state.folders) == 1
    assert state.is_initialized


def test_playlist_actions():
    state = reduce(LibraryState(), a.AddPlaylist(Playlist(id="p1", name="Mix")))
    state = reduce(state, a.UpdatePlaylist(replace(state.playlists[0], track_ids=("t1",))))
    assert state.playlists[0].track_ids == ("t1",)
    state = reduce(state, a.RemovePlaylists(("p1",)))
    assert state.playlists == ()


@pytest.mark.parametrize("action", [a.SetError("boom"), a.ClearError()])
def test_error_actions(action):
    state = reduce(LibraryState(error="old"), action)
    assert state.error == ("boom" if isinstance(action, a.SetError) else None)
