from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional

from loguru import logger

from .capability import LocalFolderCapability, user_gesture
from .config import LibSettings, cli_overrides_from_args
from .formats import mime_type_for
from .logging import configure
from .models import DiscoveredFile, Folder, Track
from .store import LibraryStore

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SCAN_FAILED = 2

# Prefer line-buffered output so listings appear promptly under wrappers
try:
    sys.stdout.reconfigure(line_buffering=True)
except (AttributeError, ValueError):
    pass


def _folder_path(raw: str) -> Path:
    return Path(raw).expanduser().resolve()


def enumerate_files(root: Path) -> List[DiscoveredFile]:
    """Pre-list every file below `root` for a folder added without a capability."""
    out: List[DiscoveredFile] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir
        for name in sorted(filenames):
            full = Path(dirpath) / name
            try:
                st = full.stat()
            except OSError as e:
                logger.warning(f"Skipping unreadable file {full}: {e}")
                continue
            out.append(
                DiscoveredFile(
                    name=name,
                    path=f"{rel_dir}/{name}" if rel_dir else name,
                    directory=rel_dir,
                    size=st.st_size,
                    last_modified=st.st_mtime,
                    mime_type=mime_type_for(name),
                    local_path=str(full),
                )
            )
    return out


def _fmt_duration(seconds: Optional[float]) -> str:
    if not seconds:
        return "--:--"
    m, s = divmod(int(seconds), 60)
    return f"{m}:{s:02d}"


def _print_tracks(tracks: Iterable[Track]) -> None:
    for t in tracks:
        print(f"{t.id}\t{t.artist or '-'}\t{t.album or '-'}\t{t.title}\t{_fmt_duration(t.duration)}\t{t.play_count}")


async def cmd_add(store: LibraryStore, path: str, legacy: bool) -> int:
    root = _folder_path(path)
    if legacy:
        if not root.is_dir():
            logger.error(f"Not a directory: {root}")
            return EXIT_FAILED
        files = await asyncio.to_thread(enumerate_files, root)
        folder = Folder(path=str(root), name=root.name or str(root), files=tuple(files))
    else:
        capability = await LocalFolderCapability.open(root)
        if capability is None:
            logger.error(f"Access to {root} was not granted")
            return EXIT_FAILED
        folder = Folder(path=str(root), name=capability.name, capability=capability)
    if not await store.add_folder(folder):
        print(f"Already in library: {root}")
        return EXIT_OK
    print(f"Added {root}")
    return EXIT_OK


async def cmd_remove(store: LibraryStore, path: str) -> int:
    root = str(_folder_path(path))
    if not await store.remove_folder(root):
        logger.error(f"Folder not in library: {root}")
        return EXIT_FAILED
    print(f"Removed {root}")
    return EXIT_OK


def cmd_folders(store: LibraryStore) -> int:
    for f in store.state.folders:
        if f.is_legacy:
            status = f"legacy ({len(f.files or ())} files)"
        elif f.needs_permission_verification:
            status = "needs verification"
        else:
            status = "ok" if f.has_valid_capability else "access lost"
        print(f"{f.path}\t{status}")
    return EXIT_OK


async def cmd_scan(store: LibraryStore) -> int:
    def show(state) -> None:
        s = state.session
        if s.is_scanning and s.current_file:
            logger.debug(f"[{s.scan_progress}/{s.scan_total}] {s.current_file}")

    unsubscribe = store.subscribe(show)
    try:
        ok = await store.scan_library()
    finally:
        unsubscribe()
    session = store.state.session
    if session.error:
        # Warnings on a completed scan are reported too
        print(session.error)
    if not ok:
        return EXIT_SCAN_FAILED
    stats = store.get_library_stats()
    print(f"Scan complete: {stats.total_tracks} tracks, {stats.total_albums} albums, {stats.total_artists} artists")
    return EXIT_OK


def cmd_tracks(store: LibraryStore, args: argparse.Namespace) -> int:
    if args.album:
        tracks = store.get_tracks_by_album(args.album)
    elif args.artist:
        tracks = store.get_tracks_by_artist(args.artist)
    elif args.playlist:
        tracks = store.get_tracks_by_playlist(args.playlist)
    elif args.most_played:
        tracks = store.get_most_played(args.limit)
    elif args.recently_added:
        tracks = store.get_recently_added(args.limit)
    elif args.recently_played:
        tracks = store.get_recently_played(args.limit)
    else:
        tracks = list(store.state.tracks)
    _print_tracks(tracks)
    return EXIT_OK


def cmd_search(store: LibraryStore, query: str) -> int:
    res = store.search_library(query)
    _print_tracks(res.tracks)
    for a in res.albums:
        print(f"album\t{a.id}\t{a.title}\t{a.artist or '-'}")
    for a in res.artists:
        print(f"artist\t{a.id}\t{a.name}")
    for p in res.playlists:
        print(f"playlist\t{p.id}\t{p.name}")
    return EXIT_OK


async def cmd_playlist(store: LibraryStore, args: argparse.Namespace) -> int:
    action = args.playlist_cmd
    if action == "create":
        pid = await store.create_playlist(args.name, args.description)
        if pid is None:
            logger.error(store.state.error or "Failed to create playlist")
            return EXIT_FAILED
        print(pid)
        return EXIT_OK
    if action == "add":
        ok = await store.add_to_playlist(args.playlist_id, args.track_ids)
    elif action == "remove":
        ok = await store.remove_from_playlist(args.playlist_id, args.track_ids)
    elif action == "delete":
        ok = await store.delete_playlist(args.playlist_id)
    else:  # show
        if store.state.playlist(args.playlist_id) is None:
            ok = False
        else:
            _print_tracks(store.get_tracks_by_playlist(args.playlist_id))
            return EXIT_OK
    if not ok:
        logger.error(f"Unknown playlist: {args.playlist_id}")
        return EXIT_FAILED
    return EXIT_OK


async def cmd_play(store: LibraryStore, track_id: str) -> int:
    if not await store.record_play(track_id):
        logger.error(f"Unknown track: {track_id}")
        return EXIT_FAILED
    return EXIT_OK


def cmd_stats(store: LibraryStore) -> int:
    s = store.get_library_stats()
    print(f"tracks:    {s.total_tracks}")
    print(f"albums:    {s.total_albums}")
    print(f"artists:   {s.total_artists}")
    print(f"playlists: {s.total_playlists}")
    print(f"folders:   {s.total_folders}")
    print(f"size:      {s.total_size_bytes / (1024 * 1024):.1f} MiB")
    print(f"duration:  {_fmt_duration(s.total_duration_seconds)}")
    if store.state.session.last_scan_date:
        print(f"last scan: {store.state.session.last_scan_date}")
    return EXIT_OK


async def run_command(args: argparse.Namespace, cfg: LibSettings) -> int:
    store = LibraryStore.open(cfg)
    await store.load()

    cmd = args.cmd
    if cmd == "add":
        return await cmd_add(store, args.path, args.legacy)
    if cmd == "remove":
        return await cmd_remove(store, args.path)
    if cmd == "folders":
        return cmd_folders(store)
    if cmd == "scan":
        return await cmd_scan(store)
    if cmd == "tracks":
        return cmd_tracks(store, args)
    if cmd == "albums":
        for a in store.state.albums:
            print(f"{a.id}\t{a.title}\t{a.artist or '-'}\t{a.year or '-'}\t{len(a.track_ids)} tracks")
        return EXIT_OK
    if cmd == "artists":
        for a in store.state.artists:
            print(f"{a.id}\t{a.name}\t{len(a.albums)} albums")
        return EXIT_OK
    if cmd == "search":
        return cmd_search(store, args.query)
    if cmd == "playlist":
        return await cmd_playlist(store, args)
    if cmd == "play":
        return await cmd_play(store, args.track_id)
    if cmd == "stats":
        return cmd_stats(store)
    if cmd == "clear":
        await store.clear_library()
        print("Library cleared")
        return EXIT_OK
    raise ValueError(f"unknown command: {cmd}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="libsync")
    # Config/Logging options (defaults resolved via LibSettings)
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/libsync/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument("--log-level", default=None, help="Console log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--log-json", dest="log_json", default=None, help="Path to write JSON lines log")
    p.add_argument("--db", dest="db_path", default=None, help="Library database file")
    p.add_argument(
        "--cascade-folder-removal",
        dest="cascade_folder_removal",
        action="store_const",
        const=True,
        default=None,
        help="Removing a folder also removes its tracks",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_add = sub.add_parser("add", help="Add a folder to the library")
    p_add.add_argument("path")
    p_add.add_argument(
        "--legacy",
        action="store_true",
        help="Snapshot the folder's file list now instead of keeping a folder capability",
    )
    p_rm = sub.add_parser("remove", help="Remove a folder from the library")
    p_rm.add_argument("path")
    sub.add_parser("folders", help="List library folders and their access status")
    sub.add_parser("scan", help="Scan all folders and import their audio files")

    p_tracks = sub.add_parser("tracks", help="List tracks")
    group = p_tracks.add_mutually_exclusive_group()
    group.add_argument("--album", default=None, help="Album id")
    group.add_argument("--artist", default=None, help="Artist id")
    group.add_argument("--playlist", default=None, help="Playlist id")
    group.add_argument("--most-played", action="store_true")
    group.add_argument("--recently-added", action="store_true")
    group.add_argument("--recently-played", action="store_true")
    p_tracks.add_argument("--limit", type=int, default=None)

    sub.add_parser("albums", help="List albums")
    sub.add_parser("artists", help="List artists")
    p_search = sub.add_parser("search", help="Search tracks, albums, artists and playlists")
    p_search.add_argument("query")

    p_pl = sub.add_parser("playlist", help="Manage playlists")
    pl_sub = p_pl.add_subparsers(dest="playlist_cmd", required=True)
    pl_create = pl_sub.add_parser("create")
    pl_create.add_argument("name")
    pl_create.add_argument("--description", default=None)
    for name in ("add", "remove"):
        sp = pl_sub.add_parser(name)
        sp.add_argument("playlist_id")
        sp.add_argument("track_ids", nargs="+")
    pl_sub.add_parser("delete").add_argument("playlist_id")
    pl_sub.add_parser("show").add_argument("playlist_id")

    p_play = sub.add_parser("play", help="Record a play of a track")
    p_play.add_argument("track_id")
    sub.add_parser("stats", help="Show library statistics")
    sub.add_parser("clear", help="Remove all tracks, albums, artists and playlists")
    sub.add_parser("config", help="Print effective settings as TOML")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    # Load settings: defaults + TOML + env + CLI overrides
    overrides: dict[str, Any] = cli_overrides_from_args(args)
    config_path = Path(args.config_path).expanduser() if args.config_path else None
    cfg = LibSettings.load(config_path=config_path, overrides=overrides)

    if args.write_config:
        written = cfg.write(config_path)
        print(f"Config written to: {written}")
        return EXIT_OK
    if args.cmd == "config":
        print(cfg.to_toml(), end="")
        return EXIT_OK

    configure(cfg.log_level, cfg.log_json)
    # Every command is typed by the user, so it may request folder access
    with user_gesture():
        return asyncio.run(run_command(args, cfg))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
