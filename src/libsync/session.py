"""Scan session orchestration: verify -> traverse -> extract -> import.

A session moves the store through Idle -> Scanning -> (Idle | Failed). The
runner is the only code that starts sessions, and it refuses a second one
while the first is still scanning.
"""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, List, Optional

from loguru import logger

from . import actions as a
from .errors import FileReadError, NoAudioFilesFound, NoFoldersProcessable, ScanCancelledError
from .logging import bind_run, log_event, shorten
from .models import DiscoveredFile, Folder, ScanProgress, Track, now_iso
from .scanner import filter_audio_files

if TYPE_CHECKING:  # pragma: no cover
    from .store import LibraryStore


class ScanSessionRunner:
    def __init__(self, store: "LibraryStore") -> None:
        self.store = store
        self._stop: Optional[asyncio.Event] = None

    @property
    def active(self) -> bool:
        return self.store.state.session.is_scanning

    def cancel(self) -> bool:
        """Request cancellation of the running scan, if configured to allow it."""
        if not self.store.settings.allow_scan_cancel:
            log_event("scan_cancel_refused", level="WARNING", msg="Scan cancellation is disabled")
            return False
        if not self.active or self._stop is None:
            return False
        self._stop.set()
        log_event("scan_cancel_requested")
        return True

    async def run(self) -> bool:
        """Run one session. Returns True only if it completed and imported."""
        store = self.store
        if self.active:
            logger.info("Scan already in progress; new scan request rejected")
            return False

        # No await between the check above and this dispatch
        store.dispatch(a.ScanStarted())
        run_id = bind_run()
        stop = self._stop = asyncio.Event()
        tasks: List[asyncio.Task] = []
        logger.info(f"Scan started (run {run_id}) over {len(store.state.folders)} folder(s)")
        try:
            return await self._run(tasks, stop)
        except asyncio.CancelledError:
            await self._drain(tasks)
            store.dispatch(a.ScanCancelled())
            raise
        except Exception as e:  # last resort: a scan must never leave the store stuck in Scanning
            await self._drain(tasks)
            logger.exception("Scan aborted by an unexpected error")
            store.dispatch(a.ScanFailed(kind="scan_error", message=f"Scan failed: {shorten(str(e))}"))
            return False
        finally:
            self._stop = None

    async def _drain(self, tasks: List[asyncio.Task]) -> None:
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, tasks: List[asyncio.Task], stop: asyncio.Event) -> bool:
        store = self.store
        discovered = 0
        completed = 0
        processable = 0
        warnings: List[str] = []

        async def extract(file: DiscoveredFile, folder_path: str) -> Optional[Track]:
            nonlocal completed
            track = await store.importer.extract_track(file, folder_path)
            completed += 1
            store.dispatch(a.ScanProgressed(completed))
            return track

        def on_found(file: DiscoveredFile, folder_path: str) -> None:
            nonlocal discovered
            discovered += 1
            # The total grows as files are discovered; extraction starts right away
            store.dispatch(a.ScanTotalRevised(discovered))
            tasks.append(asyncio.create_task(extract(file, folder_path)))

        def on_progress(progress: ScanProgress) -> None:
            store.dispatch(a.ScanCurrentFile(progress.current_file))

        for listed in list(store.state.folders):
            if stop.is_set():
                break
            folder: Folder = store.state.folder(listed.path) or listed

            if folder.needs_permission_verification:
                result = await store.verifier.verify(folder)
                folder = result.folder
                store.dispatch(a.UpdateFolder(folder))
                if result.error is not None:
                    warnings.append(f"{folder.name}: {result.error}")

            if folder.capability is not None and folder.has_valid_capability:
                found_before = discovered
                try:
                    await store.scanner.scan(
                        folder.capability,
                        on_file_found=lambda f, p=folder.path: on_found(f, p),
                        on_progress=on_progress,
                        stop_event=stop,
                    )
                except FileReadError as e:
                    log_event("folder_unreadable", level="WARNING", msg=str(e), path=folder.path)
                    warnings.append(f"{folder.name}: {e}")
                    # Files listed before the root failed are already queued and are kept
                    if discovered == found_before:
                        continue
                processable += 1
            elif folder.is_legacy:
                for f in filter_audio_files(folder.files or ()):
                    store.dispatch(a.ScanCurrentFile(f.path))
                    on_found(f, folder.path)
                processable += 1
            else:
                log_event("folder_skipped", level="WARNING", msg="no valid capability", path=folder.path)
                warnings.append(f"{folder.name}: access needs to be granted again")

        if stop.is_set():
            await self._drain(tasks)
            store.dispatch(a.ScanCancelled())
            log_event("scan_cancelled", discovered=discovered, msg=ScanCancelledError.user_message)
            return False

        if processable == 0:
            await self._drain(tasks)
            return self._fail(NoFoldersProcessable(f"{len(store.state.folders)} folder(s), none readable"))
        if discovered == 0:
            return self._fail(NoAudioFilesFound("no supported audio files"))

        results = await asyncio.gather(*tasks)
        tracks = [t for t in results if t is not None]
        skipped = discovered - len(tracks)
        if skipped:
            warnings.append(f"{skipped} file(s) could not be read and were skipped")

        await store.importer.submit(tracks, into=store, save=False)
        warning = "; ".join(warnings) if warnings else None
        store.dispatch(a.ScanCompleted(finished_at=now_iso(), warning=warning))
        await store.commit()

        log_event(
            "scan_completed",
            msg=f"Scan complete: {len(tracks)} track(s) from {processable} folder(s)",
            discovered=discovered,
            imported=len(tracks),
            skipped=skipped,
            warnings=len(warnings),
        )
        return True

    def _fail(self, err) -> bool:
        log_event("scan_failed", level="ERROR", msg=str(err), kind=err.kind)
        self.store.dispatch(a.ScanFailed(kind=err.kind, message=err.user_message or str(err)))
        return False
