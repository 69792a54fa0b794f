"""Re-verification of folder capabilities restored after a restart."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .capability import GRANTED
from .errors import CapabilityLost, PermissionDenied
from .logging import log_event
from .models import Folder

VERIFIED = "verified"
DENIED = "denied"
LOST = "capability_lost"
SKIPPED = "skipped"


@dataclass(frozen=True)
class VerificationResult:
    outcome: str
    folder: Folder
    error: Optional[PermissionDenied] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (VERIFIED, SKIPPED)


class PermissionVerifier:
    """Confirms or re-requests access on a folder's capability.

    Must be driven from a user action: a request made outside
    `capability.user_gesture()` is refused by the host and reported here as a
    denial. Verification runs once per folder per restart; the flag
    `needs_permission_verification` is cleared whatever the outcome.
    """

    async def verify(self, folder: Folder) -> VerificationResult:
        if not folder.needs_permission_verification:
            return VerificationResult(SKIPPED, folder)

        capability = folder.capability
        if capability is None:
            err = CapabilityLost("no stored capability for folder", path=folder.path)
            log_event("capability_lost", level="WARNING", msg=str(err), path=folder.path)
            return VerificationResult(LOST, self._mark(folder, False), err)

        try:
            state = await capability.query_permission()
            if state != GRANTED:
                state = await capability.request_permission()
        except Exception as e:
            # Whatever the host raises, the folder alone is affected: treat it as lost
            err = CapabilityLost(f"capability unusable: {e}", path=folder.path)
            log_event("capability_lost", level="WARNING", msg=str(err), path=folder.path)
            return VerificationResult(LOST, self._mark(folder, False), err)

        if state == GRANTED:
            log_event("permission_verified", path=folder.path)
            return VerificationResult(VERIFIED, self._mark(folder, True))

        err = PermissionDenied(f"access not granted ({state})", path=folder.path)
        log_event("permission_denied", level="WARNING", msg=str(err), path=folder.path, state=state)
        return VerificationResult(DENIED, self._mark(folder, False), err)

    @staticmethod
    def _mark(folder: Folder, valid: bool) -> Folder:
        return replace(folder, has_valid_capability=valid, needs_permission_verification=False)
