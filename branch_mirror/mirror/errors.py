"""
Mirror Errors — Failure kinds for a single branch event.

Every failure is terminal for the event being processed. Nothing here is
retried internally; re-running the whole event is the retry.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

# Exit code per failure kind (0 is success or skip, 1 is configuration)
EXIT_CODES: Dict[str, int] = {
    "InvalidTrigger": 2,
    "AlreadyExists": 3,
    "ParentNotFound": 4,
    "ParentMissingRemotely": 5,
    "ApiFailure": 6,
    "DeletionNotPersisted": 7,
    "LedgerWriteFailed": 8,
    "GitFailure": 9,
}


class MirrorError(Exception):
    """Base class for every failure the mirror reports."""

    kind = "MirrorError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def exit_code(self) -> int:
        return EXIT_CODES.get(self.kind, 1)


class InvalidTrigger(MirrorError):
    kind = "InvalidTrigger"


class AlreadyExists(MirrorError):
    kind = "AlreadyExists"


class ParentNotFound(MirrorError):
    kind = "ParentNotFound"


class ParentMissingRemotely(MirrorError):
    kind = "ParentMissingRemotely"


class ApiFailure(MirrorError):
    """Non-2xx answer, rejected ref update, or transport error."""

    kind = "ApiFailure"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        if body is not None:
            details["body"] = body
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body


class DeletionNotPersisted(MirrorError):
    kind = "DeletionNotPersisted"


class LedgerWriteFailed(MirrorError):
    kind = "LedgerWriteFailed"


class GitCommandError(MirrorError):
    """A local git command exited non-zero."""

    kind = "GitFailure"

    def __init__(self, git_args: tuple, returncode: int, stderr: str):
        command = "git " + " ".join(git_args)
        super().__init__(
            f"{command} failed ({returncode}): {stderr.strip()}",
            {"command": command, "returncode": returncode},
        )
        self.returncode = returncode
        self.stderr = stderr
