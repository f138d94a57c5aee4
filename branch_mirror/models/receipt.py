"""
Receipt Model — Terminal outcome of one branch event.

Every event produces exactly one receipt: ok, skipped or failed. A failed
receipt carries the failure kind so callers can map it to an exit code.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from ..mirror.errors import EXIT_CODES, MirrorError


class ErrorDetails(BaseModel):
    """Details about a failed event."""

    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class SyncReceipt(BaseModel):
    """Result of processing one branch event."""

    status: Literal["ok", "skipped", "failed"]
    event: str
    branch: str
    flow_state: str
    remote_ref: Optional[str] = None
    parent: Optional[str] = None
    commit: Optional[str] = None
    detail: Optional[str] = None
    ts_iso: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    error: Optional[ErrorDetails] = None

    @classmethod
    def ok(
        cls,
        event: str,
        branch: str,
        flow_state: str,
        **fields: Any,
    ) -> "SyncReceipt":
        """Create a successful receipt."""
        return cls(status="ok", event=event, branch=branch, flow_state=flow_state, **fields)

    @classmethod
    def skipped(
        cls,
        event: str,
        branch: str,
        flow_state: str,
        reason: str,
        **fields: Any,
    ) -> "SyncReceipt":
        """Create a skipped receipt (nothing to do, not an error)."""
        return cls(
            status="skipped",
            event=event,
            branch=branch,
            flow_state=flow_state,
            detail=reason,
            **fields,
        )

    @classmethod
    def failed(
        cls,
        event: str,
        branch: str,
        flow_state: str,
        error: MirrorError,
        **fields: Any,
    ) -> "SyncReceipt":
        """Create a failed receipt from a mirror error."""
        return cls(
            status="failed",
            event=event,
            branch=branch,
            flow_state=flow_state,
            error=ErrorDetails(kind=error.kind, message=error.message, details=error.details),
            **fields,
        )

    @property
    def exit_code(self) -> int:
        if self.status != "failed" or self.error is None:
            return 0
        return EXIT_CODES.get(self.error.kind, 1)
