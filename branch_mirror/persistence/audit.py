"""
Audit Ledger — Append-only NDJSON log of processed branch events.

Each line is one JSON object (newline-delimited JSON).
Events are never edited, only appended.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4


class AuditWriter:
    """
    Append-only NDJSON audit ledger writer.

    Usage:
        audit = AuditWriter(Path("audit/mirror.ndjson"))
        run_id = audit.new_run_id()
        audit.emit("sync_start", run_id=run_id, branch="feature/x", event="create")
    """

    def __init__(self, path: Path):
        """Initialize the audit writer."""
        self.path = path
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        """Ensure the audit file and directory exist."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    @staticmethod
    def new_run_id() -> str:
        return f"R-{uuid4().hex[:8].upper()}"

    def emit(
        self,
        event_type: str,
        run_id: str,
        branch: str,
        event: str,
        level: str = "info",
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Emit an audit event.

        Args:
            event_type: Type of audit event (sync_start, sync_end)
            run_id: Identifier shared by all audit events of one run
            branch: Source branch the event is about
            event: Branch event kind (create, delete)
            level: Log level (info, warning, error)
            details: Additional event details

        Returns:
            Generated event_id
        """
        event_id = f"E-{uuid4().hex[:8].upper()}"
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        entry: Dict[str, Any] = {
            "ts_iso": now,
            "event_id": event_id,
            "run_id": run_id,
            "level": level,
            "type": event_type,
            "branch": branch,
            "event": event,
        }
        if details is not None:
            entry["details"] = details

        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

        return event_id
