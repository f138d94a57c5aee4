"""
Trigger — Normalize a branch event into (kind, branch, base, repository).

In GitHub Actions the event comes from the runner environment:

    GITHUB_EVENT_NAME        create | delete | workflow_dispatch | ...
    GITHUB_REF               refs/heads/<branch> (not set for deletions)
    GITHUB_EVENT_PATH        JSON payload (ref, ref_type, base_ref)
    GITHUB_REPOSITORY        <owner>/<name>
    GITHUB_REPOSITORY_OWNER  <owner>

A manual run (workflow_dispatch) is a creation of the checked-out branch.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidTrigger
from .resolver import EVENT_CREATE, EVENT_DELETE, strip_heads

logger = logging.getLogger(__name__)

EVENT_MANUAL = "workflow_dispatch"


@dataclass
class TriggerEvent:
    """One branch lifecycle event, as handed to the mirror manager."""

    kind: str
    branch: str
    repo_name: str
    repo_owner: str
    explicit_base: Optional[str] = None
    manual: bool = False
    ref_type: str = "branch"

    def __post_init__(self) -> None:
        if self.kind not in (EVENT_CREATE, EVENT_DELETE):
            raise InvalidTrigger(f"Unsupported event kind '{self.kind}'", {"kind": self.kind})
        if not self.branch:
            raise InvalidTrigger("Event carries no branch name")
        if not self.repo_name or not self.repo_owner:
            raise InvalidTrigger(
                "Source repository name and owner are required",
                {"repo_name": self.repo_name, "repo_owner": self.repo_owner},
            )
        if self.explicit_base is not None:
            self.explicit_base = strip_heads(self.explicit_base) or None

    @property
    def is_branch_event(self) -> bool:
        return self.ref_type == "branch"

    @classmethod
    def from_github_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TriggerEvent":
        """Build the event from a GitHub Actions runner environment."""
        env = os.environ if environ is None else environ

        event_name = env.get("GITHUB_EVENT_NAME", "")
        payload = _load_payload(env.get("GITHUB_EVENT_PATH"))

        repository = env.get("GITHUB_REPOSITORY", "")
        owner = env.get("GITHUB_REPOSITORY_OWNER") or repository.split("/", 1)[0]
        repo_name = repository.rsplit("/", 1)[-1]

        manual = event_name == EVENT_MANUAL
        if manual:
            kind = EVENT_CREATE
        elif event_name in (EVENT_CREATE, EVENT_DELETE):
            kind = event_name
        else:
            raise InvalidTrigger(
                f"Unsupported GitHub event '{event_name}'",
                {"event": event_name},
            )

        if kind == EVENT_DELETE:
            branch = strip_heads(payload.get("ref"))
        else:
            branch = strip_heads(env.get("GITHUB_REF"))

        base = payload.get("base_ref")

        logger.debug(f"[mirror-trigger] event={event_name} branch={branch} repo={repository}")

        return cls(
            kind=kind,
            branch=branch,
            repo_name=repo_name,
            repo_owner=owner,
            explicit_base=base if isinstance(base, str) else None,
            manual=manual,
            ref_type=payload.get("ref_type") or "branch",
        )


def _load_payload(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    event_path = Path(path)
    if not event_path.exists():
        logger.warning(f"[mirror-trigger] Event payload {event_path} not found")
        return {}
    try:
        with open(event_path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise InvalidTrigger(f"Cannot read event payload {event_path}: {e}") from e
    return data if isinstance(data, dict) else {}
