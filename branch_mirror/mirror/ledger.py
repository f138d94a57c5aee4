"""
Mirror Ledger — Tags recording which branches have been mirrored.

One lightweight tag per branch, "<prefix><branch>", pointing at the
branch head at the moment the Azure branch was created. Tags live in the
source repository and are pushed to its remote so every run sees the
same ledger.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .errors import GitCommandError, LedgerWriteFailed
from .git_refs import LocalRefGraph

logger = logging.getLogger(__name__)


class MirrorLedger:
    """Read and update the mirror tags of a local clone."""

    def __init__(self, graph: LocalRefGraph, prefix: str = "azure-mirror/"):
        self.graph = graph
        self.prefix = prefix

    def tag_name(self, branch: str) -> str:
        return f"{self.prefix}{branch}"

    def entries(self) -> Dict[str, str]:
        """Map of mirrored branch name to the commit its tag records."""
        output = self.graph.run(
            "for-each-ref",
            "--format=%(refname) %(objectname) %(*objectname)",
            f"refs/tags/{self.prefix}",
        )
        tag_root = f"refs/tags/{self.prefix}"
        entries: Dict[str, str] = {}
        for line in output.splitlines():
            parts = line.split()
            if len(parts) < 2 or not parts[0].startswith(tag_root):
                continue
            branch = parts[0][len(tag_root):]
            # Annotated tags carry the peeled commit in the third column
            entries[branch] = parts[2] if len(parts) > 2 else parts[1]
        return entries

    def get(self, branch: str) -> Optional[str]:
        return self.entries().get(branch)

    def has(self, branch: str) -> bool:
        return self.get(branch) is not None

    def record(self, branch: str, commit: str) -> None:
        """
        Tag ``commit`` as the mirror point of ``branch`` and push the tag.

        An existing tag is never moved. If it already records ``commit``
        the push is retried, otherwise LedgerWriteFailed is raised.
        """
        tag = self.tag_name(branch)
        existing = self.get(branch)

        if existing is not None and existing != commit:
            raise LedgerWriteFailed(
                f"Tag '{tag}' already records {existing[:12]}, refusing to move it to {commit[:12]}",
                {"tag": tag, "existing": existing, "commit": commit},
            )

        try:
            if existing is None:
                self.graph.run("tag", tag, commit)
            self.graph.run("push", self.graph.remote, f"refs/tags/{tag}")
        except GitCommandError as e:
            raise LedgerWriteFailed(
                f"Failed to record mirror tag '{tag}': {e.message}",
                {"tag": tag, "commit": commit},
            ) from e

        logger.info(f"[mirror-ledger] Tagged '{branch}' as mirrored with '{tag}' at {commit[:12]}")

    def remove(self, branch: str) -> bool:
        """
        Delete the mirror tag of ``branch`` locally and on the remote.

        Returns False if there was no tag. A rejected remote deletion is
        logged and does not raise: the local ledger is cleared regardless.
        """
        tag = self.tag_name(branch)
        if not self.has(branch):
            logger.info(f"[mirror-ledger] Tag '{tag}' does not exist, nothing to remove")
            return False

        self.graph.run("tag", "-d", tag)
        try:
            self.graph.run("push", self.graph.remote, f":refs/tags/{tag}")
        except GitCommandError as e:
            logger.warning(f"[mirror-ledger] Removed '{tag}' locally but remote deletion failed: {e.message}")
        else:
            logger.info(f"[mirror-ledger] Removed mirror tag '{tag}'")
        return True
