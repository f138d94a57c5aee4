"""
Git Refs — Read-only view over the source repository's refs.

Branches are read from the remote-tracking refs of the source remote,
since the CI checkout only carries local branches for what it checked out.
The only writes this module performs are on behalf of the mirror ledger.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from .errors import GitCommandError

logger = logging.getLogger(__name__)


def _git(repo: Path, *args: str, timeout: int = 60) -> subprocess.CompletedProcess:
    """Run a git command in the repo directory."""
    cmd = ["git"] + list(args)
    return subprocess.run(
        cmd,
        cwd=str(repo),
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _git_output(repo: Path, *args: str) -> str | None:
    """Run a git command and return stripped stdout, or None on failure."""
    result = _git(repo, *args)
    if result.returncode != 0:
        return None
    return result.stdout.strip()


class LocalRefGraph:
    """Branches, tags and commit ancestry of a local clone."""

    def __init__(self, repo: Path, remote: str = "origin"):
        self.repo = Path(repo)
        self.remote = remote

    def run(self, *args: str, timeout: int = 60) -> str:
        """Run git and return stdout, raising GitCommandError on failure."""
        result = _git(self.repo, *args, timeout=timeout)
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout.strip()

    def refresh(self) -> None:
        """Fetch all branches (pruning deleted ones) and all tags."""
        logger.info(f"[mirror-git] Fetching branches and tags from {self.remote}")
        self.run("fetch", "--all", "--prune", timeout=120)
        self.run("fetch", "--tags", self.remote, timeout=120)

    def branches(self) -> List[str]:
        """Branch names on the source remote, in lexical order."""
        output = self.run(
            "for-each-ref",
            "--format=%(refname)",
            f"refs/remotes/{self.remote}/",
        )
        prefix = f"refs/remotes/{self.remote}/"
        names = []
        for line in output.splitlines():
            line = line.strip()
            if not line.startswith(prefix):
                continue
            name = line[len(prefix):]
            if name == "HEAD":
                continue
            names.append(name)
        return sorted(names)

    def branch_exists(self, branch: str) -> bool:
        return self._verify(f"refs/remotes/{self.remote}/{branch}") is not None

    def head_commit(self, branch: str) -> Optional[str]:
        """
        Commit at the head of ``branch``.

        Looks at the remote-tracking ref first, then a local branch of the
        same name, then HEAD when ``branch`` is what is checked out.
        """
        for ref in (f"refs/remotes/{self.remote}/{branch}", f"refs/heads/{branch}"):
            commit = self._verify(ref)
            if commit:
                return commit

        current = _git_output(self.repo, "symbolic-ref", "--quiet", "--short", "HEAD")
        if current == branch:
            return self._verify("HEAD")
        return None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if ``ancestor`` is reachable from ``descendant``."""
        result = _git(self.repo, "merge-base", "--is-ancestor", ancestor, descendant)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise GitCommandError(
            ("merge-base", "--is-ancestor", ancestor, descendant),
            result.returncode,
            result.stderr,
        )

    def _verify(self, ref: str) -> Optional[str]:
        return _git_output(self.repo, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
