"""
Parent Resolver — Decide which mirrored branch a new branch was forked from.

The Azure branch for a new source branch must be created from the Azure
copy of its parent. The parent is taken, in order, from:

1. nothing at all, for deletions and for the root branch;
2. an explicit base supplied by the trigger (pull request base_ref);
3. the mirror tags: among branches that have been mirrored, one whose
   tag records exactly the new branch's head (it was just forked there),
   otherwise one whose tag records a strict ancestor of that head.

Within a group the root branch wins, otherwise the lexically first name.
No match is a hard stop (ParentNotFound); there is no arbitrary default.

``select_parent`` is pure and works on an explicit candidate list.
``ParentResolver`` gathers the candidates from a clone and its ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .errors import ParentNotFound
from .git_refs import LocalRefGraph
from .ledger import MirrorLedger

logger = logging.getLogger(__name__)

EVENT_CREATE = "create"
EVENT_DELETE = "delete"

# Candidate verdicts
VERDICT_SAME_COMMIT = "same-commit"
VERDICT_ANCESTOR = "ancestor"
VERDICT_NOT_ANCESTOR = "not-ancestor"
VERDICT_BRANCH_MISSING = "branch-missing"
VERDICT_SELF = "self"

# Where a resolution came from
SOURCE_DELETE = "delete"
SOURCE_ROOT = "root"
SOURCE_EXPLICIT = "explicit-base"
SOURCE_SAME_COMMIT = "same-commit"
SOURCE_ANCESTOR = "ancestor"
SOURCE_ROOT_FALLBACK = "root-fallback"

_VERDICT_REASONS = {
    VERDICT_SAME_COMMIT: "tag records the same commit",
    VERDICT_ANCESTOR: "tag records an ancestor commit",
    VERDICT_NOT_ANCESTOR: "tag commit is not an ancestor of the branch head",
    VERDICT_BRANCH_MISSING: "tagged but the branch no longer exists",
    VERDICT_SELF: "is the branch being resolved",
}


@dataclass(frozen=True)
class Candidate:
    """A mirrored branch and the commit its mirror tag records."""

    branch: str
    commit: str


@dataclass
class CandidateVerdict:
    branch: str
    commit: Optional[str]
    verdict: str

    @property
    def reason(self) -> str:
        return _VERDICT_REASONS.get(self.verdict, self.verdict)

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "commit": self.commit,
            "verdict": self.verdict,
            "reason": self.reason,
        }


@dataclass
class Resolution:
    """Outcome of parent resolution. ``parent`` is None when none is needed."""

    parent: Optional[str]
    source: str
    considered: List[CandidateVerdict] = field(default_factory=list)

    @property
    def needs_parent(self) -> bool:
        return self.parent is not None


def strip_heads(ref: Optional[str]) -> str:
    """Branch name from ``refs/heads/<name>`` or a bare name."""
    ref = (ref or "").strip()
    if ref.startswith("refs/heads/"):
        return ref[len("refs/heads/"):]
    return ref


def _pick(group: List[Candidate], root_branch: str) -> Candidate:
    for candidate in group:
        if candidate.branch == root_branch:
            return candidate
    return group[0]


def describe_candidates(considered: Iterable[CandidateVerdict]) -> str:
    """One line per candidate, for operator diagnostics."""
    lines = []
    for v in considered:
        commit = v.commit[:12] if v.commit else "-"
        lines.append(f"  {v.branch} ({commit}): {v.reason}")
    return "\n".join(lines) if lines else "  (no mirrored branches)"


def select_parent(
    branch: str,
    current: str,
    candidates: Iterable[Candidate],
    is_ancestor: Callable[[str, str], bool],
    root_branch: str = "main",
    root_available: bool = False,
    considered: Optional[List[CandidateVerdict]] = None,
) -> Resolution:
    """
    Pick the parent of ``branch`` whose head is ``current``.

    ``candidates`` are the mirrored branches; their order is irrelevant,
    they are visited by name. ``root_available`` is only consulted when
    there are no candidates at all, for the very first mirrored branch.
    Raises ParentNotFound naming every candidate and its verdict.
    """
    verdicts: List[CandidateVerdict] = list(considered or [])
    pool = []
    for candidate in sorted(candidates, key=lambda c: c.branch):
        if candidate.branch == branch:
            verdicts.append(CandidateVerdict(candidate.branch, candidate.commit, VERDICT_SELF))
            continue
        pool.append(candidate)

    if not pool:
        if root_available:
            logger.warning(
                f"[mirror-resolve] No mirrored branches found, using '{root_branch}' as fallback parent"
            )
            return Resolution(root_branch, SOURCE_ROOT_FALLBACK, verdicts)
        raise ParentNotFound(
            f"No mirrored branches found and '{root_branch}' does not exist. "
            f"Cannot determine the parent of '{branch}'. Candidates considered:\n"
            f"{describe_candidates(verdicts)}",
            {"branch": branch, "candidates": [v.to_dict() for v in verdicts]},
        )

    same_commit: List[Candidate] = []
    ancestors: List[Candidate] = []
    for candidate in pool:
        if candidate.commit == current:
            same_commit.append(candidate)
            verdict = VERDICT_SAME_COMMIT
        elif is_ancestor(candidate.commit, current):
            ancestors.append(candidate)
            verdict = VERDICT_ANCESTOR
        else:
            verdict = VERDICT_NOT_ANCESTOR
        verdicts.append(CandidateVerdict(candidate.branch, candidate.commit, verdict))
        logger.debug(f"[mirror-resolve] {candidate.branch}: {_VERDICT_REASONS[verdict]}")

    if same_commit:
        chosen = _pick(same_commit, root_branch)
        return Resolution(chosen.branch, SOURCE_SAME_COMMIT, verdicts)
    if ancestors:
        chosen = _pick(ancestors, root_branch)
        return Resolution(chosen.branch, SOURCE_ANCESTOR, verdicts)

    raise ParentNotFound(
        f"No suitable parent for '{branch}' among mirrored branches:\n"
        f"{describe_candidates(verdicts)}",
        {"branch": branch, "candidates": [v.to_dict() for v in verdicts]},
    )


class ParentResolver:
    """Resolve parents against a local clone and its mirror ledger."""

    def __init__(self, graph: LocalRefGraph, ledger: MirrorLedger, root_branch: str = "main"):
        self.graph = graph
        self.ledger = ledger
        self.root_branch = root_branch

    def resolve(
        self,
        branch: str,
        event_kind: str,
        explicit_base: Optional[str] = None,
        current: Optional[str] = None,
    ) -> Resolution:
        if event_kind == EVENT_DELETE:
            logger.info("[mirror-resolve] Delete event, skipping parent detection")
            return Resolution(None, SOURCE_DELETE)

        if branch == self.root_branch:
            logger.info(f"[mirror-resolve] Branch is '{self.root_branch}', skipping parent detection")
            return Resolution(None, SOURCE_ROOT)

        if explicit_base and strip_heads(explicit_base):
            base = strip_heads(explicit_base)
            logger.info(f"[mirror-resolve] Using parent from explicit base: {base}")
            return Resolution(base, SOURCE_EXPLICIT)

        if current is None:
            current = self.graph.head_commit(branch)
        if current is None:
            raise ParentNotFound(
                f"Cannot read the head commit of '{branch}'",
                {"branch": branch, "candidates": []},
            )

        existing = set(self.graph.branches())
        candidates = []
        missing = []
        for name, commit in sorted(self.ledger.entries().items()):
            if name in existing:
                candidates.append(Candidate(name, commit))
            else:
                missing.append(CandidateVerdict(name, commit, VERDICT_BRANCH_MISSING))

        root_available = False
        if not [c for c in candidates if c.branch != branch]:
            root_available = self.graph.branch_exists(self.root_branch)

        resolution = select_parent(
            branch,
            current,
            candidates,
            self.graph.is_ancestor,
            root_branch=self.root_branch,
            root_available=root_available,
            considered=missing,
        )
        logger.info(
            f"[mirror-resolve] Parent of '{branch}' is '{resolution.parent}' ({resolution.source})"
        )
        return resolution
