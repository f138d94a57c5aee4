"""
Shared fixtures for mirror tests.

Provides in-memory stand-ins for the three collaborators of the mirror
manager: the local ref graph, the mirror ledger and the Azure refs API.
The Azure fake enforces the same oldObjectId check the real service does.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

import pytest

from branch_mirror.mirror.azure_refs import ZERO_OBJECT_ID, RemoteRef, full_ref_name
from branch_mirror.mirror.config import MirrorSettings
from branch_mirror.mirror.errors import ApiFailure, LedgerWriteFailed


class FakeRefGraph:
    """Branch heads plus an explicit ancestor relation."""

    def __init__(
        self,
        heads: Optional[Dict[str, str]] = None,
        ancestors: Optional[Dict[str, Iterable[str]]] = None,
        remote: str = "origin",
    ):
        self.heads = dict(heads or {})
        self.ancestors: Dict[str, Set[str]] = {k: set(v) for k, v in (ancestors or {}).items()}
        self.remote = remote
        self.refreshed = False

    def refresh(self) -> None:
        self.refreshed = True

    def branches(self) -> List[str]:
        return sorted(self.heads)

    def branch_exists(self, branch: str) -> bool:
        return branch in self.heads

    def head_commit(self, branch: str) -> Optional[str]:
        return self.heads.get(branch)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return ancestor in self.ancestors.get(descendant, set())


class FakeLedger:
    """Mirror tags kept in a dict."""

    def __init__(self, tags: Optional[Dict[str, str]] = None, fail_record: bool = False):
        self.tags = dict(tags or {})
        self.fail_record = fail_record
        self.recorded: List[tuple] = []
        self.removed: List[str] = []

    def entries(self) -> Dict[str, str]:
        return dict(self.tags)

    def get(self, branch: str) -> Optional[str]:
        return self.tags.get(branch)

    def has(self, branch: str) -> bool:
        return branch in self.tags

    def record(self, branch: str, commit: str) -> None:
        if self.fail_record:
            raise LedgerWriteFailed(f"push of tag for {branch} rejected")
        self.tags[branch] = commit
        self.recorded.append((branch, commit))

    def remove(self, branch: str) -> bool:
        self.removed.append(branch)
        return self.tags.pop(branch, None) is not None


class FakeAzureRefs:
    """In-memory refs endpoint of one Azure repository."""

    def __init__(self, refs: Optional[Dict[str, str]] = None):
        self.refs = dict(refs or {})
        self.updates: List[List[dict]] = []
        self.reject_status: Optional[int] = None
        self.ignore_deletes = False
        self.lose_response = False
        self.closed = False

    def list_refs(self, filter_prefix: str) -> List[RemoteRef]:
        prefix = full_ref_name(filter_prefix)
        return [RemoteRef(n, sha) for n, sha in sorted(self.refs.items()) if n.startswith(prefix)]

    def get_ref(self, short_name: str) -> Optional[RemoteRef]:
        wanted = full_ref_name(short_name)
        sha = self.refs.get(wanted)
        return RemoteRef(wanted, sha) if sha else None

    def update_refs(self, updates: List[dict]) -> List[dict]:
        self.updates.append(updates)
        if self.reject_status is not None:
            raise ApiFailure(
                f"Ref update rejected: HTTP {self.reject_status}",
                status_code=self.reject_status,
                body='{"message": "TF401027: You need the Git \'CreateBranch\' permission"}',
            )

        results = []
        for update in updates:
            name = update["name"]
            current = self.refs.get(name, ZERO_OBJECT_ID)
            if current != update["oldObjectId"]:
                raise ApiFailure(
                    f"Ref update for '{name}' rejected: staleOldObjectId",
                    status_code=200,
                    details={"update_status": "staleOldObjectId"},
                )
            if update["newObjectId"] == ZERO_OBJECT_ID:
                if not self.ignore_deletes:
                    self.refs.pop(name, None)
            else:
                self.refs[name] = update["newObjectId"]
            results.append({"name": name, "success": True, "updateStatus": "succeeded"})

        if self.lose_response:
            raise ApiFailure("Ref update request failed: ReadTimeout")
        return results

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> MirrorSettings:
    return MirrorSettings(
        org="acme",
        project="platform",
        pat="secret-pat",
        primary_owner="DodoSystem",
        primary_repo="Customers",
    )


@pytest.fixture
def azure() -> FakeAzureRefs:
    """Azure repo that already has its own root branch."""
    return FakeAzureRefs({"refs/heads/main": "a" * 40})
