"""
Tests for the local ref graph and the mirror ledger.

All git operations are mocked — no real repos needed.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest import mock

import pytest

from branch_mirror.mirror.errors import GitCommandError, LedgerWriteFailed
from branch_mirror.mirror.git_refs import LocalRefGraph
from branch_mirror.mirror.ledger import MirrorLedger

C1 = "1" * 40
C2 = "2" * 40


def _mock_git_result(returncode: int = 0, stdout: str = "", stderr: str = ""):
    """Create a mock subprocess.CompletedProcess."""
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr,
    )


def _fake_git(responses):
    """Dispatch on the git subcommand line; unknown commands succeed silently."""
    calls = []

    def _git(repo, *args, timeout=60):
        calls.append(args)
        for prefix, result in responses:
            if args[:len(prefix)] == prefix:
                return result
        return _mock_git_result()

    _git.calls = calls
    return _git


# ---------------------------------------------------------------------------
# LocalRefGraph
# ---------------------------------------------------------------------------

class TestLocalRefGraph:

    @mock.patch("branch_mirror.mirror.git_refs._git")
    def test_branches_sorted_without_head(self, mock_git, tmp_path: Path):
        mock_git.return_value = _mock_git_result(stdout=(
            "refs/remotes/origin/HEAD\n"
            "refs/remotes/origin/release/1.0\n"
            "refs/remotes/origin/main\n"
        ))

        assert LocalRefGraph(tmp_path).branches() == ["main", "release/1.0"]

    @mock.patch("branch_mirror.mirror.git_refs._git")
    def test_run_raises_on_failure(self, mock_git, tmp_path: Path):
        mock_git.return_value = _mock_git_result(returncode=128, stderr="fatal: not a git repository")

        with pytest.raises(GitCommandError) as excinfo:
            LocalRefGraph(tmp_path).run("status")

        assert excinfo.value.returncode == 128
        assert "not a git repository" in excinfo.value.message

    @mock.patch("branch_mirror.mirror.git_refs._git")
    def test_is_ancestor(self, mock_git, tmp_path: Path):
        graph = LocalRefGraph(tmp_path)

        mock_git.return_value = _mock_git_result(returncode=0)
        assert graph.is_ancestor(C1, C2) is True

        mock_git.return_value = _mock_git_result(returncode=1)
        assert graph.is_ancestor(C1, C2) is False

        mock_git.return_value = _mock_git_result(returncode=128, stderr="bad object")
        with pytest.raises(GitCommandError):
            graph.is_ancestor(C1, C2)

    def test_head_commit_prefers_remote_tracking(self, tmp_path: Path):
        fake = _fake_git([
            (("rev-parse", "--verify", "--quiet", "refs/remotes/origin/feature^{commit}"),
             _mock_git_result(stdout=C2 + "\n")),
        ])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            assert LocalRefGraph(tmp_path).head_commit("feature") == C2

    def test_head_commit_falls_back_to_checked_out_head(self, tmp_path: Path):
        fake = _fake_git([
            (("rev-parse", "--verify", "--quiet", "refs/remotes/origin/feature^{commit}"),
             _mock_git_result(returncode=1)),
            (("rev-parse", "--verify", "--quiet", "refs/heads/feature^{commit}"),
             _mock_git_result(returncode=1)),
            (("symbolic-ref",), _mock_git_result(stdout="feature\n")),
            (("rev-parse", "--verify", "--quiet", "HEAD^{commit}"), _mock_git_result(stdout=C1)),
        ])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            assert LocalRefGraph(tmp_path).head_commit("feature") == C1

    def test_head_commit_unknown_branch(self, tmp_path: Path):
        fake = _fake_git([
            (("rev-parse",), _mock_git_result(returncode=1)),
            (("symbolic-ref",), _mock_git_result(stdout="main\n")),
        ])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            assert LocalRefGraph(tmp_path).head_commit("feature") is None

    def test_refresh_fetches_branches_and_tags(self, tmp_path: Path):
        fake = _fake_git([])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            LocalRefGraph(tmp_path).refresh()

        assert fake.calls == [
            ("fetch", "--all", "--prune"),
            ("fetch", "--tags", "origin"),
        ]


# ---------------------------------------------------------------------------
# MirrorLedger
# ---------------------------------------------------------------------------

TAG_LISTING = (
    f"refs/tags/azure-mirror/main {C1} \n"
    f"refs/tags/azure-mirror/release/1.0 {'9' * 40} {C2}\n"
)


class TestMirrorLedger:

    def _ledger(self, tmp_path: Path) -> MirrorLedger:
        return MirrorLedger(LocalRefGraph(tmp_path), "azure-mirror/")

    def test_tag_name(self, tmp_path: Path):
        assert self._ledger(tmp_path).tag_name("release/1.0") == "azure-mirror/release/1.0"

    def test_entries_peel_annotated_tags(self, tmp_path: Path):
        fake = _fake_git([(("for-each-ref",), _mock_git_result(stdout=TAG_LISTING))])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            entries = self._ledger(tmp_path).entries()

        assert entries == {"main": C1, "release/1.0": C2}

    def test_record_creates_and_pushes_tag(self, tmp_path: Path):
        fake = _fake_git([(("for-each-ref",), _mock_git_result(stdout=""))])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            self._ledger(tmp_path).record("feature", C2)

        assert ("tag", "azure-mirror/feature", C2) in fake.calls
        assert ("push", "origin", "refs/tags/azure-mirror/feature") in fake.calls

    def test_record_refuses_to_move_tag(self, tmp_path: Path):
        fake = _fake_git([(("for-each-ref",), _mock_git_result(stdout=TAG_LISTING))])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            with pytest.raises(LedgerWriteFailed):
                self._ledger(tmp_path).record("main", C2)

        assert not [c for c in fake.calls if c[0] in ("tag", "push")]

    def test_record_same_commit_only_pushes(self, tmp_path: Path):
        fake = _fake_git([(("for-each-ref",), _mock_git_result(stdout=TAG_LISTING))])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            self._ledger(tmp_path).record("main", C1)

        assert not [c for c in fake.calls if c[0] == "tag"]
        assert ("push", "origin", "refs/tags/azure-mirror/main") in fake.calls

    def test_record_push_failure(self, tmp_path: Path):
        fake = _fake_git([
            (("for-each-ref",), _mock_git_result(stdout="")),
            (("push",), _mock_git_result(returncode=1, stderr="remote rejected")),
        ])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            with pytest.raises(LedgerWriteFailed, match="remote rejected"):
                self._ledger(tmp_path).record("feature", C2)

    def test_remove_deletes_locally_and_remotely(self, tmp_path: Path):
        fake = _fake_git([(("for-each-ref",), _mock_git_result(stdout=TAG_LISTING))])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            assert self._ledger(tmp_path).remove("main") is True

        assert ("tag", "-d", "azure-mirror/main") in fake.calls
        assert ("push", "origin", ":refs/tags/azure-mirror/main") in fake.calls

    def test_remove_absent_tag(self, tmp_path: Path):
        fake = _fake_git([(("for-each-ref",), _mock_git_result(stdout=""))])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            assert self._ledger(tmp_path).remove("feature") is False

        assert not [c for c in fake.calls if c[0] in ("tag", "push")]

    def test_remove_tolerates_remote_push_failure(self, tmp_path: Path, caplog):
        fake = _fake_git([
            (("for-each-ref",), _mock_git_result(stdout=TAG_LISTING)),
            (("push",), _mock_git_result(returncode=1, stderr="network down")),
        ])
        with mock.patch("branch_mirror.mirror.git_refs._git", fake):
            assert self._ledger(tmp_path).remove("main") is True

        assert "remote deletion failed" in caplog.text
