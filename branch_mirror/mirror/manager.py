"""
Mirror Manager — Orchestrates one branch event end to end.

    start -> classified -> create-flow | delete-flow -> synced
          -> ledger-updated -> done                 (or failed from anywhere)

Create: resolve the parent, create the Azure branch from the parent's Azure
head, then tag the source branch as mirrored. Nothing is tagged unless the
Azure branch was created.

Delete: delete the Azure branch (an absent branch is skipped), then drop the
mirror tag. The tag is dropped even when the Azure deletion failed so the
branch can be re-created later; the Azure failure is still reported. This
trades ledger accuracy for re-creatability and operators should know it.

## Usage:

    from branch_mirror.mirror.manager import BranchMirrorManager

    manager = BranchMirrorManager.from_settings(settings, project_root)
    receipt = manager.handle(TriggerEvent.from_github_env())
    raise SystemExit(receipt.exit_code)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from ..models.receipt import SyncReceipt
from ..persistence.audit import AuditWriter
from .azure_refs import SKIPPED, AzureRefsClient, RemoteRefSynchronizer
from .config import MirrorSettings
from .errors import GitCommandError, InvalidTrigger, MirrorError, ParentMissingRemotely
from .git_refs import LocalRefGraph
from .ledger import MirrorLedger
from .resolver import EVENT_CREATE, ParentResolver, Resolution
from .trigger import TriggerEvent

logger = logging.getLogger(__name__)

# Flow states
STATE_START = "start"
STATE_CLASSIFIED = "classified"
STATE_CREATE_FLOW = "create-flow"
STATE_DELETE_FLOW = "delete-flow"
STATE_SYNCED = "synced"
STATE_LEDGER_UPDATED = "ledger-updated"
STATE_DONE = "done"
STATE_FAILED = "failed"


class BranchMirrorManager:
    """
    Sequences resolver, synchronizer and ledger for one event at a time.

    Runs are blocking and single-shot; there is no retry here. Re-running
    a failed event is safe: deletions of absent branches are skipped and
    creations of existing branches fail with AlreadyExists.
    """

    def __init__(
        self,
        settings: MirrorSettings,
        graph: LocalRefGraph,
        ledger: Optional[MirrorLedger] = None,
        resolver: Optional[ParentResolver] = None,
        client_factory: Optional[Callable[[str], AzureRefsClient]] = None,
        audit: Optional[AuditWriter] = None,
    ):
        self.settings = settings
        self.graph = graph
        self.ledger = ledger or MirrorLedger(graph, settings.tag_prefix)
        self.resolver = resolver or ParentResolver(graph, self.ledger, settings.root_branch)
        self.client_factory = client_factory or (
            lambda repository: AzureRefsClient.from_settings(settings, repository)
        )
        self.audit = audit
        self.flow_state = STATE_START

    @classmethod
    def from_settings(cls, settings: MirrorSettings, project_root: Path) -> "BranchMirrorManager":
        graph = LocalRefGraph(project_root, settings.git_remote)
        audit = AuditWriter(Path(settings.audit_file)) if settings.audit_file else None
        return cls(settings, graph, audit=audit)

    def _enter(self, state: str) -> None:
        logger.debug(f"[mirror] {self.flow_state} -> {state}")
        self.flow_state = state

    # ─── Entry point ────────────────────────────────────────

    def handle(self, event: TriggerEvent) -> SyncReceipt:
        """Process one event and return its terminal receipt."""
        self.flow_state = STATE_START
        run_id = AuditWriter.new_run_id()
        log_extra = {"branch": event.branch, "run_id": run_id}
        if self.audit:
            self.audit.emit("sync_start", run_id, event.branch, event.kind, details={
                "repo": f"{event.repo_owner}/{event.repo_name}",
                "manual": event.manual,
                "explicit_base": event.explicit_base,
            })

        try:
            receipt = self._handle(event)
        except MirrorError as e:
            failed_at = self.flow_state
            self._enter(STATE_FAILED)
            e.details.setdefault("failed_at", failed_at)
            logger.error(f"[mirror] {e.kind}: {e.message}", extra=log_extra)
            receipt = SyncReceipt.failed(
                event.kind,
                event.branch,
                STATE_FAILED,
                e,
                remote_ref=e.details.get("ref"),
            )
        else:
            logger.info(
                f"[mirror] {event.kind} '{event.branch}': {receipt.status}"
                + (f" ({receipt.detail})" if receipt.detail else ""),
                extra=log_extra,
            )

        if self.audit:
            self.audit.emit(
                "sync_end",
                run_id,
                event.branch,
                event.kind,
                level="error" if receipt.status == "failed" else "info",
                details=receipt.model_dump(exclude={"ts_iso"}),
            )
        return receipt

    def _handle(self, event: TriggerEvent) -> SyncReceipt:
        if not event.is_branch_event:
            logger.info(f"[mirror] Ignoring {event.ref_type} event for '{event.branch}'")
            return SyncReceipt.skipped(
                event.kind, event.branch, self.flow_state, f"{event.ref_type} events are not mirrored"
            )

        if event.manual and event.branch != self.settings.root_branch:
            raise InvalidTrigger(
                f"Manual run allowed only for '{self.settings.root_branch}', not for '{event.branch}'.",
                {"branch": event.branch},
            )
        self._enter(STATE_CLASSIFIED)

        repository = self.settings.remote_repository_for(event.repo_owner)
        namespace = event.repo_name
        logger.info(
            f"[mirror] Azure repo: {repository} | source repo: {event.repo_name} | "
            f"branch: {event.branch} | event: {event.kind} | azure branch: {namespace}/{event.branch}"
        )

        if event.kind == EVENT_CREATE:
            return self._create(event, repository, namespace)
        return self._delete(event, repository, namespace)

    # ─── Create ─────────────────────────────────────────────

    def _create(self, event: TriggerEvent, repository: str, namespace: str) -> SyncReceipt:
        self._enter(STATE_CREATE_FLOW)

        head = self.graph.head_commit(event.branch)
        if head is None:
            raise InvalidTrigger(
                f"Branch '{event.branch}' not found in the source repository",
                {"branch": event.branch},
            )

        resolution = self.resolver.resolve(event.branch, event.kind, event.explicit_base, current=head)

        client = self.client_factory(repository)
        try:
            synchronizer = RemoteRefSynchronizer(client, self.settings.root_branch)
            try:
                remote_ref = synchronizer.create_remote_branch(namespace, event.branch, resolution.parent)
            except ParentMissingRemotely as e:
                self._explain_missing_parent(e, resolution)
                raise
        finally:
            client.close()
        self._enter(STATE_SYNCED)

        self.ledger.record(event.branch, head)
        self._enter(STATE_LEDGER_UPDATED)

        self._enter(STATE_DONE)
        return SyncReceipt.ok(
            event.kind,
            event.branch,
            STATE_DONE,
            remote_ref=remote_ref.name,
            parent=resolution.parent,
            commit=head,
            detail=f"created from {resolution.parent or 'Azure ' + self.settings.root_branch}",
        )

    def _explain_missing_parent(self, error: ParentMissingRemotely, resolution: Resolution) -> None:
        error.details["parent_source"] = resolution.source
        error.details["candidates"] = [v.to_dict() for v in resolution.considered]
        for verdict in resolution.considered:
            logger.error(f"[mirror] candidate {verdict.branch}: {verdict.reason}")
        if resolution.parent:
            logger.error(
                f"[mirror] Parent '{resolution.parent}' came from {resolution.source}; "
                f"mirror it first, then re-run this event"
            )

    # ─── Delete ─────────────────────────────────────────────

    def _delete(self, event: TriggerEvent, repository: str, namespace: str) -> SyncReceipt:
        self._enter(STATE_DELETE_FLOW)

        remote_error: Optional[MirrorError] = None
        outcome = None
        client = self.client_factory(repository)
        try:
            outcome = RemoteRefSynchronizer(client, self.settings.root_branch).delete_remote_branch(
                namespace, event.branch
            )
        except MirrorError as e:
            remote_error = e
        finally:
            client.close()

        if remote_error is None:
            self._enter(STATE_SYNCED)

        try:
            self.ledger.remove(event.branch)
        except GitCommandError as e:
            if remote_error is None:
                raise
            logger.error(f"[mirror] Mirror tag removal also failed: {e.message}")
        else:
            if remote_error is None:
                self._enter(STATE_LEDGER_UPDATED)

        if remote_error is not None:
            logger.warning(
                f"[mirror] Mirror tag for '{event.branch}' was cleared although the Azure "
                f"deletion failed; the Azure branch may still exist"
            )
            raise remote_error

        self._enter(STATE_DONE)
        remote_ref = f"refs/{RemoteRefSynchronizer.remote_name(namespace, event.branch)}"
        if outcome == SKIPPED:
            return SyncReceipt.skipped(
                event.kind, event.branch, STATE_DONE, "branch not found in Azure DevOps", remote_ref=remote_ref
            )
        return SyncReceipt.ok(event.kind, event.branch, STATE_DONE, remote_ref=remote_ref, detail="deleted")
