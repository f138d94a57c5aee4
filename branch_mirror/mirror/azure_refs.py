"""
Azure Refs — Create and delete branches through the Azure DevOps refs API.

All ref updates are optimistic: each update names the object id the ref is
expected to have now ("oldObjectId") and the one it should get
("newObjectId"). The all-zero id means "does not exist", so zero -> X is a
creation and X -> zero a deletion. Azure rejects the update when the ref
has moved, which turns a concurrent run into a clean failure.

Endpoints used:
    GET  {refs_url}?filter=heads/<name>&api-version=7.1
    POST {refs_url}?api-version=7.1   [{"name", "oldObjectId", "newObjectId"}]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .config import MirrorSettings
from .errors import AlreadyExists, ApiFailure, DeletionNotPersisted, ParentMissingRemotely

logger = logging.getLogger(__name__)

ZERO_OBJECT_ID = "0" * 40

DELETED = "deleted"
SKIPPED = "skipped"


@dataclass
class RemoteRef:
    """A ref as reported by Azure, e.g. name="refs/heads/repo/main"."""

    name: str
    object_id: str

    @property
    def short_name(self) -> str:
        return self.name[len("refs/"):] if self.name.startswith("refs/") else self.name


def full_ref_name(short_name: str) -> str:
    """'heads/x' -> 'refs/heads/x'."""
    return short_name if short_name.startswith("refs/") else f"refs/{short_name}"


class AzureRefsClient:
    """Thin client for one Azure repository's refs endpoint."""

    def __init__(
        self,
        refs_url: str,
        pat: Optional[str],
        api_version: str = "7.1",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.refs_url = refs_url
        self.api_version = api_version
        self._client = client or httpx.Client(
            auth=("", pat or ""),
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: MirrorSettings, repository: str) -> "AzureRefsClient":
        return cls(
            settings.refs_url(repository),
            settings.pat,
            api_version=settings.api_version,
            timeout=settings.http_timeout,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AzureRefsClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def list_refs(self, filter_prefix: str) -> List[RemoteRef]:
        """Refs whose name starts with ``filter_prefix`` (e.g. 'heads/repo/x')."""
        try:
            resp = self._client.get(
                self.refs_url,
                params={"filter": filter_prefix, "api-version": self.api_version},
            )
        except httpx.HTTPError as e:
            raise ApiFailure(f"Ref query for '{filter_prefix}' failed: {e}") from e

        if resp.status_code != 200:
            raise ApiFailure(
                f"Ref query for '{filter_prefix}' failed: HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            values = resp.json().get("value", [])
        except ValueError as e:
            raise ApiFailure(
                f"Ref query for '{filter_prefix}' returned invalid JSON",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

        return [
            RemoteRef(name=item["name"], object_id=item.get("objectId") or ZERO_OBJECT_ID)
            for item in values
            if item.get("name")
        ]

    def get_ref(self, short_name: str) -> Optional[RemoteRef]:
        """The ref named exactly ``short_name``; the API filter is only a prefix match."""
        wanted = full_ref_name(short_name)
        for ref in self.list_refs(short_name):
            if ref.name == wanted:
                return ref
        return None

    def update_refs(self, updates: List[Dict[str, str]]) -> List[Dict[str, Any]]:
        """
        Submit ref updates in one request.

        Raises ApiFailure for a non-2xx answer or any per-ref rejection.
        ``status_code`` is None on the error when no answer arrived at all.
        """
        try:
            resp = self._client.post(
                self.refs_url,
                params={"api-version": self.api_version},
                json=updates,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ApiFailure(f"Ref update request failed: {e}") from e

        if resp.status_code not in (200, 201):
            raise ApiFailure(
                f"Ref update rejected: HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            results = resp.json().get("value", [])
        except ValueError:
            results = []

        for result in results:
            if result.get("success") is False:
                status = result.get("updateStatus", "unknown")
                raise ApiFailure(
                    f"Ref update for '{result.get('name')}' rejected: {status}",
                    status_code=resp.status_code,
                    body=resp.text,
                    details={"update_status": status},
                )
        return results


class RemoteRefSynchronizer:
    """Apply one branch creation or deletion to Azure, at most once."""

    def __init__(self, client: AzureRefsClient, root_branch: str = "main"):
        self.client = client
        self.root_branch = root_branch

    @staticmethod
    def remote_name(namespace: str, branch: str) -> str:
        return f"heads/{namespace}/{branch}"

    def create_remote_branch(self, namespace: str, branch: str, parent: Optional[str]) -> RemoteRef:
        """
        Create heads/<namespace>/<branch> at the Azure head of its parent.

        The root branch is created from Azure's own root branch, every other
        branch from heads/<namespace>/<parent>. An existing ref is never
        touched.
        """
        target = self.remote_name(namespace, branch)

        if self.client.get_ref(target) is not None:
            raise AlreadyExists(
                f"Branch '{namespace}/{branch}' already exists in Azure DevOps. Branch creation aborted.",
                {"ref": full_ref_name(target)},
            )

        if branch == self.root_branch:
            parent_name = f"heads/{self.root_branch}"
            logger.info(f"[mirror-azure] Creating the first branch '{namespace}/{branch}' from Azure '{self.root_branch}'")
        else:
            if not parent:
                raise ParentMissingRemotely(
                    f"No parent branch given for '{namespace}/{branch}'. Branch creation aborted.",
                    {"ref": full_ref_name(target)},
                )
            parent_name = self.remote_name(namespace, parent)
            logger.info(f"[mirror-azure] Parent expected: '{namespace}/{parent}'")

        parent_ref = self.client.get_ref(parent_name)
        if parent_ref is None:
            raise ParentMissingRemotely(
                f"Parent branch '{parent_name[len('heads/'):]}' does not exist in Azure DevOps. "
                f"Branch creation aborted.",
                {"ref": full_ref_name(target), "parent": full_ref_name(parent_name)},
            )

        logger.info(f"[mirror-azure] Parent SHA used: {parent_ref.object_id} (from '{parent_ref.short_name}')")
        self._apply(target, ZERO_OBJECT_ID, parent_ref.object_id)

        logger.info(f"[mirror-azure] Branch '{namespace}/{branch}' created from '{parent_ref.short_name}'")
        return RemoteRef(full_ref_name(target), parent_ref.object_id)

    def delete_remote_branch(self, namespace: str, branch: str) -> str:
        """
        Delete heads/<namespace>/<branch>.

        Returns SKIPPED when the ref is already absent, DELETED once the
        deletion has been confirmed by a fresh query.
        """
        target = self.remote_name(namespace, branch)

        current = self.client.get_ref(target)
        if current is None:
            logger.warning(f"[mirror-azure] Branch '{namespace}/{branch}' does not exist in Azure DevOps. Skipping deletion.")
            return SKIPPED

        logger.info(f"[mirror-azure] Deleting branch '{namespace}/{branch}' at {current.object_id}")
        self._apply(target, current.object_id, ZERO_OBJECT_ID)

        if self.client.get_ref(target) is not None:
            raise DeletionNotPersisted(
                f"Branch '{namespace}/{branch}' still exists after deletion attempt. Most likely permission denied.",
                {"ref": full_ref_name(target)},
            )

        logger.info(f"[mirror-azure] Branch '{namespace}/{branch}' deleted in Azure DevOps")
        return DELETED

    def _apply(self, short_name: str, old_object_id: str, new_object_id: str) -> None:
        update = {
            "name": full_ref_name(short_name),
            "oldObjectId": old_object_id,
            "newObjectId": new_object_id,
        }
        try:
            self.client.update_refs([update])
        except ApiFailure as e:
            if e.status_code is not None:
                raise
            # No answer: the update may still have been applied
            logger.warning(f"[mirror-azure] No response for update of '{short_name}', checking remote state")
            observed = self.client.get_ref(short_name)
            observed_id = observed.object_id if observed else ZERO_OBJECT_ID
            if observed_id != new_object_id:
                raise
            logger.info(f"[mirror-azure] Update of '{short_name}' was applied despite the lost response")
