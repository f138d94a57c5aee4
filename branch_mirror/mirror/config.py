"""
Mirror Configuration — Parse AZURE_* and MIRROR_* environment variables.

Minimal required config:
    AZURE_ORG=my-org
    AZURE_PROJECT=my-project
    AZURE_PAT=xxxxx

Every source repository owner maps onto one Azure repository: the
designated primary owner uses the primary repository, everyone else gets
"<primary repo>-<owner>". Inside that repository each source repository's
branches live under "<source repo name>/<branch>".
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

REQUIRED_VARS = ("AZURE_ORG", "AZURE_PROJECT", "AZURE_PAT")


@dataclass
class MirrorSettings:
    """Settings for mirroring one source repository into Azure DevOps."""

    org: Optional[str] = None
    project: Optional[str] = None
    pat: Optional[str] = None
    base_url: str = "https://dev.azure.com"
    api_version: str = "7.1"

    primary_owner: str = "DodoSystem"
    primary_repo: str = "Customers"
    root_branch: str = "main"
    tag_prefix: str = "azure-mirror/"
    git_remote: str = "origin"

    http_timeout: float = 30.0
    audit_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MirrorSettings":
        """Parse mirror configuration from environment variables."""
        env = os.environ if environ is None else environ

        timeout_raw = env.get("MIRROR_HTTP_TIMEOUT", "30")
        try:
            timeout = float(timeout_raw)
        except ValueError:
            logger.warning(f"MIRROR_HTTP_TIMEOUT={timeout_raw!r} is not a number, using 30")
            timeout = 30.0

        settings = cls(
            org=env.get("AZURE_ORG") or None,
            project=env.get("AZURE_PROJECT") or None,
            pat=env.get("AZURE_PAT") or None,
            base_url=env.get("AZURE_BASE_URL", "https://dev.azure.com").rstrip("/"),
            api_version=env.get("AZURE_API_VERSION", "7.1"),
            primary_owner=env.get("MIRROR_PRIMARY_OWNER", "DodoSystem"),
            primary_repo=env.get("MIRROR_PRIMARY_REPO", "Customers"),
            root_branch=env.get("MIRROR_ROOT_BRANCH", "main"),
            tag_prefix=env.get("MIRROR_TAG_PREFIX", "azure-mirror/"),
            git_remote=env.get("MIRROR_GIT_REMOTE", "origin"),
            http_timeout=timeout,
            audit_file=env.get("MIRROR_AUDIT_FILE") or None,
        )

        missing = settings.missing()
        if missing:
            logger.debug(f"Mirror config incomplete, missing: {', '.join(missing)}")

        return settings

    def missing(self) -> List[str]:
        """Names of required variables that are not set."""
        values = {
            "AZURE_ORG": self.org,
            "AZURE_PROJECT": self.project,
            "AZURE_PAT": self.pat,
        }
        return [name for name in REQUIRED_VARS if not values[name]]

    @property
    def is_complete(self) -> bool:
        return not self.missing()

    def remote_repository_for(self, owner: str) -> str:
        """Azure repository that holds the mirrored branches of ``owner``."""
        if owner == self.primary_owner:
            return self.primary_repo
        return f"{self.primary_repo}-{owner}"

    def refs_url(self, repository: str) -> str:
        """URL of the refs endpoint for an Azure repository."""
        return (
            f"{self.base_url}/{quote(self.org or '')}/{quote(self.project or '')}"
            f"/_apis/git/repositories/{quote(repository)}/refs"
        )
