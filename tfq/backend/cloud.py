"""The `cloud {}` block.

A cloud block is never queried directly. Its values are merged into a
RemoteBackend, since the query semantics are identical from then on.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from tfq.backend.base import QueryOptions, load_backend_block, resolve_root_dir
from tfq.backend.remote import RemoteBackend, RemoteConfig
from tfq.config import Config

logger = logging.getLogger(__name__)


@dataclass
class CloudConfig:
    hostname: str = ""
    organization: str = ""
    token: Optional[Any] = None
    workspace_name: str = ""
    project: str = ""
    tags: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_block(cls, block):
        cfg = block.get("config") or {}
        workspaces = cfg.get("workspaces") or {}
        tags = workspaces.get("tags") or {}
        if isinstance(tags, list):
            tags = {tag: "" for tag in tags}
        return cls(
            hostname=cfg.get("hostname") or "",
            organization=cfg.get("organization") or "",
            token=cfg.get("token"),
            workspace_name=workspaces.get("name") or "",
            project=workspaces.get("project") or "",
            tags=tags,
        )

    def tag_filter(self):
        """Tags as the workspace search expects them: "name" or "key:value"."""
        return [f"{k}:{v}" if v else k for k, v in sorted(self.tags.items())]


class CloudBackend:
    """A parsed cloud block. Query it through to_remote()."""

    TYPE = "cloud"

    def __init__(self, root_dir=None, env_override="", opts=None, config=None):
        self.root_dir = resolve_root_dir(root_dir)
        self.env_override = env_override or ""
        self.opts = opts or QueryOptions()
        self.config = config or Config()
        self.version = 4
        self.terraform_version = "0.0.0"
        self.hash = 0
        self.backend_config = CloudConfig()

    def load(self):
        doc, block = load_backend_block(self.root_dir, self.TYPE)
        self.version = doc.get("version", self.version)
        self.terraform_version = doc.get("terraform_version", self.terraform_version)
        self.hash = block.get("hash", 0)
        self.backend_config = CloudConfig.from_block(block)
        return self

    def merged_host(self):
        return self.backend_config.hostname or self.opts.host or ""

    def merged_organization(self):
        """--org if set and not just the config default, else block, else --org."""
        flag_org = self.opts.org or ""
        configured = self.config.get_string("org") or ""
        if flag_org and flag_org != configured:
            return flag_org
        return self.backend_config.organization or flag_org

    def to_remote(self):
        """Merge this cloud block into an equivalent RemoteBackend.

        The merged host and organization are baked into the remote's backend
        config; the token is left for the remote's own precedence chain.
        """
        opts = dataclasses.replace(self.opts, host=None, org=None)
        remote = RemoteBackend(
            root_dir=self.root_dir,
            env_override=self.env_override,
            opts=opts,
            config=self.config,
        )
        remote.version = self.version
        remote.terraform_version = self.terraform_version
        remote.hash = self.hash
        remote.backend_config = RemoteConfig(
            hostname=self.merged_host(),
            organization=self.merged_organization(),
            token=None,
            workspace_name=self.backend_config.workspace_name,
            workspace_tags=self.backend_config.tag_filter(),
        )
        logger.debug("cloud transformed to remote: %s", remote)
        return remote

    def __str__(self):
        cfg = self.backend_config
        return (
            f"CloudBackend(hostname={cfg.hostname!r}, organization={cfg.organization!r}, "
            f"workspace={cfg.workspace_name!r}, project={cfg.project!r})"
        )
