import logging
import os
from dataclasses import dataclass, field
from typing import Any, List, Optional

from tfq import cache
from tfq.backend.base import Backend, SelfDiffer, load_backend_block, read_environment
from tfq.credentials import resolve_token
from tfq.errors import (
    APIError,
    OrganizationNotSetError,
    WorkspaceNameAndPrefixError,
    WorkspaceNotSetError,
    friendly_api_error,
)
from tfq.paginate import (
    RunListOptions,
    StateVersionListOptions,
    WorkspaceListOptions,
    page_size_for,
    paginate,
)
from tfq.revisions import RevisionRecord, sort_descending
from tfq.tfe import DEFAULT_TIMEOUT, TFEClient, TFEError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "app.terraform.io"
DEEP_INCLUDES = ["outputs", "run", "created_by"]

# Commands whose default query only ever needs the current state version.
CURRENT_ONLY_COMMANDS = ("sq",)


@dataclass
class RemoteConfig:
    hostname: str = ""
    organization: str = ""
    token: Optional[Any] = None
    workspace_name: str = ""
    workspace_prefix: str = ""
    workspace_tags: List[str] = field(default_factory=list)

    @classmethod
    def from_block(cls, block):
        cfg = block.get("config") or {}
        workspaces = cfg.get("workspaces") or {}
        if isinstance(workspaces, list):
            workspaces = workspaces[0] if workspaces else {}
        return cls(
            hostname=cfg.get("hostname") or "",
            organization=cfg.get("organization") or "",
            token=cfg.get("token"),
            workspace_name=workspaces.get("name") or "",
            workspace_prefix=workspaces.get("prefix") or "",
        )


class RemoteBackend(SelfDiffer, Backend):
    """HCP Terraform / Terraform Enterprise workspace state.

    Host, organization, token and workspace each resolve through their own
    precedence chain: flag, backend block, user config, then a default
    (host only).
    """

    TYPE = "remote"

    def __init__(self, root_dir=None, env_override="", opts=None, config=None):
        super().__init__(root_dir, env_override, opts, config)
        self.backend_config = RemoteConfig()
        self.hash = 0
        self._client = None
        self._runs = None

    @classmethod
    def bare(cls, root_dir=None, opts=None, config=None):
        """A remote with no state context, enough to talk to a host."""
        be = cls(root_dir=root_dir, opts=opts, config=config)
        logger.debug("bare remote: hostname: %s", be.host())
        return be

    def load(self):
        doc, block = load_backend_block(self.root_dir, self.TYPE)
        self.version = doc.get("version", self.version)
        self.terraform_version = doc.get("terraform_version", self.terraform_version)
        self.hash = block.get("hash", 0)
        self.backend_config = RemoteConfig.from_block(block)
        return self

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def host(self):
        """--host > backend hostname > config host > app.terraform.io."""
        if self.opts.host:
            return self.opts.host
        if self.backend_config.hostname:
            return self.backend_config.hostname
        host = self.config.get_string("host")
        if host:
            return host
        return DEFAULT_HOST

    def organization(self):
        """--org > backend organization > config org."""
        if self.opts.org:
            return self.opts.org
        if self.backend_config.organization:
            return self.backend_config.organization
        org = self.config.get_string("org")
        if org:
            return org
        raise OrganizationNotSetError(
            "organization is not set (precedence: --org flag > "
            "backend.config.organization > config org). "
            "Set --org or backend.config.organization"
        )

    def workspace_name(self):
        """--workspace > backend name or prefix+env > config workspace."""
        if self.opts.workspace:
            return self.opts.workspace

        name = self.backend_config.workspace_name
        prefix = self.backend_config.workspace_prefix
        if name and prefix:
            raise WorkspaceNameAndPrefixError("both workspace name and prefix are set")
        if name:
            return name
        if prefix:
            env = self.env_override or read_environment(self.root_dir)
            logger.debug("workspace prefixed name = %s", prefix + env)
            return prefix + env

        name = self.config.get_string("workspace")
        if name:
            return name
        raise WorkspaceNotSetError("workspace is not set. Set --workspace or backend.config.workspaces")

    def token(self):
        return resolve_token(self.host(), self.backend_config.token, self.config)

    def client(self):
        if self._client is None:
            self._client = TFEClient(
                self.host(),
                self.token(),
                timeout=self.opts.timeout or DEFAULT_TIMEOUT,
            )
        return self._client

    def cache_namespace(self):
        """[host, org], overridable with TFE_HOSTNAME / TFE_ORGANIZATION."""
        hostname = os.environ.get("TFE_HOSTNAME", self.host())
        organization = os.environ.get("TFE_ORGANIZATION")
        if organization is None:
            organization = self.organization()
        return [hostname, organization]

    def _error_context(self, operation, org, workspace=None):
        return {"host": self.host(), "org": org, "workspace": workspace, "operation": operation}

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------

    def runs(self):
        if self._runs is not None:
            logger.info("runs: preloaded with %d", len(self._runs))
            return self._runs

        client = self.client()
        org = self.organization()
        workspace = self.workspace_name()
        limit = self.opts.limit
        options = RunListOptions(workspace_names=workspace, page_size=page_size_for(limit))

        def fetch(opts):
            try:
                return client.list_runs(org, opts)
            except TFEError as e:
                raise friendly_api_error(e, **self._error_context("list runs", org, workspace)) from e

        self._runs = paginate(options, fetch, limit=limit)
        return self._runs

    def workspaces(self, augmenter=None):
        """Workspaces in the organization, narrowed to the cloud block tags if any.

        augmenter(options) runs before each page.
        """
        client = self.client()
        org = self.organization()
        limit = self.opts.limit
        options = WorkspaceListOptions(
            page_size=page_size_for(limit),
            tags=list(self.backend_config.workspace_tags),
        )

        def fetch(opts):
            try:
                return client.list_workspaces(org, opts)
            except TFEError as e:
                raise friendly_api_error(e, **self._error_context("list workspaces", org)) from e

        return paginate(options, fetch, augmenter=augmenter, limit=limit)

    def _list_revisions(self, augmenter=None):
        client = self.client()

        # The common sq case only reads CSV~0, so one item is enough.
        limit = self.opts.limit
        if (self.opts.command in CURRENT_ONLY_COMMANDS
                and self.opts.sv == "0" and not self.opts.diff):
            limit = 1

        org = self.organization()
        workspace = self.workspace_name()
        options = StateVersionListOptions(
            organization=org,
            workspace=workspace,
            page_size=page_size_for(limit),
        )

        def fetch(opts):
            try:
                return client.list_state_versions(opts)
            except TFEError as e:
                raise friendly_api_error(
                    e, **self._error_context("list state versions", org, workspace)
                ) from e

        versions = paginate(options, fetch, augmenter=augmenter, limit=limit)

        if self.opts.deep:
            for i, sv in enumerate(versions):
                try:
                    versions[i] = client.read_state_version(sv.id, include=DEEP_INCLUDES)
                except TFEError as e:
                    logger.warning("failed to read state version (with includes) %s; using list item: %s", sv.id, e)

        records = [
            RevisionRecord(
                identity=sv.id,
                created_at=sv.created_at,
                serial=sv.serial,
                locator=sv.download_url,
                attributes=sv.attributes,
            )
            for sv in versions
        ]
        return sort_descending(records)

    def _fetch_document(self, record):
        cache.safe_purge(self.config.get_int("cache.clean", 0))

        url = record.locator
        if not url:
            raise APIError(f"state version {record.identity} has no download URL")

        def download():
            try:
                return self.client().download(url)
            except TFEError as e:
                raise friendly_api_error(e, host=self.host(), operation="download state") from e

        return cache.fetch_through(self.cache_namespace(), url, download)

    def __str__(self):
        cfg = self.backend_config
        token = "********" if cfg.token else None
        return (
            f"RemoteBackend(hostname={cfg.hostname!r}, organization={cfg.organization!r}, "
            f"workspace={cfg.workspace_name or cfg.workspace_prefix!r}, token={token})"
        )
