import logging
from datetime import datetime, timezone
from pathlib import Path

from tfq.backend.base import (
    LOCAL_STATE_FILE,
    Backend,
    SelfDiffer,
    load_backend_block,
    read_environment,
)
from tfq.errors import BackendError, UnsupportedOperationError
from tfq.revisions import RevisionRecord, parse_serial, sort_descending

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_DIR = "terraform.tfstate.d"


class LocalBackend(SelfDiffer, Backend):
    """State files on the local file system.

    Every terraform.tfstate* file in the root (or in the selected workspace
    directory) is one revision: the live file, its .backup, and any copies
    saved alongside. No network calls are made.
    """

    TYPE = "local"

    def __init__(self, root_dir=None, env_override="", opts=None, config=None):
        super().__init__(root_dir, env_override, opts, config)
        self.path = LOCAL_STATE_FILE
        self.workspace_dir = ""
        self.hash = 0

    def load(self):
        """Read the backend block if there is one.

        A missing pointer file means an empty backend declaration (or none at
        all), which is a plain local backend.
        """
        try:
            doc, block = load_backend_block(self.root_dir, self.TYPE)
        except FileNotFoundError:
            logger.debug("no backend file in %s, assuming local", self.root_dir)
            return self

        cfg = block.get("config") or {}
        self.version = doc.get("version", self.version)
        self.terraform_version = doc.get("terraform_version", self.terraform_version)
        self.path = cfg.get("path") or LOCAL_STATE_FILE
        self.workspace_dir = cfg.get("workspace_dir") or ""
        self.hash = block.get("hash", 0)
        return self

    def state_dir(self):
        """Directory holding the state files for the selected workspace."""
        if not self.env_override:
            self.env_override = read_environment(self.root_dir)

        if self.env_override and self.env_override != "default":
            return self.root_dir / (self.workspace_dir or DEFAULT_WORKSPACE_DIR) / self.env_override
        return self.root_dir

    def state_path(self):
        """The live state file. Workspaces keep only its file name."""
        directory = self.state_dir()
        if self.env_override and self.env_override != "default":
            return directory / Path(self.path).name
        return directory / self.path

    def runs(self):
        raise UnsupportedOperationError("runs are not available for a local backend")

    def _list_revisions(self, augmenter=None):
        state_path = self.state_path()
        directory = state_path.parent
        pattern = state_path.name + "*"

        candidates = []
        for path in directory.glob(pattern):
            try:
                st = path.stat()
            except OSError:
                continue
            if path.is_file():
                candidates.append((path, st.st_mtime))

        records = []
        for path, mtime in candidates:
            try:
                serial = parse_serial(path.read_bytes())
            except (OSError, ValueError):
                logger.debug("skipping unparseable state file %s", path)
                continue
            records.append(RevisionRecord(
                identity=path.name,
                created_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
                serial=serial,
                locator=str(path),
            ))

        return sort_descending(records)

    def _fetch_document(self, record):
        try:
            return Path(record.locator).read_bytes()
        except OSError as e:
            raise BackendError(f"failed to read state file: {e}") from e

    def __str__(self):
        return str(self.state_path())
