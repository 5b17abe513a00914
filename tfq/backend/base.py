import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from tfq.config import Config
from tfq.errors import BackendError, BackendTypeError
from tfq.revisions import CURRENT, PREVIOUS, resolve

logger = logging.getLogger(__name__)

POINTER_FILE = Path(".terraform") / "terraform.tfstate"
ENVIRONMENT_FILE = Path(".terraform") / "environment"
LOCAL_STATE_FILE = "terraform.tfstate"

DEFAULT_LIMIT = 99999


@dataclass
class QueryOptions:
    """Flag-derived inputs for one invocation. None means "not set"."""

    host: Optional[str] = None
    org: Optional[str] = None
    workspace: Optional[str] = None
    sv: str = "0"
    limit: int = DEFAULT_LIMIT
    diff: bool = False
    diff_args: List[str] = field(default_factory=list)
    deep: bool = False
    passphrase: Optional[str] = None
    command: str = ""
    timeout: Optional[float] = None


def read_pointer(root_dir):
    """Parse .terraform/terraform.tfstate. Raises FileNotFoundError if absent."""
    path = Path(root_dir) / POINTER_FILE
    raw = path.read_text()
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BackendTypeError(f"can't parse backend file {path}: {e}") from e
    if not isinstance(doc, dict) or not isinstance(doc.get("backend"), dict):
        raise BackendTypeError(f"no backend block in {path}")
    return doc


def load_backend_block(root_dir, expected_type):
    """Return (pointer doc, backend block) after checking the type discriminator."""
    doc = read_pointer(root_dir)
    block = doc["backend"]
    if block.get("type") != expected_type:
        raise BackendTypeError(f"backend type is not {expected_type}: {block.get('type')}")
    return doc, block


def read_environment(root_dir):
    """Selected workspace from .terraform/environment, or ""."""
    try:
        return (Path(root_dir) / ENVIRONMENT_FILE).read_text().strip()
    except OSError:
        return ""


def resolve_root_dir(root_dir):
    if root_dir is None:
        return Path.cwd()
    root_dir = Path(root_dir)
    return root_dir if root_dir.is_absolute() else Path.cwd() / root_dir


class Backend(ABC):
    """Common read-only contract over one state storage mechanism.

    Implementations: LocalBackend, RemoteBackend, S3Backend. A cloud block
    is always transformed into a RemoteBackend.
    """

    TYPE = ""

    def __init__(self, root_dir=None, env_override="", opts=None, config=None):
        self.root_dir = resolve_root_dir(root_dir)
        self.env_override = env_override or ""
        self.opts = opts or QueryOptions()
        self.config = config or Config()
        self.version = 4
        self.terraform_version = "0.0.0"
        # None until listed; [] means listed and empty.
        self._revisions = None

    @abstractmethod
    def runs(self):
        """List runs for the workspace."""
        pass

    @abstractmethod
    def _list_revisions(self, augmenter=None):
        """Fetch revision records from the origin, most recent first."""
        pass

    @abstractmethod
    def _fetch_document(self, record):
        """Fetch the state document body for a listed record."""
        pass

    @abstractmethod
    def __str__(self):
        pass

    def type_name(self):
        return self.TYPE

    def revisions(self, augmenter=None):
        """Revision records, most recent first.

        The unaugmented listing is computed once per instance. A listing
        shaped by an augmenter is always fetched fresh and never stored.
        """
        if augmenter is not None:
            return self._list_revisions(augmenter)
        if self._revisions is None:
            self._revisions = self._list_revisions()
        else:
            logger.debug("revisions: preloaded with %d", len(self._revisions))
        return self._revisions

    def states(self, *specs):
        """Documents for each spec, in order. No specs means the current one."""
        records = resolve(self.revisions(), *specs)
        logger.debug("resolved versions: %s", records)
        return [self._read(record) for record in records]

    def state(self):
        """The document addressed by --sv (current by default)."""
        return self.states(self.opts.sv or CURRENT)[0]

    def _read(self, record):
        if record.local_file:
            try:
                return Path(record.locator).read_bytes()
            except OSError as e:
                raise BackendError(f"failed to read state file: {e}") from e
        return self._fetch_document(record)


class SelfDiffer:
    """Mixin for backends that choose their own pair of revisions to diff."""

    def diff_specs(self, diff_args=None, select=None):
        """Map diff arguments to an (older, newer) pair of specs.

        no args         previous vs current
        "+..."          interactively selected pair
        one arg         that revision vs current
        two args        used verbatim

        Returns None when the interactive selection was abandoned.
        """
        specs = [PREVIOUS, CURRENT]
        diff_args = list(diff_args if diff_args is not None else self.opts.diff_args)

        if len(diff_args) == 1:
            if diff_args[0].startswith("+"):
                if select is None:
                    from tfq.diff import select_revisions
                    select = select_revisions
                selected = select(self.revisions())
                logger.debug("selected versions: %d", len(selected or []))
                if not selected:
                    return None
                if len(selected) == 2:
                    specs = [selected[1].identity, selected[0].identity]
            else:
                specs[0] = diff_args[0]
        elif len(diff_args) >= 2:
            specs = diff_args[:2]

        return specs

    def diff_states(self, diff_args=None, select=None):
        """Return [older, newer] documents, or [] if selection was abandoned."""
        specs = self.diff_specs(diff_args, select)
        if specs is None:
            return []
        return self.states(*specs)
