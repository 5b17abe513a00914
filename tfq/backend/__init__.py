import json
import logging

from tfq.backend.base import (
    ENVIRONMENT_FILE,
    LOCAL_STATE_FILE,
    POINTER_FILE,
    Backend,
    QueryOptions,
    read_pointer,
    resolve_root_dir,
)
from tfq.backend.local import LocalBackend
from tfq.backend.remote import RemoteBackend
from tfq.errors import BackendTypeError

logger = logging.getLogger(__name__)

__all__ = ["Backend", "QueryOptions", "create_backend", "peek_type"]


def peek_type(root_dir):
    """Backend type named in the pointer file, without loading the rest."""
    try:
        doc = read_pointer(root_dir)
    except OSError as e:
        raise BackendTypeError(f"failed to read backend file: {e}") from e
    backend_type = doc["backend"].get("type")
    if not backend_type:
        raise BackendTypeError(f"backend file has no type: {json.dumps(doc['backend'])}")
    return backend_type


def create_backend(root_dir=None, env_override="", opts=None, config=None):
    """Create the backend for a Terraform root directory.

    No backend file, state file or environment file:
        a bare RemoteBackend, good for queries that need no state.
    Only terraform.tfstate, or only .terraform/environment:
        LocalBackend (empty backend block, or local workspaces).
    .terraform/terraform.tfstate:
        dispatch on its backend type. cloud is returned as a RemoteBackend.
    """
    root_dir = resolve_root_dir(root_dir)
    kwargs = {"root_dir": root_dir, "env_override": env_override, "opts": opts, "config": config}

    has_pointer = (root_dir / POINTER_FILE).is_file()
    has_state = (root_dir / LOCAL_STATE_FILE).is_file()
    has_environment = (root_dir / ENVIRONMENT_FILE).is_file()

    if not has_pointer:
        if has_state or has_environment:
            logger.debug("backend: local (no backend file) in %s", root_dir)
            return LocalBackend(**kwargs).load()
        logger.debug("backend: bare remote for %s", root_dir)
        return RemoteBackend.bare(root_dir=root_dir, opts=opts, config=config)

    backend_type = peek_type(root_dir)
    logger.debug("backend: %s in %s", backend_type, root_dir)

    if backend_type == "cloud":
        from tfq.backend.cloud import CloudBackend
        return CloudBackend(**kwargs).load().to_remote()
    if backend_type == "local":
        return LocalBackend(**kwargs).load()
    if backend_type == "remote":
        return RemoteBackend(**kwargs).load()
    if backend_type == "s3":
        from tfq.backend.s3 import S3Backend
        return S3Backend(**kwargs).load()

    raise BackendTypeError(f"unknown backend type: {backend_type!r}")
