"""S3-backed state.

With bucket versioning on, every object version at the state key is one
revision:

    s3://<bucket>/<key>                              default workspace
    s3://<bucket>/<workspace_key_prefix>/<env>/<key> any other workspace

Version bodies never change, so each one is cached by its version id.
"""

import logging
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tfq import cache
from tfq.backend.base import Backend, SelfDiffer, load_backend_block, read_environment
from tfq.errors import BackendError, UnsupportedOperationError
from tfq.revisions import RevisionRecord, parse_serial, sort_descending

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_PREFIX = "env:"


@dataclass
class S3Config:
    bucket: str = ""
    key: str = ""
    workspace_key_prefix: str = ""
    region: str = ""
    encrypt: bool = False
    kms_key_id: str = ""

    @classmethod
    def from_block(cls, block):
        cfg = block.get("config") or {}
        return cls(
            bucket=cfg.get("bucket") or "",
            key=cfg.get("key") or "",
            workspace_key_prefix=cfg.get("workspace_key_prefix") or "",
            region=cfg.get("region") or "",
            encrypt=bool(cfg.get("encrypt")),
            kms_key_id=cfg.get("kms_key_id") or "",
        )


def _error_code(e):
    return (getattr(e, "response", None) or {}).get("Error", {}).get("Code", "")


class S3Backend(SelfDiffer, Backend):
    """Terraform's s3 backend, read through object versions."""

    TYPE = "s3"

    def __init__(self, root_dir=None, env_override="", opts=None, config=None):
        super().__init__(root_dir, env_override, opts, config)
        self.backend_config = S3Config()
        self.hash = 0
        self._s3 = None

    def load(self):
        doc, block = load_backend_block(self.root_dir, self.TYPE)
        self.version = doc.get("version", self.version)
        self.terraform_version = doc.get("terraform_version", self.terraform_version)
        self.hash = block.get("hash", 0)
        self.backend_config = S3Config.from_block(block)
        return self

    @property
    def s3(self):
        if self._s3 is None:
            region = self.backend_config.region or None
            self._s3 = boto3.client("s3", region_name=region)
        return self._s3

    def workspace(self):
        return self.env_override or read_environment(self.root_dir) or "default"

    def object_key(self):
        """Key of the state object for the selected workspace."""
        cfg = self.backend_config
        env = self.workspace()
        if env == "default":
            return cfg.key
        prefix = cfg.workspace_key_prefix or DEFAULT_WORKSPACE_PREFIX
        return f"{prefix}/{env}/{cfg.key}"

    def cache_namespace(self):
        cfg = self.backend_config
        return [cfg.bucket, cfg.workspace_key_prefix, cfg.key]

    def _raise(self, e, what):
        code = _error_code(e)
        if code == "NoSuchBucket":
            raise BackendError(f"S3 bucket '{self.backend_config.bucket}' does not exist") from e
        raise BackendError(f"failed to {what}: {e}") from e

    def _get_body(self, key, version_id):
        def fetch():
            try:
                response = self.s3.get_object(
                    Bucket=self.backend_config.bucket, Key=key, VersionId=version_id
                )
                return response["Body"].read()
            except (ClientError, BotoCoreError) as e:
                self._raise(e, f"get s3://{self.backend_config.bucket}/{key}?versionId={version_id}")

        return cache.fetch_through(self.cache_namespace(), version_id, fetch)

    def runs(self):
        raise UnsupportedOperationError("runs are not available for an s3 backend")

    def _list_revisions(self, augmenter=None):
        key = self.object_key()
        bucket = self.backend_config.bucket

        versions = []
        markers = []
        try:
            paginator = self.s3.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=bucket, Prefix=key):
                versions.extend(page.get("Versions", []))
                markers.extend(page.get("DeleteMarkers", []))
        except (ClientError, BotoCoreError) as e:
            self._raise(e, f"list object versions of s3://{bucket}/{key}")

        # Prefix listing also returns lock files and anything else under key.
        latest_delete = None
        for marker in markers:
            if marker.get("Key") != key:
                logger.debug("discarding delete marker %s", marker.get("Key"))
                continue
            modified = marker.get("LastModified")
            if modified is not None and (latest_delete is None or modified > latest_delete):
                latest_delete = modified

        records = []
        for version in versions:
            if version.get("Key") != key:
                logger.debug("discarding version of %s", version.get("Key"))
                continue
            version_id = version.get("VersionId")
            modified = version.get("LastModified")
            if not version_id or modified is None:
                continue
            if latest_delete is not None and modified < latest_delete:
                continue

            try:
                serial = parse_serial(self._get_body(key, version_id))
            except ValueError:
                serial = 0
            records.append(RevisionRecord(
                identity=version_id,
                created_at=modified,
                serial=serial,
                locator=key,
            ))

        current = []
        for record in sort_descending(records):
            if record.serial == 0:
                break
            current.append(record)
        return current[:self.opts.limit]

    def _fetch_document(self, record):
        cache.safe_purge(self.config.get_int("cache.clean", 0))
        return self._get_body(record.locator or self.object_key(), record.identity)

    def __str__(self):
        return f"s3://{self.backend_config.bucket}/{self.object_key()}"
