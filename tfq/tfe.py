"""Minimal HCP Terraform / Terraform Enterprise API client.

Covers only the read calls the query layer needs: workspaces, state
versions, runs and raw state downloads. Responses are JSON:API documents.
Every request, raw downloads included, honours the client timeout.
"""

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from tfq.paginate import Pagination

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
API_PREFIX = "/api/v2"
CONTENT_TYPE = "application/vnd.api+json"


class TFEError(Exception):
    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class UnauthorizedError(TFEError):
    pass


class ResourceNotFoundError(TFEError):
    pass


def parse_time(value):
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class Workspace:
    id: str
    name: str
    current_state_version_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_jsonapi(cls, data):
        attrs = data.get("attributes") or {}
        csv = ((data.get("relationships") or {}).get("current-state-version") or {}).get("data")
        return cls(
            id=data.get("id", ""),
            name=attrs.get("name", ""),
            current_state_version_id=csv.get("id") if csv else None,
            attributes=attrs,
        )


@dataclass
class StateVersion:
    id: str
    serial: int
    created_at: Optional[datetime]
    download_url: str = ""
    json_download_url: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)
    included: list = field(default_factory=list)

    @classmethod
    def from_jsonapi(cls, data, included=None):
        attrs = data.get("attributes") or {}
        return cls(
            id=data.get("id", ""),
            serial=int(attrs.get("serial") or 0),
            created_at=parse_time(attrs.get("created-at")),
            download_url=attrs.get("hosted-state-download-url") or "",
            json_download_url=attrs.get("hosted-json-state-download-url") or "",
            attributes=attrs,
            included=included or [],
        )


@dataclass
class Run:
    id: str
    status: str
    created_at: Optional[datetime]
    message: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_jsonapi(cls, data):
        attrs = data.get("attributes") or {}
        return cls(
            id=data.get("id", ""),
            status=attrs.get("status", ""),
            created_at=parse_time(attrs.get("created-at")),
            message=attrs.get("message") or "",
            attributes=attrs,
        )


class TFEClient:
    """Read-only client bound to one host and token."""

    def __init__(self, host, token, timeout=DEFAULT_TIMEOUT, opener=None):
        self.host = host
        self.token = token
        self.timeout = timeout
        self.base_url = f"https://{host}"
        self._opener = opener or urllib.request.build_opener()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, accept=CONTENT_TYPE):
        headers = {"Accept": accept}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path, params=None):
        url = path if path.startswith("http") else f"{self.base_url}{API_PREFIX}{path}"
        if params:
            url += "?" + urllib.parse.urlencode(params)
        return url

    def _open(self, url, accept=CONTENT_TYPE):
        req = urllib.request.Request(url, headers=self._headers(accept), method="GET")
        logger.debug("GET %s", url)
        try:
            with self._opener.open(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            if e.code == 401:
                raise UnauthorizedError("unauthorized", status=401) from e
            if e.code == 404:
                raise ResourceNotFoundError("resource not found", status=404) from e
            raise TFEError(f"HTTP {e.code}: {e.reason}", status=e.code) from e
        except urllib.error.URLError as e:
            raise TFEError(f"request to {url} failed: {e.reason}") from e

    def _get(self, path, params=None):
        body = self._open(self._url(path, params))
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise TFEError(f"invalid JSON from {path}: {e}") from e

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def read_workspace(self, organization, name):
        quoted = urllib.parse.quote(organization, safe="")
        doc = self._get(f"/organizations/{quoted}/workspaces/{urllib.parse.quote(name, safe='')}")
        return Workspace.from_jsonapi(doc.get("data") or {})

    def list_workspaces(self, organization, options):
        quoted = urllib.parse.quote(organization, safe="")
        doc = self._get(f"/organizations/{quoted}/workspaces", options.query_params())
        items = [Workspace.from_jsonapi(d) for d in doc.get("data") or []]
        return items, Pagination.from_meta(doc.get("meta"))

    def list_state_versions(self, options):
        doc = self._get("/state-versions", options.query_params())
        items = [StateVersion.from_jsonapi(d) for d in doc.get("data") or []]
        return items, Pagination.from_meta(doc.get("meta"))

    def read_state_version(self, state_version_id, include=None):
        params = {"include": ",".join(include)} if include else None
        doc = self._get(f"/state-versions/{urllib.parse.quote(state_version_id, safe='')}", params)
        return StateVersion.from_jsonapi(doc.get("data") or {}, doc.get("included"))

    def list_runs(self, organization, options):
        quoted = urllib.parse.quote(organization, safe="")
        doc = self._get(f"/organizations/{quoted}/runs", options.query_params())
        items = [Run.from_jsonapi(d) for d in doc.get("data") or []]
        return items, Pagination.from_meta(doc.get("meta"))

    def download(self, url):
        """Fetch a raw state document from a hosted download URL."""
        return self._open(url, accept="application/json")
