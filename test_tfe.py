import io
import json
import urllib.error
import urllib.parse
from unittest.mock import MagicMock

import pytest

from tfq.paginate import RunListOptions, StateVersionListOptions, WorkspaceListOptions
from tfq.tfe import (
    DEFAULT_TIMEOUT,
    ResourceNotFoundError,
    TFEClient,
    TFEError,
    UnauthorizedError,
)


def opener_returning(*bodies):
    """An opener whose open() answers with each body in turn."""
    opener = MagicMock()
    opener.open.side_effect = [io.BytesIO(b) for b in bodies]
    return opener


def jsonapi(data, meta=None, included=None):
    doc = {"data": data}
    if meta is not None:
        doc["meta"] = meta
    if included is not None:
        doc["included"] = included
    return json.dumps(doc).encode()


def sent(opener, call=0):
    """(request, timeout) of the nth open() call."""
    args, kwargs = opener.open.call_args_list[call]
    return args[0], kwargs["timeout"]


def query(request):
    parts = urllib.parse.urlsplit(request.full_url)
    return parts.path, {k: v[0] for k, v in urllib.parse.parse_qs(parts.query).items()}


def http_error(code, reason="error"):
    return urllib.error.HTTPError("https://app.terraform.io/api/v2/x", code, reason, {}, None)


# ------------------------------------------------------------------
# Transport
# ------------------------------------------------------------------

def test_headers_and_timeout():
    opener = opener_returning(jsonapi({"id": "ws-1", "attributes": {"name": "net"}}))
    client = TFEClient("tfe.example.com", "secret", timeout=7, opener=opener)

    client.read_workspace("acme", "net")

    request, timeout = sent(opener)
    assert timeout == 7
    assert request.get_method() == "GET"
    assert request.get_header("Authorization") == "Bearer secret"
    assert request.get_header("Accept") == "application/vnd.api+json"
    assert request.full_url == "https://tfe.example.com/api/v2/organizations/acme/workspaces/net"


def test_no_token_no_authorization_header():
    opener = opener_returning(jsonapi({"id": "ws-1", "attributes": {}}))
    TFEClient("app.terraform.io", "", opener=opener).read_workspace("acme", "net")

    request, timeout = sent(opener)
    assert request.get_header("Authorization") is None
    assert timeout == DEFAULT_TIMEOUT


@pytest.mark.parametrize("code, error", [
    (401, UnauthorizedError),
    (404, ResourceNotFoundError),
])
def test_http_errors_are_mapped(code, error):
    opener = MagicMock()
    opener.open.side_effect = http_error(code)
    client = TFEClient("app.terraform.io", "t", opener=opener)

    with pytest.raises(error) as exc:
        client.read_workspace("acme", "net")
    assert exc.value.status == code


def test_other_http_errors_keep_status():
    opener = MagicMock()
    opener.open.side_effect = http_error(500, "Internal Server Error")
    client = TFEClient("app.terraform.io", "t", opener=opener)

    with pytest.raises(TFEError, match="HTTP 500") as exc:
        client.read_workspace("acme", "net")
    assert type(exc.value) is TFEError
    assert exc.value.status == 500


def test_connection_errors_are_wrapped():
    opener = MagicMock()
    opener.open.side_effect = urllib.error.URLError("connection refused")
    client = TFEClient("app.terraform.io", "t", opener=opener)

    with pytest.raises(TFEError, match="connection refused") as exc:
        client.read_workspace("acme", "net")
    assert exc.value.status is None
    assert isinstance(exc.value.__cause__, urllib.error.URLError)


def test_invalid_json_body():
    client = TFEClient("app.terraform.io", "t", opener=opener_returning(b"<html>"))
    with pytest.raises(TFEError, match="invalid JSON"):
        client.read_workspace("acme", "net")


# ------------------------------------------------------------------
# Resources
# ------------------------------------------------------------------

def test_path_segments_are_quoted():
    opener = opener_returning(jsonapi({"id": "ws-1", "attributes": {}}))
    TFEClient("app.terraform.io", "t", opener=opener).read_workspace("my org/x", "a b")

    request, _ = sent(opener)
    assert request.full_url.endswith("/organizations/my%20org%2Fx/workspaces/a%20b")


def test_list_state_versions_query_and_pagination():
    body = jsonapi(
        [{"id": "sv-1", "attributes": {
            "serial": 7,
            "created-at": "2024-03-01T10:00:00.123Z",
            "hosted-state-download-url": "https://archivist.example/sv-1",
        }}],
        meta={"pagination": {"current-page": 2, "next-page": 3, "total-pages": 4, "total-count": 31}},
    )
    opener = opener_returning(body)
    options = StateVersionListOptions(organization="acme", workspace="net", page_number=2, page_size=10)

    items, pagination = TFEClient("app.terraform.io", "t", opener=opener).list_state_versions(options)

    path, params = query(sent(opener)[0])
    assert path == "/api/v2/state-versions"
    assert params == {
        "page[number]": "2",
        "page[size]": "10",
        "filter[organization][name]": "acme",
        "filter[workspace][name]": "net",
    }
    assert pagination.next_page == 3
    assert pagination.total_count == 31
    assert items[0].serial == 7
    assert items[0].download_url == "https://archivist.example/sv-1"
    assert items[0].created_at.year == 2024
    assert items[0].created_at.utcoffset().total_seconds() == 0


def test_read_state_version_includes():
    body = jsonapi({"id": "sv-1", "attributes": {"serial": 3}}, included=[{"type": "runs", "id": "run-1"}])
    opener = opener_returning(body)

    sv = TFEClient("app.terraform.io", "t", opener=opener).read_state_version(
        "sv-1", include=["outputs", "run"])

    path, params = query(sent(opener)[0])
    assert path == "/api/v2/state-versions/sv-1"
    assert params == {"include": "outputs,run"}
    assert sv.included == [{"type": "runs", "id": "run-1"}]


def test_list_workspaces_reads_current_state_version():
    body = jsonapi([
        {"id": "ws-1", "attributes": {"name": "net"},
         "relationships": {"current-state-version": {"data": {"id": "sv-9", "type": "state-versions"}}}},
        {"id": "ws-2", "attributes": {"name": "empty"},
         "relationships": {"current-state-version": {"data": None}}},
        {"id": "ws-3", "attributes": {"name": "bare"}},
    ])
    opener = opener_returning(body)
    options = WorkspaceListOptions(search="ne", tags=["net", "prod"])

    items, _ = TFEClient("app.terraform.io", "t", opener=opener).list_workspaces("acme", options)

    path, params = query(sent(opener)[0])
    assert path == "/api/v2/organizations/acme/workspaces"
    assert params["search[name]"] == "ne"
    assert params["search[tags]"] == "net,prod"
    assert [w.current_state_version_id for w in items] == ["sv-9", None, None]
    assert [w.name for w in items] == ["net", "empty", "bare"]


def test_list_runs():
    body = jsonapi([{"id": "run-1", "attributes": {
        "status": "applied", "message": "nightly", "created-at": "2024-03-01T10:00:00Z"}}])
    opener = opener_returning(body)

    items, _ = TFEClient("app.terraform.io", "t", opener=opener).list_runs(
        "acme", RunListOptions(workspace_names="net"))

    path, params = query(sent(opener)[0])
    assert path == "/api/v2/organizations/acme/runs"
    assert params["filter[workspace_names]"] == "net"
    assert (items[0].id, items[0].status, items[0].message) == ("run-1", "applied", "nightly")


def test_download_uses_absolute_url_token_and_timeout():
    opener = opener_returning(b'{"serial": 4}')
    client = TFEClient("app.terraform.io", "secret", timeout=3, opener=opener)

    assert client.download("https://archivist.example/sv-1?sig=abc") == b'{"serial": 4}'

    request, timeout = sent(opener)
    assert request.full_url == "https://archivist.example/sv-1?sig=abc"
    assert request.get_header("Authorization") == "Bearer secret"
    assert request.get_header("Accept") == "application/json"
    assert timeout == 3
