import json
import time

import pytest

from conftest import write_pointer, write_state
from tfq.backend.base import QueryOptions
from tfq.backend.local import LocalBackend
from tfq.errors import BackendTypeError, UnsupportedOperationError


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "infra"
    now = time.time()
    write_state(root / "terraform.tfstate", 5, mtime=now - 60, vpc="vpc-new")
    write_state(root / "terraform.tfstate.backup", 4, mtime=now - 3600, vpc="vpc-old")
    return root


def test_state_and_backup(root):
    be = LocalBackend(root_dir=root).load()

    records = be.revisions()

    assert [r.serial for r in records] == [5, 4]
    assert [r.identity for r in records] == ["terraform.tfstate", "terraform.tfstate.backup"]
    assert json.loads(be.state())["serial"] == 5


def test_states_by_spec(root):
    be = LocalBackend(root_dir=root).load()

    previous, current = be.states("CSV~1", "CSV~0")

    assert json.loads(previous)["serial"] == 4
    assert json.loads(current)["serial"] == 5
    assert json.loads(be.states("4")[0])["resources"][0]["value"] == "vpc-old"


def test_sv_option(root):
    be = LocalBackend(root_dir=root, opts=QueryOptions(sv="CSV~1")).load()
    assert json.loads(be.state())["serial"] == 4


def test_unparseable_files_are_skipped(root):
    (root / "terraform.tfstate.broken").write_text("{truncated")
    (root / "terraform.tfstate.d").mkdir()

    be = LocalBackend(root_dir=root).load()

    assert [r.serial for r in be.revisions()] == [5, 4]


def test_revisions_are_memoized(root):
    be = LocalBackend(root_dir=root).load()
    first = be.revisions()
    write_state(root / "terraform.tfstate.1700000000.backup", 3)

    assert be.revisions() is first


def test_empty_listing_is_memoized(tmp_path):
    be = LocalBackend(root_dir=tmp_path)
    assert be.revisions() == []
    assert be._revisions == []


def test_workspace_directory(tmp_path):
    write_state(tmp_path / "terraform.tfstate.d" / "prod" / "terraform.tfstate", 9)
    write_state(tmp_path / "terraform.tfstate", 1)

    assert [r.serial for r in LocalBackend(tmp_path, env_override="prod").load().revisions()] == [9]

    (tmp_path / ".terraform").mkdir()
    (tmp_path / ".terraform" / "environment").write_text("prod\n")
    assert [r.serial for r in LocalBackend(tmp_path).load().revisions()] == [9]


def test_configured_path_and_workspace_dir(tmp_path):
    write_pointer(tmp_path, "local", {"path": "state/main.tfstate", "workspace_dir": "ws"})
    write_state(tmp_path / "ws" / "dev" / "main.tfstate", 12)

    be = LocalBackend(tmp_path, env_override="dev").load()

    assert be.path == "state/main.tfstate"
    assert [r.serial for r in be.revisions()] == [12]


def test_nested_configured_path(tmp_path):
    write_pointer(tmp_path, "local", {"path": "state/main.tfstate"})
    write_state(tmp_path / "state" / "main.tfstate", 12)
    write_state(tmp_path / "main.tfstate", 3)

    be = LocalBackend(tmp_path).load()

    assert [r.serial for r in be.revisions()] == [12]
    assert json.loads(be.state())["serial"] == 12
    assert str(be) == str(tmp_path / "state" / "main.tfstate")


def test_wrong_pointer_type(tmp_path):
    write_pointer(tmp_path, "s3", {"bucket": "b"})
    with pytest.raises(BackendTypeError):
        LocalBackend(tmp_path).load()


def test_file_spec_reads_local_document(root, tmp_path):
    saved = write_state(tmp_path / "saved.json", 77)
    be = LocalBackend(root_dir=root).load()

    assert json.loads(be.states(str(saved))[0])["serial"] == 77


def test_runs_unsupported(root):
    with pytest.raises(UnsupportedOperationError):
        LocalBackend(root_dir=root).runs()


def test_self_diff_defaults_to_previous_vs_current(root):
    be = LocalBackend(root_dir=root).load()
    old, new = be.diff_states([])
    assert json.loads(old)["serial"] == 4
    assert json.loads(new)["serial"] == 5


def test_str_is_state_path(root):
    assert str(LocalBackend(root_dir=root).load()) == str(root / "terraform.tfstate")
    assert LocalBackend(root_dir=root).type_name() == "local"
