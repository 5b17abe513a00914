import functools
import json
import os

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tfq import __version__, cache, crypto
from tfq.backend import QueryOptions, create_backend
from tfq.backend.base import DEFAULT_LIMIT, SelfDiffer
from tfq.backend.remote import RemoteBackend
from tfq.config import load_config
from tfq.credentials import load_tfq_credentials
from tfq.diff import compute_state_diff, display_state_diff, revisions_table
from tfq.errors import TfqError, UnsupportedOperationError
from tfq.log import setup_logging
from tfq.rootdir import parse_root_dir
from tfq.state import decode_document, load_state, resolve_passphrase

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging (overrides TFQ_LOG).")
def main(verbose):
    """tfq: query Terraform and OpenTofu state across backends."""
    load_tfq_credentials()
    setup_logging(verbose)


def common_options(f):
    """--host/--org/--workspace/--limit/--timeout, shared by every query."""
    @click.option("--host", default=None, help="HCP Terraform / TFE host.")
    @click.option("--org", default=None, help="Organization.")
    @click.option("--workspace", default=None, help="Workspace name.")
    @click.option("--limit", type=int, default=DEFAULT_LIMIT, show_default=True,
                  help="Maximum number of items to fetch.")
    @click.option("--timeout", type=float, default=None, help="Seconds before an API call gives up.")
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except TfqError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            raise SystemExit(1)
    return wrapper


def _split_args(args):
    """First arg is the root dir if it names one ("path" or "path::env")."""
    if args and ("::" in args[0] or os.path.isdir(args[0])):
        return args[0], list(args[1:])
    return ".", list(args)


def _backend(command, root_spec, **flags):
    try:
        root_dir, env = parse_root_dir(root_spec)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="ROOTDIR")
    opts = QueryOptions(command=command, **flags)
    config = load_config(start=root_dir, namespace=command)
    return create_backend(root_dir, env_override=env, opts=opts, config=config)


@main.command()
@click.argument("args", nargs=-1)
@click.option("--sv", default="0", show_default=True,
              help="State version: CSV~N, -N, serial, id prefix or a file path.")
@click.option("--diff", is_flag=True,
              help="Diff two state versions. ARGS pick them: none, one, two, or '+' to choose.")
@click.option("--diff-filter", default="check_results",
              help="Comma separated top-level keys left out of the diff.")
@click.option("--passphrase", default=None, help="Passphrase for encrypted state.")
@common_options
def sq(args, sv, diff, diff_filter, passphrase, host, org, workspace, limit, timeout):
    """Print a state document, or diff two of them.

    \b
    Examples:
        tfq sq
        tfq sq ./infra::prod --sv CSV~2
        tfq sq --diff
        tfq sq --diff 41 44
    """
    root_spec, diff_args = _split_args(args)
    backend = _backend(
        "sq", root_spec,
        host=host, org=org, workspace=workspace, sv=sv, limit=limit, diff=diff,
        diff_args=diff_args, passphrase=passphrase, timeout=timeout,
    )

    if not diff:
        click.echo(json.dumps(load_state(backend), indent=2))
        return

    if not isinstance(backend, SelfDiffer):
        raise UnsupportedOperationError(f"{backend.type_name()} backend can't diff state versions")

    states = backend.diff_states()
    if not states:
        return
    if any(crypto.is_encrypted(data) for data in states):
        passphrase = resolve_passphrase(passphrase)
    old, new = (decode_document(data, passphrase) for data in states)
    ignore = [key for key in diff_filter.split(",") if key]
    display_state_diff(compute_state_diff(old, new, ignore), console)


@main.command()
@click.argument("rootdir", default=".")
@click.option("--deep", is_flag=True, help="Re-read each version with outputs, run and creator.")
@common_options
def svq(rootdir, deep, host, org, workspace, limit, timeout):
    """List state versions, most recent first."""
    backend = _backend(
        "svq", rootdir,
        host=host, org=org, workspace=workspace, limit=limit, deep=deep, timeout=timeout,
    )
    records = backend.revisions()
    if not records:
        console.print("[dim]No state versions found.[/dim]")
        return
    console.print(revisions_table(records, title=f"State versions: {backend}"))


@main.command()
@click.argument("rootdir", default=".")
@common_options
def rq(rootdir, host, org, workspace, limit, timeout):
    """List runs for the workspace."""
    backend = _backend("rq", rootdir, host=host, org=org, workspace=workspace, limit=limit, timeout=timeout)
    runs = backend.runs()
    if not runs:
        console.print("[dim]No runs found.[/dim]")
        return

    table = Table(title="Runs")
    table.add_column("ID", style="bold cyan")
    table.add_column("Status", style="bold")
    table.add_column("Created", style="dim")
    table.add_column("Message", max_width=50)
    for run in runs:
        created = run.created_at.strftime("%Y-%m-%d %H:%M") if run.created_at else ""
        table.add_row(run.id, run.status, created, run.message)
    console.print(table)


@main.command()
@click.argument("rootdir", default=".")
@click.option("--search", default="", help="Only workspaces whose name contains this.")
@common_options
def wq(rootdir, search, host, org, workspace, limit, timeout):
    """List workspaces in the organization."""
    backend = _backend("wq", rootdir, host=host, org=org, workspace=workspace, limit=limit, timeout=timeout)
    if not isinstance(backend, RemoteBackend):
        backend = RemoteBackend.bare(root_dir=backend.root_dir, opts=backend.opts, config=backend.config)

    def augment(options):
        options.search = search

    workspaces = backend.workspaces(augmenter=augment if search else None)
    if not workspaces:
        console.print("[dim]No workspaces found.[/dim]")
        return

    table = Table(title=f"Workspaces: {backend.organization()}")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Current state version", style="dim")
    for ws in workspaces:
        table.add_row(ws.id, ws.name, ws.current_state_version_id or "")
    console.print(table)


@main.group("cache")
def cache_group():
    """Manage the local document cache."""


@cache_group.command("clean")
@click.option("--hours", type=int, default=None,
              help="Remove entries older than this. Defaults to config cache.clean.")
def cache_clean(hours):
    """Remove old entries from the cache."""
    try:
        if hours is None:
            hours = load_config(namespace="cache").get_int("cache.clean", 0)
        if not hours or hours <= 0:
            console.print("[yellow]Nothing to do: set --hours or cache.clean in config.[/yellow]")
            return
        removed = cache.purge(hours)
    except (TfqError, OSError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(1)
    console.print(f"[bold green]Removed {removed} cache file(s) from {cache.cache_dir()}.[/bold green]")
