import difflib
import json

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text


def _lines(doc, ignore=()):
    doc = {k: v for k, v in doc.items() if k not in ignore}
    return json.dumps(doc, indent=2, sort_keys=True).splitlines()


def compute_state_diff(old, new, ignore=()):
    """Line diff of two parsed state documents.

    Returns a list of (tag, line) with tag "+", "-" or " ", or [] when the
    documents are identical. Top-level keys in ignore are dropped from both.
    """
    old_lines = _lines(old, ignore)
    new_lines = _lines(new, ignore)
    if old_lines == new_lines:
        return []

    lines = []
    for tag, i1, i2, j1, j2 in difflib.SequenceMatcher(None, old_lines, new_lines).get_opcodes():
        if tag == "equal":
            for line in old_lines[i1:i2]:
                lines.append((" ", line))
        elif tag == "delete":
            for line in old_lines[i1:i2]:
                lines.append(("-", line))
        elif tag == "insert":
            for line in new_lines[j1:j2]:
                lines.append(("+", line))
        elif tag == "replace":
            for line in old_lines[i1:i2]:
                lines.append(("-", line))
            for line in new_lines[j1:j2]:
                lines.append(("+", line))
    return lines


def display_state_diff(lines, console=None):
    """Render a state diff with GitHub-style colors."""
    console = console or Console()

    if not lines:
        console.print("The states are identical.")
        return

    for tag, content in lines:
        if tag == "+":
            console.print(Text(f"+ {content}", style="green"))
        elif tag == "-":
            console.print(Text(f"- {content}", style="red"))
        else:
            console.print(Text(f"  {content}", style="dim"))

    insertions = sum(1 for tag, _ in lines if tag == "+")
    deletions = sum(1 for tag, _ in lines if tag == "-")
    console.print()
    console.print(f"[green]+{insertions} insertions[/green] | [red]-{deletions} deletions[/red]")


def revisions_table(records, title="State versions"):
    table = Table(title=title)
    table.add_column("#", style="dim", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Serial", justify="right")
    table.add_column("Created")

    for i, record in enumerate(records):
        created = record.created_at.strftime("%Y-%m-%d %H:%M:%S") if record.created_at else ""
        table.add_row(str(i), record.identity, str(record.serial), created)
    return table


def select_revisions(records, console=None, prompt=None):
    """Let the user pick two revisions to diff.

    Returns [newer, older] in list order, or [] if the user backs out with an
    empty answer or Ctrl-C.
    """
    console = console or Console()
    prompt = prompt or (lambda text: click.prompt(text, default="", show_default=False))

    if len(records) < 2:
        console.print("[yellow]Need at least two state versions to diff.[/yellow]")
        return []

    console.print(revisions_table(records))
    try:
        answer = prompt("Two versions to diff (e.g. 0 3)").strip()
    except (KeyboardInterrupt, EOFError, click.Abort):
        return []
    if not answer:
        return []

    try:
        picks = sorted({int(part) for part in answer.replace(",", " ").split()})
    except ValueError:
        console.print(f"[red]Not a list of version numbers: {answer}[/red]")
        return []
    if len(picks) != 2 or picks[0] < 0 or picks[1] >= len(records):
        console.print("[red]Pick exactly two versions from the list.[/red]")
        return []

    return [records[picks[0]], records[picks[1]]]
