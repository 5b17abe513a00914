"""Revision records and the revision address resolver.

A revision list is always ordered most recent first, so index 0 is the
current state. A spec addresses one record:

    CSV~N    N steps back from the most recent (CSV~0 is current)
    -N, 0    same as CSV~N
    N > 0    the record whose serial is N
    path     an existing file on disk, bypassing the list (serial 0)
    other    first record whose identity starts with the spec
"""

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from tfq.errors import (
    IdentityNotFoundError,
    InvalidSpecError,
    OffsetOutOfRangeError,
    SerialNotFoundError,
)

CURRENT = "CSV~0"
PREVIOUS = "CSV~1"

_INT = re.compile(r"[+-]?[0-9]+")


@dataclass
class RevisionRecord:
    """One historical snapshot of a state document."""

    identity: str
    """Hosted-API id, local file name, or object version id."""

    created_at: Optional[datetime]

    serial: int
    """The document's own revision counter."""

    locator: str = ""
    """Download URL or local path. Empty when the backend fetches by identity."""

    local_file: bool = False
    """True for records synthesized from a file path spec."""

    attributes: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"RevisionRecord(identity={self.identity!r}, serial={self.serial})"


def parse_serial(data):
    """Return the top-level "serial" of a state document.

    Raises ValueError when data isn't a JSON object.
    """
    doc = json.loads(data)
    if not isinstance(doc, dict):
        raise ValueError("state document is not a JSON object")
    serial = doc.get("serial", 0)
    if isinstance(serial, bool) or not isinstance(serial, (int, float)):
        return 0
    return int(serial)


def sort_descending(records: List[RevisionRecord]) -> List[RevisionRecord]:
    return sorted(
        records,
        key=lambda r: r.created_at.timestamp() if r.created_at else float("-inf"),
        reverse=True,
    )


def _is_int(spec):
    return _INT.fullmatch(spec) is not None


def _by_offset(index, records):
    if index < 0 or index > len(records) - 1:
        raise OffsetOutOfRangeError(
            f"index {index} out of range for versions of length {len(records)}"
        )
    return records[index]


def _resolve_offset(spec, records):
    _, _, raw = spec.partition("~")
    if not _is_int(raw):
        raise InvalidSpecError(f"invalid CSV index: {raw!r}")
    return _by_offset(int(raw), records)


def _resolve_numeric(spec, records):
    value = int(spec)
    if value <= 0:
        return _by_offset(-value, records)

    for record in records:
        if record.serial == value:
            return record
    raise SerialNotFoundError(f"failed to find state version with serial {value}")


def _resolve_file(spec):
    return RevisionRecord(
        identity=spec,
        created_at=None,
        serial=0,
        locator=spec,
        local_file=True,
    )


def _resolve_identity(spec, records):
    for record in records:
        if record.identity.startswith(spec):
            return record
    raise IdentityNotFoundError(f"failed to find state version with ID prefix: {spec}")


def resolve_spec(spec, records):
    """Resolve a single spec against a most-recent-first record list."""
    spec = spec.strip()
    if spec.upper().startswith("CSV~"):
        return _resolve_offset(spec, records)
    if _is_int(spec):
        return _resolve_numeric(spec, records)
    if spec and os.path.exists(spec):
        return _resolve_file(spec)
    return _resolve_identity(spec, records)


def resolve(records, *specs):
    """Resolve each spec in order. No specs means the most recent record."""
    if not specs:
        specs = (CURRENT,)
    return [resolve_spec(spec, records) for spec in specs]
