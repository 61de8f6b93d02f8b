"""I/O utilities for JSON files.

orjson-backed; the published reference file keeps record key order, so keys
are only sorted when asked for (manifests).
"""
from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import orjson

from authref.authref_types import ServiceAuthorizationReference


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def dumps_json(obj: Any, *, pretty: bool = True, sort_keys: bool = False) -> bytes:
    """Serialize *obj*; pretty output is 2-space indented with a final newline."""
    opts = orjson.OPT_APPEND_NEWLINE
    if pretty:
        opts |= orjson.OPT_INDENT_2
    if sort_keys:
        opts |= orjson.OPT_SORT_KEYS
    return orjson.dumps(obj, option=opts)


def save_json(
    obj: Any,
    path: Path,
    *,
    pretty: bool = True,
    sort_keys: bool = False,
) -> None:
    """Save an object as JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps_json(obj, pretty=pretty, sort_keys=sort_keys))


def save_references(
    references: Iterable[ServiceAuthorizationReference],
    path: Path,
) -> int:
    """Write the reference array to *path*; returns the number of services."""
    payload = [ref.to_dict() for ref in references]
    save_json(payload, path)
    return len(payload)
