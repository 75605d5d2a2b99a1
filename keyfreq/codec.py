"""
Persistence Codec - text encoding of the store.

The store is a JSON array with one [context, action, count] record per
line, so version-control diffs of the file stay one line per changed
counter:

    [
    ["mode-a", "cmd-x", 3],
    ["mode-a", "cmd-y", 1]
    ]

Decoding is all-or-nothing: any malformed record raises CorruptStore.
A missing file reads as an empty store.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Union

from .errors import KeyfreqError
from .table import CounterKey

logger = logging.getLogger(__name__)

Record = tuple[CounterKey, int]


class CorruptStore(KeyfreqError):
    """The persisted store could not be decoded."""

    def __init__(self, message: str, path: Union[str, Path, None] = None) -> None:
        self.path = str(path) if path is not None else None
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


def encode(records: Iterable[Record]) -> str:
    """Serialize records in the given order, one per line."""
    lines = [
        json.dumps([key.context, key.action, count], ensure_ascii=False)
        for key, count in records
    ]
    if not lines:
        return "[]\n"
    return "[\n" + ",\n".join(lines) + "\n]\n"


def decode(data: Union[str, bytes]) -> list[Record]:
    """
    Parse store text back into records.

    Raises:
        CorruptStore: if the text is not a JSON array of
            [str, str, non-negative int] records
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptStore(f"not valid UTF-8 ({exc})")

    try:
        doc = json.loads(data)
    except json.JSONDecodeError as exc:
        raise CorruptStore(f"malformed store: {exc}")

    if not isinstance(doc, list):
        raise CorruptStore(f"expected a list of records, got {type(doc).__name__}")

    records: list[Record] = []
    for i, item in enumerate(doc):
        if not isinstance(item, list) or len(item) != 3:
            raise CorruptStore(f"record {i}: expected [context, action, count], got {item!r}")
        context, action, count = item
        if not isinstance(context, str) or not isinstance(action, str):
            raise CorruptStore(f"record {i}: context and action must be strings, got {item!r}")
        # bool is an int subclass
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise CorruptStore(f"record {i}: count must be a non-negative integer, got {count!r}")
        records.append((CounterKey(context, action), count))
    return records


def read_store(path: Union[str, Path]) -> list[Record]:
    """Read and decode the store at path. Missing file → []."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.debug(f"[STORE] No store at {path}, treating as empty")
        return []
    try:
        return decode(raw)
    except CorruptStore as exc:
        raise CorruptStore(str(exc), path) from exc


def write_store(path: Union[str, Path], records: Iterable[Record]) -> None:
    """
    Replace the store at path with records.

    Writes a temp file in the same directory and moves it over the
    store, so readers see the old or the new content, never a partial one.
    """
    path = Path(path)
    text = encode(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    logger.debug(f"[STORE] Wrote {len(text)} bytes to {path}")
