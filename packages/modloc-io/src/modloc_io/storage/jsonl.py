"""JSONL file helpers shared by file-backed sinks."""

from __future__ import annotations

from pathlib import Path

from modloc_schemas.base import BaseSchema


def append_jsonl(path: Path, payload: BaseSchema) -> None:
    """Append one model as a JSON line, creating parent directories.

    Args:
        path: Destination file.
        payload: Model to serialize.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload_json = payload.model_dump_json(exclude_none=True)
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(payload_json + "\n")


def read_jsonl_lines(path: Path) -> list[str]:
    """Read the non-empty lines of a JSONL file.

    Args:
        path: Source file.

    Returns:
        list[str]: Raw JSON lines, empty when the file does not exist.
    """
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as handle:
        return [line for line in handle.read().splitlines() if line.strip()]
