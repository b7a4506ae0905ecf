"""
Output writers: residual difference dumps and run status files.

A residual dump is two files:

    <name>        human-readable, one block per difference
    <name>.json   machine-readable record, same order

Absent node fields are written as the string "null" in the JSON record.
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import LoadError, SinkError
from .treediff import Difference, DifferenceKind, NodeDetail

NULL = "null"

PathLike = Union[str, Path]


def _or_null(value: Optional[str]) -> str:
    return NULL if value is None else value


def _or_none(value: Optional[str]) -> Optional[str]:
    return None if value is None or value == NULL else value


def _side(prefix: str, detail: NodeDetail) -> Dict[str, str]:
    return {
        f"{prefix}_parent": _or_null(detail.parent_name),
        f"{prefix}_value": _or_null(detail.value),
        f"{prefix}_xpath": _or_null(detail.path),
    }


def difference_record(difference: Difference) -> Dict[str, Any]:
    return {
        "id": difference.id,
        "kind": difference.kind.name,
        "control_node": _side("control_node", difference.control),
        "test_node": _side("test_node", difference.test),
    }


def format_differences(differences: Sequence[Difference]) -> str:
    blocks = [
        f"--- Difference {d.id} at {d.test.path} ---\n{d}\n\n"
        for d in differences
    ]
    return "".join(blocks)


def dump_differences(differences: Sequence[Difference], path: PathLike) -> Path:
    """
    Write the text dump at ``path`` and the JSON record at ``path.json``.
    Returns the text dump path.
    """
    path = Path(path)
    json_path = path.with_name(path.name + ".json")
    payload = {"differences": [difference_record(d) for d in differences]}

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(format_differences(differences), encoding="utf-8")
        json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise SinkError(f"cannot write differences to {path}: {e}") from e

    return path


def read_difference_dump(path: PathLike) -> List[str]:
    """Lines of a text dump."""
    try:
        return Path(path).read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(f"cannot read difference dump {path}: {e}") from e


def _detail(prefix: str, record: Dict[str, str]) -> NodeDetail:
    return NodeDetail(
        path=_or_none(record.get(f"{prefix}_xpath")),
        value=_or_none(record.get(f"{prefix}_value")),
        parent_name=_or_none(record.get(f"{prefix}_parent")),
    )


def read_difference_records(path: PathLike) -> List[Difference]:
    """
    Decode a JSON record back into Differences.

    A node whose value really was the string "null" reads back as absent.
    """
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return [
            Difference(
                DifferenceKind(item["id"]),
                _detail("control_node", item["control_node"]),
                _detail("test_node", item["test_node"]),
            )
            for item in payload["differences"]
        ]
    except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise LoadError(f"cannot read difference record {path}: {e}") from e


def write_status(path: Path, **kv: Any) -> Path:
    """
    Write a JSON file with the outcome of a run.

    Example:
        write_status(Path("out/health.json"), command="compare", flagged=2, errors=0)
    """
    payload: Dict[str, Any] = {
        "ts": int(time.time()),
        **kv
    }

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as e:
        raise SinkError(f"cannot write status to {path}: {e}") from e
    return path
