from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from firestore_lite.paths import FieldPath, ResourcePath
from firestore_lite.values import Timestamp


class WriteKind(str, Enum):
    SET = "SET"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Write:
    """One mutation inside a commit.

    `fields` holds backend values only (no sentinels, no client references).
    `field_mask` is None for a full overwrite; otherwise only the listed paths
    are replaced, and a listed path absent from `fields` is removed.
    `transforms` are the field paths the backend sets to the commit time.
    """

    kind: WriteKind
    path: ResourcePath
    fields: dict[str, Any] = field(default_factory=dict)
    field_mask: tuple[FieldPath, ...] | None = None
    transforms: tuple[FieldPath, ...] = ()


@dataclass(frozen=True)
class DocumentRecord:
    path: ResourcePath
    exists: bool
    fields: dict[str, Any] | None
    read_time: Timestamp
    create_time: Timestamp | None = None
    update_time: Timestamp | None = None


@dataclass(frozen=True)
class CommitResult:
    commit_time: Timestamp
    write_times: list[Timestamp]


class Backend(Protocol):
    async def get_documents(self, paths: Sequence[ResourcePath]) -> list[DocumentRecord]:
        """Read documents. Missing documents are returned with exists=False, in request order."""

    async def commit(self, writes: Sequence[Write]) -> CommitResult:
        """Apply writes atomically and resolve server timestamps at commit time."""

    async def close(self) -> None:
        """Release transport resources."""


def leaf_paths(fields: Mapping[str, Any], *, prefix: FieldPath | None = None) -> list[FieldPath]:
    paths: list[FieldPath] = []
    for key, value in fields.items():
        path = prefix.child(key) if prefix is not None else FieldPath(key)
        if isinstance(value, Mapping) and value:
            paths.extend(leaf_paths(value, prefix=path))
        else:
            paths.append(path)
    return paths


def nest_field_paths(values: Mapping[FieldPath, Any]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for path, value in values.items():
        set_field(nested, path, value)
    return nested


def get_field(fields: Mapping[str, Any], path: FieldPath) -> tuple[bool, Any]:
    current: Any = fields
    for segment in path.segments:
        if not isinstance(current, Mapping) or segment not in current:
            return False, None
        current = current[segment]
    return True, current


def set_field(fields: dict[str, Any], path: FieldPath, value: Any) -> None:
    current = fields
    for segment in path.segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[path.segments[-1]] = value


def delete_field(fields: dict[str, Any], path: FieldPath) -> None:
    current: Any = fields
    for segment in path.segments[:-1]:
        current = current.get(segment) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(path.segments[-1], None)
