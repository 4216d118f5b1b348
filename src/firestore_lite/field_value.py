from __future__ import annotations

from typing import Any, Mapping

from firestore_lite.errors import InvalidArgumentError
from firestore_lite.paths import FieldPath


class ServerTimestamp:
    """Placeholder replaced by the backend with the commit time."""

    _instance: "ServerTimestamp | None" = None

    def __new__(cls) -> "ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = ServerTimestamp()


class FieldValue:
    @staticmethod
    def server_timestamp() -> ServerTimestamp:
        return SERVER_TIMESTAMP


def is_sentinel(value: Any) -> bool:
    return isinstance(value, ServerTimestamp)


def extract_server_timestamps(
    data: Mapping[str, Any],
    *,
    prefix: FieldPath | None = None,
) -> tuple[dict[str, Any], list[FieldPath]]:
    """Split a payload into plain fields and server timestamp field paths.

    Maps emptied only by sentinel removal are dropped from the plain fields.
    """

    fields: dict[str, Any] = {}
    transforms: list[FieldPath] = []
    for key, value in data.items():
        path = prefix.child(key) if prefix is not None else FieldPath(key)
        if is_sentinel(value):
            transforms.append(path)
        elif isinstance(value, Mapping):
            nested, nested_transforms = extract_server_timestamps(value, prefix=path)
            transforms.extend(nested_transforms)
            if nested or not nested_transforms:
                fields[key] = nested
        elif isinstance(value, (list, tuple)):
            _reject_nested_sentinels(value, path)
            fields[key] = value
        else:
            fields[key] = value
    return fields, transforms


def _reject_nested_sentinels(values: list[Any] | tuple[Any, ...], path: FieldPath) -> None:
    for item in values:
        if is_sentinel(item):
            raise InvalidArgumentError(f"SERVER_TIMESTAMP is not allowed inside an array (field {path}).")
        if isinstance(item, Mapping):
            _reject_nested_sentinels(list(item.values()), path)
        elif isinstance(item, (list, tuple)):
            _reject_nested_sentinels(item, path)
