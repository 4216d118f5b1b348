from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from firestore_lite.converter import apply_to_firestore
from firestore_lite.encoding import encode_fields, encode_value
from firestore_lite.errors import FirestoreError, GrpcStatus, InvalidArgumentError
from firestore_lite.field_value import extract_server_timestamps, is_sentinel
from firestore_lite.paths import FieldPath
from firestore_lite.reference import DocumentReference
from firestore_lite.storage.backend import Write, WriteKind, leaf_paths, nest_field_paths
from firestore_lite.values import Timestamp

if TYPE_CHECKING:
    from firestore_lite.client import Firestore


@dataclass(frozen=True)
class WriteResult:
    write_time: Timestamp


class WriteBatch:
    """Collects writes and commits them atomically."""

    def __init__(self, client: "Firestore") -> None:
        self._client = client
        self._writes: list[Write] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._writes)

    def set(self, reference: DocumentReference[Any], data: Any, *, merge: bool = False) -> "WriteBatch":
        fields, transforms = self._prepare(reference, data)
        field_mask = tuple(leaf_paths(fields)) if merge else None
        self._append(Write(WriteKind.SET, reference.resource_path, fields, field_mask, tuple(transforms)))
        return self

    def create(self, reference: DocumentReference[Any], data: Any) -> "WriteBatch":
        fields, transforms = self._prepare(reference, data)
        self._append(Write(WriteKind.CREATE, reference.resource_path, fields, None, tuple(transforms)))
        return self

    def update(self, reference: DocumentReference[Any], data: Mapping[str, Any]) -> "WriteBatch":
        """Replace the given fields of an existing document.

        Keys are dotted field paths or FieldPath objects.
        """

        self._check_reference(reference)
        if not isinstance(data, Mapping) or not data:
            raise InvalidArgumentError("update() requires a non-empty mapping.")

        values: dict[FieldPath, Any] = {}
        transforms: list[FieldPath] = []
        for key, value in data.items():
            path = FieldPath.from_dotted(key)
            for existing in [*values, *transforms]:
                if existing.is_prefix_of(path) or path.is_prefix_of(existing):
                    raise InvalidArgumentError(f"Field path {path} conflicts with {existing}.")
            if is_sentinel(value):
                transforms.append(path)
            elif isinstance(value, Mapping):
                # A map value replaces the whole field, sentinels inside it included.
                nested, nested_transforms = extract_server_timestamps(value, prefix=path)
                values[path] = encode_value(nested)
                transforms.extend(nested_transforms)
            else:
                values[path] = encode_value(value)

        self._append(
            Write(
                WriteKind.UPDATE,
                reference.resource_path,
                nest_field_paths(values),
                tuple(values),
                tuple(transforms),
            )
        )
        return self

    def delete(self, reference: DocumentReference[Any]) -> "WriteBatch":
        self._check_reference(reference)
        self._append(Write(WriteKind.DELETE, reference.resource_path))
        return self

    async def commit(self) -> list[WriteResult]:
        if self._committed:
            raise FirestoreError("Write batch has already been committed.", code=GrpcStatus.FAILED_PRECONDITION)
        self._committed = True
        if not self._writes:
            return []
        result = await self._client._commit(self._writes)
        return [WriteResult(write_time=write_time) for write_time in result.write_times]

    def _prepare(self, reference: DocumentReference[Any], data: Any) -> tuple[dict[str, Any], list[FieldPath]]:
        self._check_reference(reference)
        mapping = apply_to_firestore(reference.converter, data)
        fields, transforms = extract_server_timestamps(mapping)
        return encode_fields(fields), transforms

    def _check_reference(self, reference: DocumentReference[Any]) -> None:
        if not isinstance(reference, DocumentReference):
            raise InvalidArgumentError(f"Expected DocumentReference, got {type(reference).__name__}.")
        if reference.client is not self._client:
            raise InvalidArgumentError("Document reference belongs to a different client.")

    def _append(self, write: Write) -> None:
        if self._committed:
            raise FirestoreError("Write batch has already been committed.", code=GrpcStatus.FAILED_PRECONDITION)
        self._writes.append(write)
