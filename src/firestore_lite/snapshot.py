from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Mapping, TypeVar

from firestore_lite.errors import NotFoundError
from firestore_lite.paths import FieldPath
from firestore_lite.storage.backend import get_field
from firestore_lite.values import Timestamp

if TYPE_CHECKING:
    from firestore_lite.reference import DocumentReference


T = TypeVar("T")


def _copy_value(value: Any) -> Any:
    # References and value types are immutable; only containers need copying.
    if isinstance(value, Mapping):
        return {key: _copy_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


class DocumentSnapshot(Generic[T]):
    """Immutable result of reading one document."""

    def __init__(
        self,
        reference: "DocumentReference[T]",
        *,
        exists: bool,
        fields: Mapping[str, Any] | None,
        read_time: Timestamp,
        create_time: Timestamp | None = None,
        update_time: Timestamp | None = None,
        strict: bool = False,
    ) -> None:
        self._reference = reference
        self._exists = exists
        self._fields = _copy_value(fields) if exists and fields is not None else None
        self._read_time = read_time
        self._create_time = create_time
        self._update_time = update_time
        self._strict = strict

    @property
    def reference(self) -> "DocumentReference[T]":
        return self._reference

    @property
    def id(self) -> str:
        return self._reference.id

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def read_time(self) -> Timestamp:
        return self._read_time

    @property
    def create_time(self) -> Timestamp | None:
        return self._create_time

    @property
    def update_time(self) -> Timestamp | None:
        return self._update_time

    def data(self) -> T | dict[str, Any] | None:
        """Return document data, converted when the reference has a converter.

        A missing document yields None, or raises NotFoundError in strict mode.
        """

        if not self._exists:
            if self._strict:
                raise NotFoundError(f"Document does not exist: {self._reference.path}")
            return None

        converter = self._reference.converter
        if converter is not None:
            return converter.from_firestore(self._raw())
        return _copy_value(self._fields or {})

    def get(self, field_path: str | FieldPath) -> Any:
        if not self._exists:
            if self._strict:
                raise NotFoundError(f"Document does not exist: {self._reference.path}")
            return None
        path = FieldPath.from_dotted(field_path)
        found, value = get_field(self._fields or {}, path)
        if not found:
            raise KeyError(path.to_api_repr())
        return _copy_value(value)

    def _raw(self) -> "DocumentSnapshot[Any]":
        return DocumentSnapshot(
            self._reference.with_converter(None),
            exists=self._exists,
            fields=self._fields,
            read_time=self._read_time,
            create_time=self._create_time,
            update_time=self._update_time,
            strict=self._strict,
        )

    def __repr__(self) -> str:
        return f"DocumentSnapshot(path={self._reference.path!r}, exists={self._exists})"
