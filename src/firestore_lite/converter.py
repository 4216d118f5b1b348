from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, Mapping, Protocol, TypeVar

from firestore_lite.errors import ConverterError, InvalidArgumentError

if TYPE_CHECKING:
    from firestore_lite.snapshot import DocumentSnapshot


T = TypeVar("T")


class FirestoreDataConverter(Protocol[T]):
    def to_firestore(self, value: T) -> Mapping[str, Any]:
        """Convert an application value into a plain document mapping."""

    def from_firestore(self, snapshot: "DocumentSnapshot[Any]") -> T:
        """Build an application value from a snapshot of an existing document."""


@dataclass(frozen=True)
class DataConverter(Generic[T]):
    """Converter assembled from two plain callables."""

    to_firestore_fn: Callable[[T], Mapping[str, Any]]
    from_firestore_fn: Callable[["DocumentSnapshot[Any]"], T]

    def to_firestore(self, value: T) -> Mapping[str, Any]:
        return self.to_firestore_fn(value)

    def from_firestore(self, snapshot: "DocumentSnapshot[Any]") -> T:
        return self.from_firestore_fn(snapshot)


def apply_to_firestore(converter: FirestoreDataConverter[Any] | None, value: Any) -> Mapping[str, Any]:
    if converter is None:
        if not isinstance(value, Mapping):
            raise InvalidArgumentError(f"Document data must be a mapping, got {type(value).__name__}.")
        return value

    data = converter.to_firestore(value)
    if not isinstance(data, Mapping):
        raise ConverterError(
            f"{type(converter).__name__}.to_firestore must return a mapping, got {type(data).__name__}."
        )
    return data
