from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping

from firestore_lite.errors import InvalidArgumentError
from firestore_lite.field_value import is_sentinel
from firestore_lite.paths import ResourcePath
from firestore_lite.reference import DocumentReference
from firestore_lite.values import GeoPoint, Timestamp

if TYPE_CHECKING:
    from firestore_lite.client import Firestore


INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def encode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Convert user data into backend values."""

    return {_validate_key(key): encode_value(value) for key, value in fields.items()}


def encode_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str, float, Timestamp, GeoPoint)):
        return value
    if isinstance(value, int):
        if not INT64_MIN <= value <= INT64_MAX:
            raise InvalidArgumentError(f"Integer out of 64-bit range: {value}")
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, datetime):
        return Timestamp.from_datetime(value)
    if isinstance(value, DocumentReference):
        return value.resource_path
    if isinstance(value, Mapping):
        return encode_fields(value)
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    if is_sentinel(value):
        raise InvalidArgumentError(f"{value!r} can only be used as a field value in set(), create() or update().")
    raise InvalidArgumentError(f"Unsupported field value type: {type(value).__name__}")


def decode_fields(fields: Mapping[str, Any], client: "Firestore") -> dict[str, Any]:
    return {key: decode_value(value, client) for key, value in fields.items()}


def decode_value(value: Any, client: "Firestore") -> Any:
    if isinstance(value, ResourcePath):
        return DocumentReference(client, value)
    if isinstance(value, Mapping):
        return decode_fields(value, client)
    if isinstance(value, list):
        return [decode_value(item, client) for item in value]
    return value


def _validate_key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidArgumentError(f"Field names must be non-empty strings: {key!r}")
    return key
