from __future__ import annotations

import base64
import math
from typing import Any, Mapping

from firestore_lite.errors import FirestoreError, GrpcStatus
from firestore_lite.paths import ResourcePath
from firestore_lite.values import GeoPoint, Timestamp


def document_name(documents_root: str, path: ResourcePath) -> str:
    return f"{documents_root}/{path}"


def path_from_name(documents_root: str, name: str) -> ResourcePath:
    prefix = f"{documents_root}/"
    if name.startswith(prefix):
        return ResourcePath.from_string(name[len(prefix):])
    # Reference into another database: keep the path below "/documents/".
    _, marker, relative = name.partition("/documents/")
    if not marker:
        raise FirestoreError(f"Unexpected document name: {name}", code=GrpcStatus.INTERNAL)
    return ResourcePath.from_string(relative)


def encode_fields(fields: Mapping[str, Any], documents_root: str) -> dict[str, Any]:
    return {key: encode_value(value, documents_root) for key, value in fields.items()}


def encode_value(value: Any, documents_root: str) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        if math.isnan(value):
            return {"doubleValue": "NaN"}
        if math.isinf(value):
            return {"doubleValue": "Infinity" if value > 0 else "-Infinity"}
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, Timestamp):
        return {"timestampValue": value.to_rfc3339()}
    if isinstance(value, GeoPoint):
        return {"geoPointValue": {"latitude": value.latitude, "longitude": value.longitude}}
    if isinstance(value, ResourcePath):
        return {"referenceValue": document_name(documents_root, value)}
    if isinstance(value, list):
        return {"arrayValue": {"values": [encode_value(item, documents_root) for item in value]}}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value, documents_root)}}
    raise FirestoreError(f"Cannot encode value of type {type(value).__name__}", code=GrpcStatus.INTERNAL)


def decode_fields(fields: Mapping[str, Any] | None, documents_root: str) -> dict[str, Any]:
    return {key: decode_value(value, documents_root) for key, value in (fields or {}).items()}


def decode_value(value: Mapping[str, Any], documents_root: str) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "timestampValue" in value:
        return Timestamp.from_rfc3339(value["timestampValue"])
    if "geoPointValue" in value:
        point = value["geoPointValue"] or {}
        # Zero coordinates are omitted from proto3 JSON.
        return GeoPoint(float(point.get("latitude", 0.0)), float(point.get("longitude", 0.0)))
    if "referenceValue" in value:
        return path_from_name(documents_root, value["referenceValue"])
    if "arrayValue" in value:
        items = (value["arrayValue"] or {}).get("values", [])
        return [decode_value(item, documents_root) for item in items]
    if "mapValue" in value:
        return decode_fields((value["mapValue"] or {}).get("fields"), documents_root)
    raise FirestoreError(f"Unsupported value in response: {sorted(value)}", code=GrpcStatus.INTERNAL)


def decode_timestamp(raw: str | None) -> Timestamp | None:
    if not raw:
        return None
    return Timestamp.from_rfc3339(raw)
