from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from pydantic import BaseModel, Field, ValidationError

from firestore_lite.errors import (
    BackendUnavailableError,
    FirestoreError,
    GrpcStatus,
    InvalidArgumentError,
    error_for_status,
)
from firestore_lite.paths import ResourcePath
from firestore_lite.storage.backend import CommitResult, DocumentRecord, Write, WriteKind
from firestore_lite.storage.rest_codec import (
    decode_fields,
    decode_timestamp,
    document_name,
    encode_fields,
)
from firestore_lite.values import Timestamp


LOGGER = logging.getLogger(__name__)

PRODUCTION_BASE_URL = "https://firestore.googleapis.com"
EMULATOR_ACCESS_TOKEN = "owner"
SERVER_REQUEST_TIME = "REQUEST_TIME"

_HTTP_STATUS_CODES = {
    400: GrpcStatus.INVALID_ARGUMENT,
    401: GrpcStatus.UNAUTHENTICATED,
    403: GrpcStatus.PERMISSION_DENIED,
    404: GrpcStatus.NOT_FOUND,
    409: GrpcStatus.ALREADY_EXISTS,
    412: GrpcStatus.FAILED_PRECONDITION,
    429: GrpcStatus.RESOURCE_EXHAUSTED,
    499: GrpcStatus.CANCELLED,
    500: GrpcStatus.INTERNAL,
    501: GrpcStatus.UNIMPLEMENTED,
    503: GrpcStatus.UNAVAILABLE,
    504: GrpcStatus.DEADLINE_EXCEEDED,
}


class RestErrorDetail(BaseModel):
    code: int = Field(default=0, description="HTTP status code")
    message: str = Field(default="", description="Error message")
    status: str = Field(default="", description="Canonical gRPC status name")


class RestErrorResponse(BaseModel):
    error: RestErrorDetail


class RestBackend:
    """Backend speaking the Firestore REST v1 API (production or emulator)."""

    def __init__(
        self,
        *,
        project_id: str,
        database: str = "(default)",
        emulator_host: str = "",
        access_token: str | None = None,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not project_id.strip():
            raise InvalidArgumentError("project_id is required for the REST backend.")
        self._base_url = f"http://{emulator_host}" if emulator_host else PRODUCTION_BASE_URL
        token = access_token or (EMULATOR_ACCESS_TOKEN if emulator_host else None)
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._documents_root = f"projects/{project_id.strip()}/databases/{database}/documents"
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self.logger = LOGGER

    @property
    def documents_root(self) -> str:
        return self._documents_root

    async def get_documents(self, paths: Sequence[ResourcePath]) -> list[DocumentRecord]:
        names = [document_name(self._documents_root, path) for path in paths]
        payload = await self._post("batchGet", {"documents": names})
        if not isinstance(payload, list):
            raise FirestoreError("batchGet returned an unexpected payload.", code=GrpcStatus.INTERNAL)

        path_by_name = dict(zip(names, paths))
        records: dict[str, DocumentRecord] = {}
        for item in payload:
            if not isinstance(item, dict):
                raise FirestoreError(f"batchGet returned an unexpected result: {item!r}", code=GrpcStatus.INTERNAL)
            read_time = decode_timestamp(item.get("readTime")) or Timestamp.now()
            found = item.get("found")
            if isinstance(found, dict) and found.get("name") in path_by_name:
                name = found["name"]
                records[name] = DocumentRecord(
                    path=path_by_name[name],
                    exists=True,
                    fields=decode_fields(found.get("fields"), self._documents_root),
                    read_time=read_time,
                    create_time=decode_timestamp(found.get("createTime")),
                    update_time=decode_timestamp(found.get("updateTime")),
                )
            elif item.get("missing") in path_by_name:
                name = item["missing"]
                records[name] = DocumentRecord(
                    path=path_by_name[name],
                    exists=False,
                    fields=None,
                    read_time=read_time,
                )

        missing = [name for name in names if name not in records]
        if missing:
            raise FirestoreError(f"batchGet omitted documents: {', '.join(missing)}", code=GrpcStatus.INTERNAL)
        # The service may stream results out of order.
        return [records[name] for name in names]

    async def commit(self, writes: Sequence[Write]) -> CommitResult:
        payload = await self._post("commit", {"writes": [self._encode_write(write) for write in writes]})
        if not isinstance(payload, dict):
            raise FirestoreError("commit returned an unexpected payload.", code=GrpcStatus.INTERNAL)
        commit_time = decode_timestamp(payload.get("commitTime")) or Timestamp.now()
        write_times = [
            decode_timestamp(result.get("updateTime")) or commit_time
            for result in payload.get("writeResults", [])
        ]
        if len(write_times) != len(writes):
            write_times = [commit_time] * len(writes)
        return CommitResult(commit_time=commit_time, write_times=write_times)

    async def close(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    def _encode_write(self, write: Write) -> dict[str, Any]:
        name = document_name(self._documents_root, write.path)
        if write.kind is WriteKind.DELETE:
            return {"delete": name}

        encoded: dict[str, Any] = {
            "update": {"name": name, "fields": encode_fields(write.fields, self._documents_root)},
        }
        if write.field_mask is not None:
            encoded["updateMask"] = {"fieldPaths": [path.to_api_repr() for path in write.field_mask]}
        if write.transforms:
            encoded["updateTransforms"] = [
                {"fieldPath": path.to_api_repr(), "setToServerValue": SERVER_REQUEST_TIME}
                for path in write.transforms
            ]
        if write.kind is WriteKind.CREATE:
            encoded["currentDocument"] = {"exists": False}
        elif write.kind is WriteKind.UPDATE:
            encoded["currentDocument"] = {"exists": True}
        return encoded

    async def _post(self, method: str, body: dict[str, Any]) -> Any:
        url = f"{self._base_url}/v1/{self._documents_root}:{method}"
        self.logger.debug("POST %s", url)
        try:
            response = await self._http_client.post(url, json=body, headers=self._headers)
        except httpx.TransportError as exc:
            raise BackendUnavailableError(f"{method} request failed ({url}): {exc}") from exc

        if response.status_code >= 400:
            raise _error_from_response(method, response, self.logger)
        try:
            return response.json()
        except ValueError as exc:
            raise FirestoreError(
                f"{method} returned a non-JSON body (HTTP {response.status_code}) from {url}",
                code=GrpcStatus.INTERNAL,
            ) from exc


def _error_from_response(method: str, response: httpx.Response, logger: logging.Logger) -> FirestoreError:
    try:
        detail = RestErrorResponse.model_validate_json(response.text).error
    except ValidationError:
        status = _HTTP_STATUS_CODES.get(response.status_code, GrpcStatus.UNKNOWN)
        return error_for_status(status, f"{method} failed with HTTP {response.status_code}")
    logger.debug("%s failed: status=%s message=%s", method, detail.status, detail.message)
    status = GrpcStatus.__members__.get(detail.status.upper())
    if status is None:
        status = _HTTP_STATUS_CODES.get(detail.code or response.status_code, GrpcStatus.UNKNOWN)
    return error_for_status(status, detail.message or f"{method} failed with HTTP {response.status_code}")
