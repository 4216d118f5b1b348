from __future__ import annotations

from datetime import datetime, timezone
import inspect
import logging
from typing import Any, Mapping, Sequence

from google.api_core import exceptions as core_exceptions
from google.api_core.datetime_helpers import DatetimeWithNanoseconds
from google.cloud import firestore
from google.cloud.firestore_v1.base_document import BaseDocumentReference

from firestore_lite.errors import BackendUnavailableError, FirestoreError, GrpcStatus, error_for_status
from firestore_lite.paths import ResourcePath
from firestore_lite.storage.backend import CommitResult, DocumentRecord, Write, WriteKind, get_field, set_field
from firestore_lite.values import GeoPoint, Timestamp


LOGGER = logging.getLogger(__name__)


class GoogleCloudBackend:
    """Backend delegating to google-cloud-firestore's AsyncClient."""

    def __init__(self, *, project_id: str = "", database: str = "(default)", client: Any | None = None) -> None:
        self._owns_client = client is None
        self._client = client if client is not None else firestore.AsyncClient(project=project_id or None, database=database)
        self.logger = LOGGER

    async def get_documents(self, paths: Sequence[ResourcePath]) -> list[DocumentRecord]:
        references = [self._client.document(str(path)) for path in paths]
        snapshots: dict[str, Any] = {}
        try:
            # One batched read; results may arrive in any order.
            async for snapshot in self._client.get_all(references):
                snapshots[snapshot.reference.path] = snapshot
        except core_exceptions.GoogleAPIError as exc:
            raise _translate_error(exc) from exc

        records = []
        for path in paths:
            snapshot = snapshots.get(str(path))
            if snapshot is None:
                raise FirestoreError(f"get_all omitted document: {path}", code=GrpcStatus.INTERNAL)
            read_time = _timestamp_or_none(snapshot.read_time) or Timestamp.now()
            if not snapshot.exists:
                records.append(DocumentRecord(path=path, exists=False, fields=None, read_time=read_time))
                continue
            records.append(
                DocumentRecord(
                    path=path,
                    exists=True,
                    fields=from_google_value(snapshot.to_dict() or {}),
                    read_time=read_time,
                    create_time=_timestamp_or_none(snapshot.create_time),
                    update_time=_timestamp_or_none(snapshot.update_time),
                )
            )
        return records

    async def commit(self, writes: Sequence[Write]) -> CommitResult:
        batch = self._client.batch()
        for write in writes:
            self._stage(batch, write)

        try:
            results = await batch.commit()
        except core_exceptions.GoogleAPIError as exc:
            raise _translate_error(exc) from exc

        commit_time = _timestamp_or_none(getattr(batch, "commit_time", None)) or Timestamp.now()
        write_times = [_timestamp_or_none(getattr(result, "update_time", None)) or commit_time for result in results]
        self.logger.debug("google-cloud-firestore commit: writes=%s commit_time=%s", len(writes), commit_time)
        return CommitResult(commit_time=commit_time, write_times=write_times)

    async def close(self) -> None:
        if not self._owns_client:
            return
        result = self._client.close()
        if inspect.isawaitable(result):
            await result

    def _stage(self, batch: Any, write: Write) -> None:
        reference = self._client.document(str(write.path))
        if write.kind is WriteKind.DELETE:
            batch.delete(reference)
            return

        if write.kind is WriteKind.UPDATE:
            # google-cloud-firestore takes dotted field paths for update().
            updates: dict[str, Any] = {}
            for path in write.field_mask or ():
                found, value = get_field(write.fields, path)
                updates[path.to_api_repr()] = to_google_value(value, self._client) if found else firestore.DELETE_FIELD
            for path in write.transforms:
                updates[path.to_api_repr()] = firestore.SERVER_TIMESTAMP
            batch.update(reference, updates)
            return

        data = to_google_value(write.fields, self._client)
        for path in write.transforms:
            set_field(data, path, firestore.SERVER_TIMESTAMP)
        if write.kind is WriteKind.CREATE:
            batch.create(reference, data)
        elif write.field_mask is not None:
            batch.set(reference, data, merge=True)
        else:
            batch.set(reference, data)


def to_google_value(value: Any, client: Any) -> Any:
    if isinstance(value, Timestamp):
        moment = value.to_datetime()
        return DatetimeWithNanoseconds(
            moment.year,
            moment.month,
            moment.day,
            moment.hour,
            moment.minute,
            moment.second,
            nanosecond=value.nanoseconds,
            tzinfo=timezone.utc,
        )
    if isinstance(value, GeoPoint):
        return firestore.GeoPoint(value.latitude, value.longitude)
    if isinstance(value, ResourcePath):
        return client.document(str(value))
    if isinstance(value, Mapping):
        return {key: to_google_value(item, client) for key, item in value.items()}
    if isinstance(value, list):
        return [to_google_value(item, client) for item in value]
    return value


def from_google_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return Timestamp.from_datetime(value)
    if isinstance(value, firestore.GeoPoint):
        return GeoPoint(value.latitude, value.longitude)
    if isinstance(value, BaseDocumentReference):
        return ResourcePath.from_string(value.path)
    if isinstance(value, Mapping):
        return {key: from_google_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [from_google_value(item) for item in value]
    return value


def _timestamp_or_none(value: datetime | None) -> Timestamp | None:
    if value is None:
        return None
    return Timestamp.from_datetime(value)


def _translate_error(exc: core_exceptions.GoogleAPIError) -> FirestoreError:
    if isinstance(exc, core_exceptions.RetryError):
        return BackendUnavailableError(str(exc))
    grpc_code = getattr(exc, "grpc_status_code", None)
    code = grpc_code.value[0] if grpc_code is not None else GrpcStatus.UNKNOWN
    message = getattr(exc, "message", None) or str(exc)
    return error_for_status(code, message)
