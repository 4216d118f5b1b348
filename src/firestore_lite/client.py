from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Any, Callable, Iterable, Sequence

from firestore_lite.batch import WriteBatch
from firestore_lite.encoding import decode_fields
from firestore_lite.errors import FirestoreError, GrpcStatus, InvalidArgumentError
from firestore_lite.paths import ResourcePath
from firestore_lite.reference import CollectionReference, DocumentReference
from firestore_lite.snapshot import DocumentSnapshot
from firestore_lite.storage.backend import Backend, CommitResult, Write


DEFAULT_DATABASE = "(default)"
LOG_FORMAT = "Firestore %(asctime)s [%(name)s]: %(message)s"

LogFunction = Callable[[str], None]

LOGGER = logging.getLogger(__name__)

_CLIENT_IDS = itertools.count(1)
_released_client_ids: list[int] = []
_client_ids_lock = threading.Lock()


def _acquire_client_id() -> int:
    # Ids of closed clients are reused so the logger registry stays bounded.
    with _client_ids_lock:
        if _released_client_ids:
            return heapq.heappop(_released_client_ids)
        return next(_CLIENT_IDS)


def _release_client_id(client_id: int) -> None:
    with _client_ids_lock:
        heapq.heappush(_released_client_ids, client_id)


class _LogFunctionHandler(logging.Handler):
    """Forwards formatted records of one client to a user callback."""

    def __init__(self, log_function: LogFunction) -> None:
        super().__init__(logging.DEBUG)
        self._log_function = log_function
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._log_function(self.format(record))
        except Exception:
            self.handleError(record)


class Firestore:
    """Entry point for collection and document access on one backend."""

    def __init__(
        self,
        backend: Backend,
        *,
        project_id: str = "",
        database: str = DEFAULT_DATABASE,
        strict_snapshots: bool = False,
    ) -> None:
        self._backend = backend
        self._project_id = project_id
        self._database = database or DEFAULT_DATABASE
        self._strict_snapshots = strict_snapshots
        self._client_id: int | None = _acquire_client_id()
        self._logger = logging.getLogger(f"{__name__}.{self._client_id}")
        self._log_handler: logging.Handler | None = None
        # Backends exposing a logger write their request lines to this client's logger.
        if hasattr(backend, "logger"):
            backend.logger = self._logger

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def database(self) -> str:
        return self._database

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def strict_snapshots(self) -> bool:
        return self._strict_snapshots

    def collection(self, path: str) -> CollectionReference[Any]:
        return CollectionReference(self, ResourcePath.from_string(path))

    def document(self, path: str) -> DocumentReference[Any]:
        return DocumentReference(self, ResourcePath.from_string(path))

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def get_all(self, references: Iterable[DocumentReference[Any]]) -> list[DocumentSnapshot[Any]]:
        """Read several documents; snapshots come back in request order."""

        refs = list(references)
        for ref in refs:
            if not isinstance(ref, DocumentReference) or ref.client is not self:
                raise InvalidArgumentError(f"Expected a DocumentReference of this client: {ref!r}")
        if not refs:
            return []

        self._logger.debug("[get_all] Sending batchGet for %s document(s): %s", len(refs), _joined(refs))
        try:
            records = await self._backend.get_documents([ref.resource_path for ref in refs])
        except FirestoreError as exc:
            self._logger.debug("[get_all] batchGet failed: %s", exc)
            raise

        snapshots = []
        for ref, record in zip(refs, records):
            fields = decode_fields(record.fields, self) if record.exists and record.fields is not None else None
            snapshots.append(
                DocumentSnapshot(
                    ref,
                    exists=record.exists,
                    fields=fields,
                    read_time=record.read_time,
                    create_time=record.create_time,
                    update_time=record.update_time,
                    strict=self._strict_snapshots,
                )
            )
        missing = sum(1 for snapshot in snapshots if not snapshot.exists)
        self._logger.debug("[get_all] Received %s document(s), %s missing", len(snapshots), missing)
        return snapshots

    async def _commit(self, writes: Sequence[Write]) -> CommitResult:
        described = ", ".join(f"{write.kind.value} {write.path}" for write in writes)
        self._logger.debug("[WriteBatch.commit] Sending commit with %s write(s): %s", len(writes), described)
        try:
            result = await self._backend.commit(writes)
        except FirestoreError as exc:
            self._logger.debug("[WriteBatch.commit] Commit failed: %s", exc)
            raise
        self._logger.debug("[WriteBatch.commit] Commit succeeded at %s", result.commit_time)
        return result

    def set_log_function(self, log_function: LogFunction | None) -> None:
        """Install a callback receiving every internal log line; None removes it."""

        if self._client_id is None:
            if log_function is not None:
                raise FirestoreError("Cannot install a log function on a closed client.", code=GrpcStatus.FAILED_PRECONDITION)
            return
        if self._log_handler is not None:
            self._logger.removeHandler(self._log_handler)
            self._log_handler = None
        if log_function is None:
            self._logger.setLevel(logging.NOTSET)
            self._logger.propagate = True
            return

        # Hooked DEBUG lines go to the callback only, not to the application's handlers.
        self._log_handler = _LogFunctionHandler(log_function)
        self._logger.addHandler(self._log_handler)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

    async def close(self) -> None:
        if self._client_id is not None:
            self.set_log_function(None)
            _release_client_id(self._client_id)
            self._client_id = None
            self._logger = LOGGER
            if hasattr(self._backend, "logger"):
                self._backend.logger = LOGGER
        await self._backend.close()

    async def __aenter__(self) -> "Firestore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Firestore(project_id={self._project_id!r}, database={self._database!r})"


def _joined(refs: Sequence[DocumentReference[Any]]) -> str:
    return ", ".join(ref.path for ref in refs)
