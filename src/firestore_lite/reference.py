from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Mapping, TypeVar

from firestore_lite.converter import FirestoreDataConverter
from firestore_lite.errors import InvalidPathError
from firestore_lite.paths import ResourcePath, auto_id
from firestore_lite.snapshot import DocumentSnapshot

if TYPE_CHECKING:
    from firestore_lite.batch import WriteResult
    from firestore_lite.client import Firestore


T = TypeVar("T")


class CollectionReference(Generic[T]):
    def __init__(
        self,
        client: "Firestore",
        path: ResourcePath,
        converter: FirestoreDataConverter[T] | None = None,
    ) -> None:
        if not path.is_collection:
            raise InvalidPathError(f"Collection path must have an odd number of segments: {path}")
        self._client = client
        self._path = path
        self._converter = converter

    @property
    def client(self) -> "Firestore":
        return self._client

    @property
    def id(self) -> str:
        return self._path.id

    @property
    def path(self) -> str:
        return str(self._path)

    @property
    def resource_path(self) -> ResourcePath:
        return self._path

    @property
    def parent(self) -> "DocumentReference[Any] | None":
        parent = self._path.parent
        if parent is None:
            return None
        return DocumentReference(self._client, parent)

    @property
    def converter(self) -> FirestoreDataConverter[T] | None:
        return self._converter

    def document(self, document_id: str | None = None) -> "DocumentReference[T]":
        """Return a reference to a document; a new auto id is used when omitted."""

        if document_id is None:
            document_id = auto_id()
        if not isinstance(document_id, str) or not document_id:
            raise InvalidPathError(f"Document id must be a non-empty string: {document_id!r}")
        path = self._path.child(*ResourcePath.from_string(document_id).segments)
        return DocumentReference(self._client, path, self._converter)

    async def add(self, data: T | Mapping[str, Any]) -> "DocumentReference[T]":
        reference = self.document()
        await reference.create(data)
        return reference

    def with_converter(self, converter: FirestoreDataConverter[Any] | None) -> "CollectionReference[Any]":
        return CollectionReference(self._client, self._path, converter)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CollectionReference):
            return NotImplemented
        return self._client is other._client and self._path == other._path

    def __hash__(self) -> int:
        return hash((id(self._client), self._path))

    def __repr__(self) -> str:
        return f"CollectionReference({self.path!r})"


class DocumentReference(Generic[T]):
    """Location of one document; never holds document data."""

    def __init__(
        self,
        client: "Firestore",
        path: ResourcePath,
        converter: FirestoreDataConverter[T] | None = None,
    ) -> None:
        if not path.is_document:
            raise InvalidPathError(f"Document path must have an even number of segments: {path}")
        self._client = client
        self._path = path
        self._converter = converter

    @property
    def client(self) -> "Firestore":
        return self._client

    @property
    def id(self) -> str:
        return self._path.id

    @property
    def path(self) -> str:
        return str(self._path)

    @property
    def resource_path(self) -> ResourcePath:
        return self._path

    @property
    def parent(self) -> CollectionReference[T]:
        # A document path always has a collection parent.
        return CollectionReference(self._client, self._path.parent, self._converter)  # type: ignore[arg-type]

    @property
    def converter(self) -> FirestoreDataConverter[T] | None:
        return self._converter

    def collection(self, collection_id: str) -> CollectionReference[Any]:
        return CollectionReference(self._client, self._path.child(*ResourcePath.from_string(collection_id).segments))

    def with_converter(self, converter: FirestoreDataConverter[Any] | None) -> "DocumentReference[Any]":
        return DocumentReference(self._client, self._path, converter)

    async def get(self) -> DocumentSnapshot[T]:
        snapshots = await self._client.get_all([self])
        return snapshots[0]

    async def set(self, data: T | Mapping[str, Any], *, merge: bool = False) -> "WriteResult":
        results = await self._client.batch().set(self, data, merge=merge).commit()
        return results[0]

    async def create(self, data: T | Mapping[str, Any]) -> "WriteResult":
        results = await self._client.batch().create(self, data).commit()
        return results[0]

    async def update(self, data: Mapping[str, Any]) -> "WriteResult":
        results = await self._client.batch().update(self, data).commit()
        return results[0]

    async def delete(self) -> "WriteResult":
        results = await self._client.batch().delete(self).commit()
        return results[0]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentReference):
            return NotImplemented
        return self._client is other._client and self._path == other._path

    def __hash__(self) -> int:
        return hash((id(self._client), self._path))

    def __repr__(self) -> str:
        return f"DocumentReference({self.path!r})"
