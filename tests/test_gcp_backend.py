from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
import unittest

try:
    from google.api_core import exceptions as core_exceptions
    from google.api_core.datetime_helpers import DatetimeWithNanoseconds
    from google.auth.credentials import AnonymousCredentials
    from google.cloud import firestore

    from firestore_lite.storage.gcp_backend import GoogleCloudBackend, from_google_value, to_google_value
except ModuleNotFoundError:  # pragma: no cover - gcp extra not installed
    firestore = None

from firestore_lite.errors import AlreadyExistsError, BackendUnavailableError, FirestoreError, GrpcStatus, NotFoundError
from firestore_lite.paths import FieldPath, ResourcePath
from firestore_lite.storage.backend import Write, WriteKind
from firestore_lite.values import GeoPoint, Timestamp


class FakeBatch:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple] = []
        self.error = error
        self.commit_time = None

    def set(self, reference, data, merge=False) -> None:
        self.calls.append(("set", reference.path, data, merge))

    def create(self, reference, data) -> None:
        self.calls.append(("create", reference.path, data))

    def update(self, reference, data) -> None:
        self.calls.append(("update", reference.path, data))

    def delete(self, reference) -> None:
        self.calls.append(("delete", reference.path))

    async def commit(self):
        if self.error is not None:
            raise self.error
        self.commit_time = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)
        return [SimpleNamespace(update_time=None) for _ in self.calls]


class FakeGetAllClient:
    """Serves snapshots through a single get_all call, in reverse request order."""

    def __init__(self, snapshots: dict[str, SimpleNamespace]) -> None:
        self.snapshots = snapshots
        self.get_all_calls: list[list[str]] = []

    def document(self, path: str) -> SimpleNamespace:
        return SimpleNamespace(path=path)

    async def get_all(self, references):
        paths = [reference.path for reference in references]
        self.get_all_calls.append(paths)
        for path in reversed(paths):
            snapshot = self.snapshots[path]
            snapshot.reference = SimpleNamespace(path=path)
            yield snapshot


async def _empty_get_all(references):
    for _ in ():
        yield None


@unittest.skipIf(firestore is None, "google-cloud-firestore is not installed")
class GoogleValueConversionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = firestore.AsyncClient(project="demo-project", credentials=AnonymousCredentials())

    def test_to_google_value(self) -> None:
        converted = to_google_value(
            {
                "when": Timestamp(1771070400, 123456789),
                "where": GeoPoint(37.4, -122.1),
                "city": ResourcePath.from_string("cities/MV"),
                "tags": ["a"],
            },
            self.client,
        )

        self.assertIsInstance(converted["when"], DatetimeWithNanoseconds)
        self.assertEqual(converted["when"].nanosecond, 123456789)
        self.assertEqual(converted["where"], firestore.GeoPoint(37.4, -122.1))
        self.assertEqual(converted["city"].path, "cities/MV")
        self.assertEqual(converted["tags"], ["a"])

    def test_from_google_value(self) -> None:
        when = DatetimeWithNanoseconds(2026, 2, 14, 12, 0, 0, nanosecond=5, tzinfo=timezone.utc)
        decoded = from_google_value(
            {
                "when": when,
                "where": firestore.GeoPoint(1.5, 2.5),
                "city": self.client.document("cities/MV"),
                "items": [{"n": 1}],
            }
        )

        self.assertEqual(decoded["when"], Timestamp(1771070400, 5))
        self.assertEqual(decoded["where"], GeoPoint(1.5, 2.5))
        self.assertEqual(decoded["city"], ResourcePath.from_string("cities/MV"))
        self.assertEqual(decoded["items"], [{"n": 1}])


@unittest.skipIf(firestore is None, "google-cloud-firestore is not installed")
class GoogleCloudBackendTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.client = firestore.AsyncClient(project="demo-project", credentials=AnonymousCredentials())
        self.backend = GoogleCloudBackend(client=self.client)

    async def test_commit_stages_writes(self) -> None:
        batch = FakeBatch()
        self.client.batch = lambda: batch
        path = ResourcePath.from_string("cities/MV")

        result = await self.backend.commit(
            [
                Write(WriteKind.SET, path, {"name": "MV"}, transforms=(FieldPath("meta", "at"),)),
                Write(WriteKind.SET, path, {"n": 1}, field_mask=(FieldPath("n"),)),
                Write(WriteKind.CREATE, path, {"n": 1}),
                Write(
                    WriteKind.UPDATE,
                    path,
                    {"meta": {"rank": 2}},
                    field_mask=(FieldPath("meta", "rank"), FieldPath("old")),
                    transforms=(FieldPath("updated_at"),),
                ),
                Write(WriteKind.DELETE, path),
            ]
        )

        set_call, merge_call, create_call, update_call, delete_call = batch.calls
        self.assertEqual(set_call, ("set", "cities/MV", {"name": "MV", "meta": {"at": firestore.SERVER_TIMESTAMP}}, False))
        self.assertEqual(merge_call, ("set", "cities/MV", {"n": 1}, True))
        self.assertEqual(create_call, ("create", "cities/MV", {"n": 1}))
        self.assertEqual(
            update_call,
            (
                "update",
                "cities/MV",
                {"meta.rank": 2, "old": firestore.DELETE_FIELD, "updated_at": firestore.SERVER_TIMESTAMP},
            ),
        )
        self.assertEqual(delete_call, ("delete", "cities/MV"))
        self.assertEqual(result.commit_time, Timestamp(1771070400, 0))
        self.assertEqual(result.write_times, [Timestamp(1771070400, 0)] * 5)

    async def test_commit_errors_are_translated(self) -> None:
        cases = (
            (core_exceptions.NotFound("missing"), NotFoundError),
            (core_exceptions.AlreadyExists("exists"), AlreadyExistsError),
            (core_exceptions.ServiceUnavailable("down"), BackendUnavailableError),
            (core_exceptions.RetryError("deadline", cause=None), BackendUnavailableError),
        )
        for error, expected in cases:
            with self.subTest(error=type(error).__name__):
                self.client.batch = lambda error=error: FakeBatch(error)
                with self.assertRaises(expected):
                    await self.backend.commit([Write(WriteKind.DELETE, ResourcePath.from_string("cities/MV"))])

    async def test_get_documents(self) -> None:
        read_time = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)
        sister = self.client.document("cities/SF")
        snapshots = {
            "cities/MV": SimpleNamespace(
                exists=True,
                to_dict=lambda: {"name": "MV", "sister": sister},
                read_time=read_time,
                create_time=read_time,
                update_time=read_time,
            ),
            "cities/XX": SimpleNamespace(exists=False, read_time=read_time),
        }
        fake_client = FakeGetAllClient(snapshots)
        backend = GoogleCloudBackend(client=fake_client)

        found, missing = await backend.get_documents(
            [ResourcePath.from_string("cities/MV"), ResourcePath.from_string("cities/XX")]
        )

        self.assertTrue(found.exists)
        self.assertEqual(found.fields, {"name": "MV", "sister": ResourcePath.from_string("cities/SF")})
        self.assertEqual(found.read_time, Timestamp(1771070400, 0))
        self.assertFalse(missing.exists)
        self.assertIsNone(missing.fields)
        self.assertEqual(fake_client.get_all_calls, [["cities/MV", "cities/XX"]])

    async def test_get_documents_rejects_omitted_results(self) -> None:
        fake_client = FakeGetAllClient({})
        fake_client.get_all = _empty_get_all
        backend = GoogleCloudBackend(client=fake_client)

        with self.assertRaises(FirestoreError) as ctx:
            await backend.get_documents([ResourcePath.from_string("cities/MV")])
        self.assertEqual(ctx.exception.code, GrpcStatus.INTERNAL)


if __name__ == "__main__":
    unittest.main()
