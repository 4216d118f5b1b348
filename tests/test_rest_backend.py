from __future__ import annotations

import json
import unittest

import httpx

from firestore_lite.client import Firestore
from firestore_lite.errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    FirestoreError,
    GrpcStatus,
    InvalidArgumentError,
    NotFoundError,
)
from firestore_lite.field_value import SERVER_TIMESTAMP
from firestore_lite.paths import FieldPath, ResourcePath
from firestore_lite.reference import DocumentReference
from firestore_lite.storage.backend import Write, WriteKind
from firestore_lite.storage.rest_backend import RestBackend
from firestore_lite.values import Timestamp


ROOT = "projects/demo-project/databases/(default)/documents"
COMMIT_TIME = "2026-02-14T12:00:00.123456Z"
READ_TIME = "2026-02-14T12:00:01Z"


def _error(status_code: int, status: str, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"code": status_code, "message": message, "status": status}})


class FakeRestService:
    """Tiny stand-in for the documents:batchGet / documents:commit endpoints."""

    def __init__(self) -> None:
        self.documents: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        if request.url.path.endswith(":batchGet"):
            return self._batch_get(body)
        if request.url.path.endswith(":commit"):
            return self._commit(body)
        return httpx.Response(404, text="not found")

    def _batch_get(self, body: dict) -> httpx.Response:
        results = []
        for name in body["documents"]:
            if name in self.documents:
                results.append({"found": self.documents[name], "readTime": READ_TIME})
            else:
                results.append({"missing": name, "readTime": READ_TIME})
        return httpx.Response(200, json=results)

    def _commit(self, body: dict) -> httpx.Response:
        staged = dict(self.documents)
        for write in body["writes"]:
            if "delete" in write:
                staged.pop(write["delete"], None)
                continue
            update = write["update"]
            name = update["name"]
            exists = write.get("currentDocument", {}).get("exists")
            if exists is False and name in staged:
                return _error(409, "ALREADY_EXISTS", f"Document already exists: {name}")
            if exists is True and name not in staged:
                return _error(404, "NOT_FOUND", f"No document to update: {name}")
            fields = dict(update.get("fields", {}))
            if "updateMask" in write:
                merged = dict(staged.get(name, {}).get("fields", {}))
                for path in write["updateMask"]["fieldPaths"]:
                    if path in fields:
                        merged[path] = fields[path]
                    else:
                        merged.pop(path, None)
                fields = merged
            for transform in write.get("updateTransforms", []):
                fields[transform["fieldPath"]] = {"timestampValue": COMMIT_TIME}
            staged[name] = {
                "name": name,
                "fields": fields,
                "createTime": staged.get(name, {}).get("createTime", COMMIT_TIME),
                "updateTime": COMMIT_TIME,
            }
        self.documents = staged
        return httpx.Response(
            200,
            json={"writeResults": [{"updateTime": COMMIT_TIME} for _ in body["writes"]], "commitTime": COMMIT_TIME},
        )


def _backend(handler) -> RestBackend:
    return RestBackend(
        project_id="demo-project",
        emulator_host="localhost:8080",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class RestBackendClientTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.service = FakeRestService()
        self.backend = _backend(self.service)
        self.db = Firestore(self.backend, project_id="demo-project")

    async def test_basic_data_access(self) -> None:
        reference = self.db.collection("cities").document("MV")

        await reference.set({"name": "Mountain View", "population": 77846})
        snapshot = await reference.get()
        self.assertEqual(snapshot.data(), {"name": "Mountain View", "population": 77846})
        self.assertEqual(snapshot.read_time, Timestamp.from_rfc3339(READ_TIME))

        await reference.delete()
        self.assertFalse((await reference.get()).exists)

    async def test_server_timestamp_uses_update_transforms(self) -> None:
        reference = self.db.document("cities/MV")

        result = await reference.set({"name": "Mountain View", "timestamp": SERVER_TIMESTAMP})
        data = (await reference.get()).data()

        self.assertEqual(data["timestamp"], Timestamp.from_rfc3339(COMMIT_TIME))
        self.assertEqual(result.write_time, Timestamp.from_rfc3339(COMMIT_TIME))
        commit_body = json.loads(self.service.requests[0].content)
        self.assertEqual(
            commit_body["writes"][0]["updateTransforms"],
            [{"fieldPath": "timestamp", "setToServerValue": "REQUEST_TIME"}],
        )
        self.assertNotIn("timestamp", commit_body["writes"][0]["update"]["fields"])

    async def test_reference_values(self) -> None:
        source = self.db.document("cities/MV")
        target = self.db.document("cities/PA")

        await target.set({"name": "Palo Alto", "sisterCity": source})
        stored = self.service.documents[f"{ROOT}/cities/PA"]["fields"]["sisterCity"]
        data = (await target.get()).data()

        self.assertEqual(stored, {"referenceValue": f"{ROOT}/cities/MV"})
        self.assertIsInstance(data["sisterCity"], DocumentReference)
        self.assertEqual(data["sisterCity"].path, source.path)

    async def test_preconditions_map_to_errors(self) -> None:
        reference = self.db.document("cities/MV")

        with self.assertRaises(NotFoundError):
            await reference.update({"name": "x"})
        await reference.create({"name": "Mountain View"})
        with self.assertRaises(AlreadyExistsError):
            await reference.create({"name": "Mountain View"})

    async def test_requests_carry_emulator_token(self) -> None:
        await self.db.document("cities/MV").get()

        request = self.service.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer owner")
        self.assertEqual(request.url.host, "localhost")
        self.assertTrue(request.url.path.endswith("/documents:batchGet"))

    async def test_log_function_receives_request_lines(self) -> None:
        logs: list[str] = []
        self.db.set_log_function(logs.append)

        await self.db.document("cities/SF").set({"name": "San Francisco"})
        await self.db.document("cities/SF").get()

        self.assertTrue(any("POST http://localhost:8080/v1/" in line and ":commit" in line for line in logs))
        self.assertTrue(any("POST" in line and ":batchGet" in line for line in logs))

    async def test_log_function_receives_error_details(self) -> None:
        db = Firestore(_backend(lambda request: _error(400, "INVALID_ARGUMENT", "bad field")), project_id="demo-project")
        logs: list[str] = []
        db.set_log_function(logs.append)

        with self.assertRaises(InvalidArgumentError):
            await db.document("cities/SF").delete()

        self.assertTrue(any("status=INVALID_ARGUMENT message=bad field" in line for line in logs))


class RestBackendWireTest(unittest.IsolatedAsyncioTestCase):
    async def test_write_encoding(self) -> None:
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"writeResults": [{}, {}, {}], "commitTime": COMMIT_TIME})

        backend = _backend(handler)
        path = ResourcePath.from_string("cities/MV")
        result = await backend.commit(
            [
                Write(
                    WriteKind.SET,
                    path,
                    {"meta": {"rank": 1}},
                    field_mask=(FieldPath("meta", "rank"),),
                    transforms=(FieldPath("first name"),),
                ),
                Write(WriteKind.CREATE, path, {"n": 1}),
                Write(WriteKind.DELETE, path),
            ]
        )

        set_write, create_write, delete_write = captured[0]["writes"]
        self.assertEqual(
            set_write["update"],
            {
                "name": f"{ROOT}/cities/MV",
                "fields": {"meta": {"mapValue": {"fields": {"rank": {"integerValue": "1"}}}}},
            },
        )
        self.assertEqual(set_write["updateMask"], {"fieldPaths": ["meta.rank"]})
        self.assertEqual(set_write["updateTransforms"][0]["fieldPath"], "`first name`")
        self.assertEqual(create_write["currentDocument"], {"exists": False})
        self.assertEqual(delete_write, {"delete": f"{ROOT}/cities/MV"})
        # Results without updateTime fall back to the commit time.
        self.assertEqual(result.write_times, [Timestamp.from_rfc3339(COMMIT_TIME)] * 3)

    async def test_batch_get_results_out_of_order(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[
                    {"missing": f"{ROOT}/cities/B", "readTime": READ_TIME},
                    {
                        "found": {"name": f"{ROOT}/cities/A", "fields": {"n": {"integerValue": "1"}}},
                        "readTime": READ_TIME,
                    },
                ],
            )

        backend = _backend(handler)
        first, second = await backend.get_documents(
            [ResourcePath.from_string("cities/A"), ResourcePath.from_string("cities/B")]
        )

        self.assertTrue(first.exists)
        self.assertEqual(first.fields, {"n": 1})
        self.assertFalse(second.exists)

    async def test_transport_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend = _backend(handler)
        with self.assertRaises(BackendUnavailableError):
            await backend.get_documents([ResourcePath.from_string("cities/A")])

    async def test_error_body_is_mapped(self) -> None:
        backend = _backend(lambda request: _error(400, "INVALID_ARGUMENT", "bad field"))

        with self.assertRaises(InvalidArgumentError) as ctx:
            await backend.commit([Write(WriteKind.DELETE, ResourcePath.from_string("cities/A"))])
        self.assertEqual(ctx.exception.message, "bad field")

    async def test_unparseable_error_body_uses_http_status(self) -> None:
        backend = _backend(lambda request: httpx.Response(503, text="<html>unavailable</html>"))

        with self.assertRaises(BackendUnavailableError):
            await backend.get_documents([ResourcePath.from_string("cities/A")])

        backend = _backend(lambda request: httpx.Response(403, text="denied"))
        with self.assertRaises(FirestoreError) as ctx:
            await backend.get_documents([ResourcePath.from_string("cities/A")])
        self.assertEqual(ctx.exception.code, GrpcStatus.PERMISSION_DENIED)

    async def test_non_json_success_body_is_typed_error(self) -> None:
        db = Firestore(_backend(lambda request: httpx.Response(200, text="<html>proxy</html>")), project_id="demo-project")

        with self.assertRaises(FirestoreError) as ctx:
            await db.document("cities/SF").get()
        self.assertEqual(ctx.exception.code, GrpcStatus.INTERNAL)
        with self.assertRaises(FirestoreError):
            await db.document("cities/SF").set({"name": "San Francisco"})

    async def test_malformed_batch_get_items_are_typed_errors(self) -> None:
        for body in (["not-a-result"], [{"found": "cities/A", "readTime": READ_TIME}], {"documents": []}):
            with self.subTest(body=body):
                backend = _backend(lambda request, body=body: httpx.Response(200, json=body))
                with self.assertRaises(FirestoreError) as ctx:
                    await backend.get_documents([ResourcePath.from_string("cities/A")])
                self.assertEqual(ctx.exception.code, GrpcStatus.INTERNAL)

    def test_project_id_required(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            RestBackend(project_id=" ")


if __name__ == "__main__":
    unittest.main()
