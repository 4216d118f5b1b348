from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from firestore_lite.client import Firestore
from firestore_lite.converter import DataConverter
from firestore_lite.errors import FirestoreError
from firestore_lite.field_value import FieldValue
from firestore_lite.reference import DocumentReference
from firestore_lite.snapshot import DocumentSnapshot
from firestore_lite.values import Timestamp


LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION = "cities"
MOUNTAIN_VIEW = {"name": "Mountain View", "population": 77846}


class SmokeCheckError(RuntimeError):
    """Raised when a smoke check observes unexpected behavior."""


@dataclass(frozen=True)
class City:
    local_id: str
    people: int


CITY_CONVERTER: DataConverter[City] = DataConverter(
    to_firestore_fn=lambda city: {"name": city.local_id, "population": city.people},
    from_firestore_fn=lambda snapshot: City(snapshot.get("name"), snapshot.get("population")),
)


@dataclass
class SmokeResult:
    passed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise SmokeCheckError(message)


@asynccontextmanager
async def _temporary_documents(*references: DocumentReference[Any]) -> AsyncIterator[None]:
    """Delete `references` afterwards; a failing cleanup never hides the check's own failure."""

    try:
        yield
    except BaseException:
        for reference in references:
            try:
                await reference.delete()
            except FirestoreError as exc:
                LOGGER.warning("smoke cleanup failed: path=%s reason=%s", reference.path, exc)
        raise
    for reference in references:
        await reference.delete()


async def check_basic_data_access(client: Firestore, collection: str) -> None:
    reference = client.collection(collection).document()
    await reference.set(MOUNTAIN_VIEW)
    snapshot = await reference.get()
    _expect(snapshot.data() == MOUNTAIN_VIEW, f"unexpected data: {snapshot.data()!r}")
    await reference.delete()
    snapshot = await reference.get()
    _expect(not snapshot.exists, "document still exists after delete")


async def check_server_timestamp(client: Firestore, collection: str) -> None:
    reference = client.collection(collection).document()
    async with _temporary_documents(reference):
        await reference.set({**MOUNTAIN_VIEW, "timestamp": FieldValue.server_timestamp()})
        data = (await reference.get()).data() or {}
        value = data.get("timestamp")
        _expect(isinstance(value, Timestamp), f"timestamp was not resolved: {value!r}")
        _expect(value.seconds >= 0 and value.nanoseconds >= 0, f"negative timestamp: {value!r}")


async def check_converter(client: Firestore, collection: str) -> None:
    reference: DocumentReference[City] = client.collection(collection).document().with_converter(CITY_CONVERTER)
    expected = City("Sunnyvale", 153185)
    async with _temporary_documents(reference):
        await reference.set(expected)
        snapshot: DocumentSnapshot[City] = await reference.get()
        _expect(snapshot.data() == expected, f"converter round trip failed: {snapshot.data()!r}")


async def check_references(client: Firestore, collection: str) -> None:
    source = client.collection(collection).document()
    target = client.collection(collection).document()
    async with _temporary_documents(source, target):
        await source.set(MOUNTAIN_VIEW)
        await target.set({"name": "Palo Alto", "sisterCity": source})
        data = (await target.get()).data() or {}
        sister = data.get("sisterCity")
        _expect(isinstance(sister, DocumentReference), f"reference was not decoded: {sister!r}")
        _expect(sister.path == source.path, f"reference path changed: {sister.path} != {source.path}")


async def check_log_function(client: Firestore, collection: str) -> None:
    logs: list[str] = []
    reference = client.collection(collection).document()
    client.set_log_function(logs.append)
    try:
        await reference.set({"name": "San Francisco"})
        await reference.delete()
    finally:
        client.set_log_function(None)
    _expect(len(logs) > 0, "no log lines were recorded")


CHECKS: tuple[tuple[str, Callable[[Firestore, str], Awaitable[Any]]], ...] = (
    ("basic_data_access", check_basic_data_access),
    ("server_timestamp", check_server_timestamp),
    ("converter", check_converter),
    ("references", check_references),
    ("log_function", check_log_function),
)


async def run_smoke_checks(client: Firestore, *, collection: str = DEFAULT_COLLECTION) -> SmokeResult:
    result = SmokeResult()
    for name, check in CHECKS:
        try:
            await check(client, collection)
        except (SmokeCheckError, FirestoreError) as exc:
            LOGGER.error("smoke check failed: name=%s reason=%s", name, exc)
            result.failed[name] = str(exc)
            continue
        LOGGER.info("smoke check passed: name=%s", name)
        result.passed.append(name)
    return result
