from __future__ import annotations

import unittest

from firestore_lite.client import Firestore
from firestore_lite.errors import BackendUnavailableError
from firestore_lite.smoke import CHECKS, run_smoke_checks
from firestore_lite.storage.backend import WriteKind
from firestore_lite.storage.memory_backend import InMemoryBackend


class UnavailableBackend:
    async def get_documents(self, paths):
        raise BackendUnavailableError("connection refused")

    async def commit(self, writes):
        raise BackendUnavailableError("connection refused")

    async def close(self) -> None:
        return None


class ReadFailingBackend(InMemoryBackend):
    async def get_documents(self, paths):
        raise BackendUnavailableError("read failed")

    async def commit(self, writes):
        if any(write.kind is WriteKind.DELETE for write in writes):
            raise BackendUnavailableError("delete failed")
        return await super().commit(writes)


class RunSmokeChecksTest(unittest.IsolatedAsyncioTestCase):
    async def test_all_checks_pass_in_memory(self) -> None:
        client = Firestore(InMemoryBackend())

        result = await run_smoke_checks(client)

        self.assertTrue(result.ok, result.failed)
        self.assertEqual(result.passed, [name for name, _ in CHECKS])

    async def test_checks_leave_no_documents_behind(self) -> None:
        backend = InMemoryBackend()

        await run_smoke_checks(Firestore(backend), collection="smoke")

        self.assertEqual(backend._documents, {})

    async def test_backend_failures_are_reported(self) -> None:
        result = await run_smoke_checks(Firestore(UnavailableBackend()))

        self.assertFalse(result.ok)
        self.assertEqual(set(result.failed), {name for name, _ in CHECKS})
        self.assertIn("connection refused", result.failed["basic_data_access"])

    async def test_cleanup_failure_keeps_original_reason(self) -> None:
        with self.assertLogs("firestore_lite.smoke", level="WARNING") as captured:
            result = await run_smoke_checks(Firestore(ReadFailingBackend()))

        for name in ("server_timestamp", "converter", "references"):
            with self.subTest(check=name):
                self.assertIn("read failed", result.failed[name])
        self.assertTrue(any("smoke cleanup failed" in line for line in captured.output))


if __name__ == "__main__":
    unittest.main()
