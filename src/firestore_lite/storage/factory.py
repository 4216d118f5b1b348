from __future__ import annotations

import logging

from firestore_lite.settings import BACKEND_GCP, BACKEND_MEMORY, BACKEND_REST, AppSettings, SettingsError
from firestore_lite.storage.backend import Backend
from firestore_lite.storage.memory_backend import InMemoryBackend
from firestore_lite.storage.rest_backend import RestBackend


LOGGER = logging.getLogger(__name__)

EMULATOR_DEFAULT_PROJECT_ID = "demo-firestore-lite"


def create_backend(settings: AppSettings) -> Backend:
    if settings.backend == BACKEND_MEMORY:
        LOGGER.info("Using in-memory document backend")
        return InMemoryBackend()

    if settings.backend == BACKEND_REST:
        project_id = settings.project_id
        if not project_id and settings.emulator_host:
            project_id = EMULATOR_DEFAULT_PROJECT_ID
        if not project_id:
            raise SettingsError("FIRESTORE_PROJECT_ID is required for the rest backend.")
        LOGGER.info("Using Firestore REST backend: project=%s emulator=%s", project_id, settings.emulator_host or "-")
        return RestBackend(
            project_id=project_id,
            database=settings.database,
            emulator_host=settings.emulator_host,
            timeout_seconds=settings.timeout_seconds,
        )

    if settings.backend == BACKEND_GCP:
        try:
            from firestore_lite.storage.gcp_backend import GoogleCloudBackend
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "google-cloud-firestore is not installed. Install with: pip install -e '.[gcp]'"
            ) from exc
        LOGGER.info("Using google-cloud-firestore backend: project=%s", settings.project_id or "(ADC default)")
        return GoogleCloudBackend(project_id=settings.project_id, database=settings.database)

    raise SettingsError(f"Unknown backend: {settings.backend}")
