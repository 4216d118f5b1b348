from __future__ import annotations

import threading

from firestore_lite.client import Firestore, LogFunction
from firestore_lite.errors import AlreadyExistsError, FirestoreError, GrpcStatus, NotFoundError
from firestore_lite.settings import AppSettings, load_settings
from firestore_lite.storage.factory import create_backend


DEFAULT_APP_NAME = "[DEFAULT]"

_apps: dict[str, "App"] = {}
_apps_lock = threading.Lock()


class App:
    """Named configuration handle that owns at most one Firestore client."""

    def __init__(self, name: str, settings: AppSettings) -> None:
        self._name = name
        self._settings = settings
        self._firestore: Firestore | None = None
        self._firestore_settings: AppSettings | None = None
        self._lock = threading.Lock()
        self._deleted = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def firestore(self) -> Firestore:
        return get_firestore(self)

    def _get_or_create_client(self, settings: AppSettings | None) -> Firestore:
        with self._lock:
            if self._deleted:
                raise FirestoreError(f"App {self._name!r} has been deleted.", code=GrpcStatus.FAILED_PRECONDITION)
            if self._firestore is not None:
                if settings is not None and settings != self._firestore_settings:
                    raise FirestoreError(
                        f"Firestore for app {self._name!r} is already initialized with different settings.",
                        code=GrpcStatus.FAILED_PRECONDITION,
                    )
                return self._firestore

            effective = settings or self._settings
            self._firestore = Firestore(
                create_backend(effective),
                project_id=effective.project_id,
                database=effective.database,
                strict_snapshots=effective.strict_snapshots,
            )
            self._firestore_settings = effective
            return self._firestore

    async def _close(self) -> None:
        with self._lock:
            self._deleted = True
            client, self._firestore = self._firestore, None
            self._firestore_settings = None
        if client is not None:
            await client.close()

    def __repr__(self) -> str:
        return f"App(name={self._name!r})"


def initialize_app(settings: AppSettings | None = None, *, name: str = DEFAULT_APP_NAME) -> App:
    with _apps_lock:
        if name in _apps:
            raise AlreadyExistsError(f"App {name!r} already exists.")
        app = App(name, settings or load_settings())
        _apps[name] = app
        return app


def get_app(name: str = DEFAULT_APP_NAME) -> App:
    with _apps_lock:
        app = _apps.get(name)
    if app is None:
        raise NotFoundError(f"App {name!r} does not exist. Call initialize_app() first.")
    return app


async def delete_app(app: App) -> None:
    with _apps_lock:
        if _apps.get(app.name) is app:
            del _apps[app.name]
    await app._close()


def _default_app() -> App:
    with _apps_lock:
        app = _apps.get(DEFAULT_APP_NAME)
        if app is None:
            app = App(DEFAULT_APP_NAME, load_settings())
            _apps[DEFAULT_APP_NAME] = app
        return app


def get_firestore(app: App | None = None) -> Firestore:
    """Return the Firestore client of `app`, creating the default app on first use."""

    return (app or _default_app())._get_or_create_client(None)


def initialize_firestore(app: App, settings: AppSettings | None = None) -> Firestore:
    return app._get_or_create_client(settings)


def set_log_function(log_function: LogFunction | None, app: App | None = None) -> None:
    get_firestore(app).set_log_function(log_function)
