from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import os


DEFAULT_DATABASE = "(default)"
DEFAULT_TIMEOUT_SECONDS = 30.0
BACKEND_MEMORY = "memory"
BACKEND_REST = "rest"
BACKEND_GCP = "gcp"
BACKENDS = (BACKEND_MEMORY, BACKEND_REST, BACKEND_GCP)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SettingsError(ValueError):
    """Raised when settings values are invalid."""


@dataclass(frozen=True)
class AppSettings:
    project_id: str
    database: str
    backend: str
    emulator_host: str
    timeout_seconds: float
    strict_snapshots: bool


def _read_dotenv(dotenv_path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not dotenv_path.exists():
        return values

    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if key:
            values[key] = value
    return values


def _get_str(values: Mapping[str, str], key: str, default: str) -> str:
    value = values.get(key, default).strip()
    if not value:
        raise SettingsError(f"{key} must not be empty.")
    return value


def _get_optional_str(values: Mapping[str, str], key: str) -> str:
    return values.get(key, "").strip()


def _get_positive_float(values: Mapping[str, str], key: str, default: float) -> float:
    raw_value = values.get(key)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{key} must be a number: {raw_value}") from exc
    if value <= 0:
        raise SettingsError(f"{key} must be > 0: {value}")
    return value


def _get_bool(values: Mapping[str, str], key: str, default: bool) -> bool:
    raw_value = values.get(key)
    if raw_value is None or raw_value.strip() == "":
        return default
    normalized = raw_value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise SettingsError(f"{key} must be boolean: {raw_value}")


def load_settings(
    *,
    env: Mapping[str, str] | None = None,
    dotenv_path: str | Path = ".env",
) -> AppSettings:
    """Load settings from .env and environment variables.

    Priority: OS environment > .env > default.
    """

    env_values = dict(env) if env is not None else dict(os.environ)
    dotenv_values = _read_dotenv(Path(dotenv_path))
    merged: dict[str, str] = {**dotenv_values, **env_values}

    emulator_host = _get_optional_str(merged, "FIRESTORE_EMULATOR_HOST")
    default_backend = BACKEND_REST if emulator_host else BACKEND_MEMORY
    backend = _get_str(merged, "FIRESTORE_BACKEND", default_backend).lower()
    if backend not in BACKENDS:
        raise SettingsError(f"FIRESTORE_BACKEND must be one of {', '.join(BACKENDS)}: {backend}")

    return AppSettings(
        project_id=_get_optional_str(merged, "FIRESTORE_PROJECT_ID"),
        database=_get_str(merged, "FIRESTORE_DATABASE", DEFAULT_DATABASE),
        backend=backend,
        emulator_host=emulator_host,
        timeout_seconds=_get_positive_float(merged, "FIRESTORE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        strict_snapshots=_get_bool(merged, "FIRESTORE_STRICT_SNAPSHOTS", False),
    )
