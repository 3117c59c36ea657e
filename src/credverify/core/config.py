from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from credverify.core.errors import ConfigurationError

STORE_BACKENDS = ("sqlite", "log")

DEFAULT_DATA_DIRNAME = "data"
DEFAULT_WORKER_ID = "worker-1"
DEFAULT_LOCK_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path
    worker_id: str
    store_backend: str
    store_path: Path
    authority_backend: str
    authority_path: Path
    lock_timeout_seconds: float
    cors_origins: tuple[str, ...]


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _backend_for_path(path: Path) -> str:
    return "log" if path.suffix.lower() == ".json" else "sqlite"


def _read_backend_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value not in STORE_BACKENDS:
        raise ConfigurationError(
            f"{name} must be one of {', '.join(STORE_BACKENDS)}; got '{raw}'"
        )
    return value


def store_path_for(data_dir: Path, backend: str) -> Path:
    if backend == "log":
        return data_dir / "verifications.json"
    return data_dir / "verifications.db"


def load_config(data_dir: Path | None = None) -> AppConfig:
    cwd = Path.cwd()
    home_raw = os.getenv("CREDVERIFY_HOME")
    if data_dir is not None:
        root = data_dir.expanduser().resolve()
    elif home_raw:
        root = Path(home_raw).expanduser().resolve()
    else:
        root = cwd / DEFAULT_DATA_DIRNAME

    store_backend = _read_backend_env("CREDVERIFY_STORE_BACKEND", "sqlite")

    authority_raw = os.getenv("CREDVERIFY_AUTHORITY_PATH")
    if authority_raw:
        authority_path = Path(authority_raw).expanduser().resolve()
    else:
        authority_path = (cwd / ".." / "issuance-service" / "data" / "credentials.db").resolve()
    authority_backend = _read_backend_env(
        "CREDVERIFY_AUTHORITY_BACKEND", _backend_for_path(authority_path)
    )

    worker_id = (os.getenv("WORKER_ID") or "").strip() or DEFAULT_WORKER_ID
    origins_raw = os.getenv("CREDVERIFY_CORS_ORIGINS") or "*"
    cors_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip()) or ("*",)

    return AppConfig(
        data_dir=root,
        worker_id=worker_id,
        store_backend=store_backend,
        store_path=store_path_for(root, store_backend),
        authority_backend=authority_backend,
        authority_path=authority_path,
        lock_timeout_seconds=read_float_env(
            "CREDVERIFY_LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT_SECONDS
        ),
        cors_origins=cors_origins,
    )
