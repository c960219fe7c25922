from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else str(v)


def _env_bool(name: str) -> Optional[bool]:
    raw = _env(name, "").strip().lower()
    if not raw:
        return None
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return None


# ---------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StorageSettings:
    """
    Storage backend configuration.

    provider:
      - "local" -> LocalFilesDriver
      - "s3"    -> S3Driver (AWS S3 or any S3-compatible store, e.g. MinIO)

    setting:
      Loosely-typed map passed through to the driver as Instance.setting.
    """
    provider: str
    setting: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Settings:
    storage: StorageSettings
    log_level: str = "INFO"


# ---------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------

def _normalize_storage_provider(raw: str) -> str:
    v = (raw or "").strip().lower()
    if v in ("s3", "minio", "object_store", "objectstore"):
        return "s3"
    if v in ("local", "file", "files", "filesystem"):
        return "local"
    return "local"


def _load_s3_setting() -> Dict[str, Any]:
    # Keys match what the s3 driver reads; empty values are left out so the
    # driver falls back to its own defaults.
    setting: Dict[str, Any] = {}

    region = (_env("S3_REGION", "") or _env("AWS_REGION", "") or _env("AWS_DEFAULT_REGION", "")).strip()
    pairs = {
        "region": region,
        "bucket": _env("S3_BUCKET", "").strip(),
        "access_key": _env("S3_ACCESS_KEY", "").strip(),
        "secret_key": _env("S3_SECRET_KEY", "").strip(),
        "session_token": _env("S3_SESSION_TOKEN", "").strip(),
        "endpoint": _env("S3_ENDPOINT", "").strip().rstrip("/"),
    }
    for k, v in pairs.items():
        if v:
            setting[k] = v

    path_style = _env_bool("S3_FORCE_PATH_STYLE")
    if path_style is not None:
        setting["force_path_style"] = path_style
    return setting


def _load_storage_settings() -> StorageSettings:
    """
    Storage precedence (DO NOT break this):
      1) STORAGE_MODE (deployment/runtime truth)  <-- must win
      2) STORAGE_PROVIDER (legacy override)
      3) default local
    """
    raw_mode = (_env("STORAGE_MODE", "") or "").strip()
    raw_provider = (_env("STORAGE_PROVIDER", "") or "").strip()
    provider = _normalize_storage_provider(raw_mode or raw_provider or "local")

    if provider == "s3":
        return StorageSettings(provider=provider, setting=_load_s3_setting())

    local_dir = (_env("STORAGE_LOCAL_DIR", "") or _env("LOCAL_STORAGE_DIR", "") or "./data").strip()
    return StorageSettings(provider=provider, setting={"root": local_dir})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        storage=_load_storage_settings(),
        log_level=(_env("LOG_LEVEL", "") or "INFO").strip().upper(),
    )
