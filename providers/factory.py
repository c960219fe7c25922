from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from core.settings import Settings, get_settings
from providers.errors import DriverNotFoundError
from providers.storage import Instance, StorageConnection, StorageDriver

logger = logging.getLogger(__name__)

_drivers: Dict[str, StorageDriver] = {}


def register(name: str, driver: StorageDriver) -> None:
    """
    Associate a symbolic driver name (e.g. "s3") with a driver.

    Called by the host during bootstrap; nothing registers on import.
    Re-registering a name replaces the previous driver.
    """
    key = (name or "").strip().lower()
    if not key:
        raise ValueError("driver name is required")
    if key in _drivers:
        logger.warning("[Storage] driver %s re-registered", key)
    _drivers[key] = driver


def unregister(name: str) -> None:
    _drivers.pop((name or "").strip().lower(), None)


def get_driver(name: str) -> StorageDriver:
    key = (name or "").strip().lower()
    try:
        return _drivers[key]
    except KeyError:
        raise DriverNotFoundError(f"storage driver not registered: {name!r}") from None


def register_builtin_drivers() -> None:
    """Register "s3" and "local". Names that are already registered are left as they are."""
    from providers.impl import storage_local_files, storage_s3

    builtins = {"s3": storage_s3.driver, "local": storage_local_files.driver}
    for name, make in builtins.items():
        if name not in _drivers:
            register(name, make())


def connect(instance: Instance) -> StorageConnection:
    return get_driver(instance.driver).connect(instance)


@dataclass(frozen=True)
class Providers:
    """
    Central container for providers.

    Built once by the composition root and attached to app.state.
    """
    settings: Settings
    storage: StorageConnection


def build_instance(settings: Settings) -> Instance:
    s = settings.storage
    return Instance(name="default", driver=s.provider, setting=dict(s.setting))


def get_providers(settings: Optional[Settings] = None) -> Providers:
    """
    Build the provider container: connect the configured storage instance and
    open it. Drivers must be registered first. Raises if the storage backend
    cannot be opened.
    """
    settings = settings or get_settings()

    instance = build_instance(settings)
    storage = connect(instance)
    storage.open()
    logger.info("[Storage] instance=%s driver=%s ready", instance.name, instance.driver)
    return Providers(settings=settings, storage=storage)
