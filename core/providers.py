from __future__ import annotations

import logging

from fastapi import FastAPI, Request

from providers.factory import Providers, get_providers, register_builtin_drivers

logger = logging.getLogger(__name__)


def providers_from_request(request: Request) -> Providers:
    """
    Canonical provider accessor for ALL routers.

    Providers are attached once during app startup as request.app.state.providers.
    """
    try:
        return request.app.state.providers
    except Exception as exc:
        raise RuntimeError("Providers not initialized on app.state (startup/lifespan not executed).") from exc


def init_providers(app: FastAPI) -> Providers:
    """
    Canonical provider initialization.
    Called once during app startup/lifespan. Registers the built-in drivers,
    then attaches Providers onto app.state.
    """
    register_builtin_drivers()
    app.state.providers = get_providers()
    return app.state.providers


def shutdown_providers(app: FastAPI) -> None:
    providers = getattr(app.state, "providers", None)
    if providers is None:
        return
    providers.storage.close()
    logger.info("[Storage] connection closed")
