# health/router.py
from fastapi import APIRouter
from pydantic import BaseModel

from core.deps import ProvidersDep

router = APIRouter(tags=["health"])


class StorageHealthModel(BaseModel):
    ok: bool
    driver: str
    workload: int


@router.get("/health")
def health():
    # Keep this super simple and always unauthenticated
    return {"ok": True}


@router.get("/health/storage", response_model=StorageHealthModel)
def health_storage(providers: ProvidersDep):
    """
    Reports the storage connection's workload (0 = ready, 1 = not ready).
    No round-trip to the backend.
    """
    h = providers.storage.health()
    return StorageHealthModel(
        ok=h.workload == 0,
        driver=providers.settings.storage.provider,
        workload=h.workload,
    )
