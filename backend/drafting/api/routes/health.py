"""Liveness endpoint."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from drafting.api.response import envelope
from drafting.services.storage import MongoStorage, get_storage

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> JSONResponse:
    """Report liveness and which storage backend this process is bound to."""
    backend = "mongo" if isinstance(get_storage(), MongoStorage) else "memory"
    return envelope({"status": "ok", "storage": backend})
