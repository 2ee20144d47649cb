import logging

from fastapi import APIRouter, Depends

from textstream.providers.registry import provider_registry
from textstream.services.errors import StorageError
from textstream.services.streams import StreamService, get_stream_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(service: StreamService = Depends(get_stream_service)):
    """Health check: storage reachability, provider and drives in flight"""
    try:
        await service.store.get_status("health-check")
        storage = "ok"
    except StorageError as e:
        logger.error(f"Health check could not reach storage: {e.message}")
        storage = "unavailable"

    provider = provider_registry.get_provider()
    return {
        "status": "healthy" if storage == "ok" else "degraded",
        "storage": storage,
        "provider": provider.name if provider else None,
        "active_drives": service.active_count,
    }
