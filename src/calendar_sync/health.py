"""Pre-flight health checks for local emulator dependencies."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import httpx

if TYPE_CHECKING:
    from calendar_sync.config import Settings

logger = logging.getLogger(__name__)


async def _reachable(client: httpx.AsyncClient, url: str) -> bool:
    try:
        await client.get(url)
    except httpx.ConnectError:
        return False
    return True


async def check_emulators(settings: Settings) -> bool:
    """Verify local emulators are reachable. Return False if any are down."""
    failures: list[str] = []
    async with httpx.AsyncClient(timeout=3) as client:
        cosmos_url = settings.cosmos.endpoint
        if not cosmos_url:
            failures.append("COSMOS_ENDPOINT is not set; add it to .env (see .env.example)")
        elif not cosmos_url.startswith("https://") and not await _reachable(
            client, f"{cosmos_url.rstrip('/')}/"
        ):
            failures.append(f"Cosmos DB emulator is not running at {urlparse(cosmos_url).netloc}")

        storage_url = settings.storage.account_url
        if storage_url and not storage_url.startswith("https://"):
            parsed = urlparse(storage_url)
            if not await _reachable(client, f"{parsed.scheme}://{parsed.netloc}/"):
                failures.append(f"Azurite storage emulator is not running at {parsed.netloc}")
        elif not storage_url and not settings.storage.connection_string:
            logger.warning("Blob storage is not configured; uploads will be unavailable")

    if failures:
        for failure in failures:
            logger.error(failure)
        logger.error("Start the emulators with: docker compose up -d")
        return False
    return True
