"""Entry point: keeps one channel of a project in sync until terminated."""

from __future__ import annotations

import asyncio
import logging
import signal

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

from calendar_sync.config import load_settings
from calendar_sync.database.client import CosmosClient
from calendar_sync.database.repositories import (
    ActivityRepository,
    NotificationRepository,
    ProjectRepository,
)
from calendar_sync.health import check_emulators
from calendar_sync.logging import configure_logging
from calendar_sync.models.project import Member
from calendar_sync.notifications import NotificationFanout
from calendar_sync.storage import BlobStore
from calendar_sync.sync import ContentRegistry, SyncEngine

logger = logging.getLogger(__name__)


def _log_registry(registry: ContentRegistry) -> None:
    if registry.error:
        logger.error(registry.error)
        return
    scheduled = sum(len(items) for items in registry.slot_groups().values())
    logger.info(
        "Registry updated: %d item(s), %d in pool, %d scheduled",
        len(registry),
        len(registry.pool_items()),
        scheduled,
    )


async def run() -> None:
    """Initialize and run the sync engine until terminated."""
    settings = load_settings()
    configure_logging(settings.app.log_level, log_file="calendar-sync.log")

    logger.info("Calendar sync starting")

    if settings.monitor.connection_string:
        configure_azure_monitor(
            connection_string=settings.monitor.connection_string,
            resource=Resource.create({SERVICE_NAME: "calendar-sync"}),
        )
        logger.info("Azure Monitor OpenTelemetry configured")

    if settings.app.is_development and not await check_emulators(settings):
        return
    if not settings.app.project_id:
        logger.error("PROJECT_ID is not set; add it to .env")
        return

    cosmos = CosmosClient(settings.cosmos)
    try:
        await cosmos.initialize()
    except ConnectionError as exc:
        logger.error(str(exc))  # noqa: TRY400
        return

    blobs = BlobStore(settings.storage)
    projects = ProjectRepository(cosmos.database)
    fanout = NotificationFanout(
        projects,
        NotificationRepository(cosmos.database),
        window_minutes=settings.sync.notification_window_minutes,
    )
    engine = SyncEngine(
        projects,
        actor=Member(uid=settings.app.user_id, display_name=settings.app.user_name),
        activities=ActivityRepository(cosmos.database),
        fanout=fanout,
        blobs=blobs,
        sync=settings.sync,
    )
    try:
        await blobs.initialize()
        session = await engine.open(settings.app.project_id, settings.app.channel)
        session.registry.add_listener(_log_registry)

        logger.info("Calendar sync running")

        # Wait until terminated
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await stop_event.wait()
        logger.info("Calendar sync shutting down")
    finally:
        await engine.close()
        await blobs.close()
        await cosmos.close()
    logger.info("Calendar sync shutdown complete")


def main() -> None:
    """Entry point for the calendar-sync process."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
