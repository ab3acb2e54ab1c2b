"""Channel synchronization: registry, listener, transit tracking and mutations."""

from calendar_sync.sync.coordinator import (
    ContentDraft,
    ContentEdit,
    MutationCoordinator,
    MutationResult,
)
from calendar_sync.sync.listener import RemoteSyncListener
from calendar_sync.sync.registry import ContentRegistry
from calendar_sync.sync.session import ChannelSession, SyncEngine
from calendar_sync.sync.sweeper import InvalidEntrySweeper
from calendar_sync.sync.transit import TransitTracker

__all__ = [
    "ChannelSession",
    "ContentDraft",
    "ContentEdit",
    "ContentRegistry",
    "InvalidEntrySweeper",
    "MutationCoordinator",
    "MutationResult",
    "RemoteSyncListener",
    "SyncEngine",
    "TransitTracker",
]
