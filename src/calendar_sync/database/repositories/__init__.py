"""Repository modules for each Cosmos DB container."""

from calendar_sync.database.repositories.activities import ActivityRepository
from calendar_sync.database.repositories.notifications import NotificationRepository
from calendar_sync.database.repositories.projects import ProjectRepository

__all__ = [
    "ActivityRepository",
    "NotificationRepository",
    "ProjectRepository",
]
