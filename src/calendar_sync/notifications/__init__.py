"""Project member notifications."""

from calendar_sync.notifications.fanout import NotificationFanout
from calendar_sync.notifications.inbox import NotificationInbox

__all__ = ["NotificationFanout", "NotificationInbox"]
