"""Exception types raised inside the synchronization engine."""

from __future__ import annotations


class CalendarSyncError(Exception):
    """Base class for engine errors."""


class MutationRejectedError(CalendarSyncError):
    """A user intent failed client-side validation before any write."""


class UploadError(CalendarSyncError):
    """The blob store could not accept a file."""


class SubscriptionError(CalendarSyncError):
    """The remote subscription delivered an error instead of a snapshot."""
