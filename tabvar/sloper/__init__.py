"""Sloper guidebook API integration."""

from tabvar.sloper.client import SloperClient
from tabvar.sloper.exceptions import (
    AuthError,
    DateFormatError,
    FetchError,
    RenameDepthExceeded,
    SloperError,
)
from tabvar.sloper.reconcile import SloperSyncEngine, get_incremental_name
from tabvar.sloper.sync_log import SyncLog

__all__ = [
    "SloperClient",
    "SloperSyncEngine",
    "SyncLog",
    "get_incremental_name",
    "SloperError",
    "AuthError",
    "FetchError",
    "DateFormatError",
    "RenameDepthExceeded",
]
