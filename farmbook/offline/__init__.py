"""Offline work log queue and replay."""

from farmbook.offline.queue import (
    OfflineSyncManager,
    OfflineWorkLogQueue,
    QueuedWorkLog,
    SyncReport,
    to_data_url,
)

__all__ = [
    "OfflineSyncManager",
    "OfflineWorkLogQueue",
    "QueuedWorkLog",
    "SyncReport",
    "to_data_url",
]
