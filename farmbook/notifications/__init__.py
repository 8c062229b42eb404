"""Browser push notifications for task changes."""

from farmbook.notifications.push import (
    PushNotifier,
    PushResult,
    task_change_payload,
)
from farmbook.notifications.webhooks import create_webhook_app

__all__ = [
    "PushNotifier",
    "PushResult",
    "create_webhook_app",
    "task_change_payload",
]
