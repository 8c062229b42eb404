"""
Task Push Notifications

When a task is created or changed, its assignee gets a browser push
notification on every device they subscribed from.

DESIGN DECISION: Push services answer 404/410 for subscriptions that
will never work again (browser data cleared, app uninstalled). Those are
deleted on the spot; any other delivery failure is logged and the
subscription kept, since it is usually transient.
"""

import json
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel
from pywebpush import WebPushException, webpush

from farmbook.audit import AuditLogger
from farmbook.config import WebPushSettings, get_settings
from farmbook.models.audit import AuditEventBuilder
from farmbook.models.board import PushSubscriptionRecord, Task
from farmbook.services.storage import RecordStorageInterface


logger = structlog.get_logger(__name__)


SUBSCRIPTIONS = "push_subscriptions"
GONE_STATUS_CODES = {404, 410}

TITLE_ASSIGNED = "新しいタスクが割り当てられました"
TITLE_UPDATED = "タスクが更新されました"


class PushResult(BaseModel):
    """Delivery counts for one notification."""

    delivered: int = 0
    pruned: int = 0
    failed: int = 0


def task_change_payload(
    event_type: str,
    record: Union[Task, dict],
    table: str = "tasks",
) -> Optional[dict]:
    """
    Notification content for a task change.

    Returns None when there is nobody to notify: the change isn't to a
    task, or the task has no usable assignee.
    """
    if table != "tasks" or record is None:
        return None
    if isinstance(record, Task):
        record = record.model_dump(mode="json")
    if _assignee_of(record) is None:
        return None

    return {
        "title": TITLE_ASSIGNED if event_type == "INSERT" else TITLE_UPDATED,
        "body": record.get("title") or "",
        "url": f"/tasks/{record.get('id')}",
    }


def _assignee_of(record: dict) -> Optional[UUID]:
    """The record's assignee id, or None when missing or not a UUID."""
    value = record.get("assignee_id")
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("push_bad_assignee_id", task_id=record.get("id"), assignee_id=str(value))
        return None


def _status_code(error: WebPushException) -> Optional[int]:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


class PushNotifier:
    """Sends Web Push messages and keeps the subscription table tidy."""

    def __init__(
        self,
        storage: RecordStorageInterface,
        settings: Optional[WebPushSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        sender: Optional[Callable[..., Any]] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().web_push
        self._audit_logger = audit_logger or AuditLogger()
        self._sender = sender or webpush

    @property
    def public_key(self) -> str:
        """VAPID public key browsers need to subscribe."""
        return self._settings.vapid_public_key

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def subscribe(self, user_id: UUID, subscription: dict) -> PushSubscriptionRecord:
        """
        Store a browser subscription for a user.

        The endpoint identifies the browser, so subscribing again from
        the same browser replaces the stored keys and owner.
        """
        record = PushSubscriptionRecord.from_subscription(user_id, subscription)
        existing = await self._storage.find_one(SUBSCRIPTIONS, endpoint=record.endpoint)
        if existing is None:
            return await self._storage.insert(SUBSCRIPTIONS, record)

        updated = existing.with_changes(
            user_id=record.user_id,
            p256dh=record.p256dh,
            auth=record.auth,
        )
        return await self._storage.update(SUBSCRIPTIONS, updated)

    async def unsubscribe(self, endpoint: str) -> bool:
        existing = await self._storage.find_one(SUBSCRIPTIONS, endpoint=endpoint)
        if existing is None:
            return False
        return await self._storage.delete(SUBSCRIPTIONS, existing.id)

    async def subscriptions_for(self, user_id: UUID) -> list[PushSubscriptionRecord]:
        return await self._storage.find(SUBSCRIPTIONS, user_id=user_id)

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def send(self, subscription: PushSubscriptionRecord, payload: dict) -> None:
        """
        Deliver one message.

        Raises:
            WebPushException: If the push service refused the message
        """
        self._sender(
            subscription_info=subscription.to_subscription_info(),
            data=json.dumps(payload, ensure_ascii=False),
            vapid_private_key=self._settings.vapid_private_key,
            vapid_claims={"sub": self._settings.vapid_subject},
            ttl=self._settings.ttl_seconds,
        )

    async def notify_user(self, user_id: UUID, payload: dict) -> PushResult:
        """Send a message to every device the user subscribed from."""
        result = PushResult()
        subscriptions = await self.subscriptions_for(user_id)
        if not subscriptions:
            logger.info("no_push_subscriptions", user_id=str(user_id))
            return result

        for subscription in subscriptions:
            try:
                self.send(subscription, payload)
                result.delivered += 1
            except WebPushException as e:
                status_code = _status_code(e)
                if status_code in GONE_STATUS_CODES:
                    await self._storage.delete(SUBSCRIPTIONS, subscription.id)
                    await self._audit_logger.log(AuditEventBuilder.push_subscription_pruned(
                        subscription.id, status_code,
                    ))
                    result.pruned += 1
                else:
                    logger.warning(
                        "push_delivery_failed",
                        subscription_id=str(subscription.id),
                        status_code=status_code,
                        error=str(e),
                    )
                    result.failed += 1

        await self._audit_logger.log(AuditEventBuilder.push_sent(
            user_id, result.delivered, result.pruned,
        ))
        return result

    async def notify_task_change(
        self,
        event_type: str,
        record: Union[Task, dict],
        table: str = "tasks",
    ) -> Optional[PushResult]:
        """
        Tell a task's assignee that it was created or changed.

        Returns None when nobody needed notifying.
        """
        payload = task_change_payload(event_type, record, table)
        if payload is None:
            return None
        if isinstance(record, Task):
            return await self.notify_user(record.assignee_id, payload)
        return await self.notify_user(_assignee_of(record), payload)
