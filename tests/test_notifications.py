"""Tests for push notifications and the webhook endpoints."""

import asyncio
import json
import pytest
from types import SimpleNamespace
from uuid import uuid4

from pywebpush import WebPushException

from farmbook.config import WebPushSettings
from farmbook.models.audit import AuditEventType
from farmbook.models.board import Task
from farmbook.notifications import PushNotifier, create_webhook_app, task_change_payload
from farmbook.notifications.push import TITLE_ASSIGNED, TITLE_UPDATED


SECRET = "s3cret"


def subscription(endpoint="https://push.example/device-1"):
    return {"endpoint": endpoint, "keys": {"p256dh": "p256dh-key", "auth": "auth-key"}}


class FakeSender:
    """Records deliveries; endpoints listed in `errors` fail with that status."""

    def __init__(self, errors=None):
        self.sent = []
        self.errors = errors or {}

    def __call__(self, subscription_info, data, **kwargs):
        status = self.errors.get(subscription_info["endpoint"])
        if status:
            raise WebPushException("push refused", response=SimpleNamespace(status_code=status))
        self.sent.append((subscription_info, json.loads(data), kwargs))


@pytest.fixture
def settings():
    return WebPushSettings(
        vapid_public_key="public-key",
        vapid_private_key="private-key",
        vapid_subject="mailto:farm@example.com",
        webhook_secret=SECRET,
    )


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def notifier(storage, settings, sender, audit_logger):
    return PushNotifier(storage, settings=settings, audit_logger=audit_logger, sender=sender)


class TestTaskChangePayload:
    """Tests for notification content."""

    def test_insert_and_update_titles(self):
        """New assignments and updates read differently."""
        task = Task(title="Harvest", assignee_id=uuid4())
        created = task_change_payload("INSERT", task)
        assert created == {"title": TITLE_ASSIGNED, "body": "Harvest", "url": f"/tasks/{task.id}"}
        assert task_change_payload("UPDATE", task)["title"] == TITLE_UPDATED

    def test_nobody_to_notify(self):
        """Unassigned tasks, malformed assignees and other tables are skipped."""
        assert task_change_payload("INSERT", Task(title="Harvest")) is None
        assert task_change_payload("INSERT", {"assignee_id": str(uuid4())}, table="fields") is None
        assert task_change_payload("INSERT", {"id": "t1", "assignee_id": "farmer-bob"}) is None


class TestPushNotifier:
    """Tests for subscriptions and delivery."""

    def test_resubscribe_replaces_keys(self, notifier):
        """One record per browser endpoint."""
        first_user, second_user = uuid4(), uuid4()
        asyncio.run(notifier.subscribe(first_user, subscription()))
        updated = subscription()
        updated["keys"]["auth"] = "new-auth"
        asyncio.run(notifier.subscribe(second_user, updated))

        assert asyncio.run(notifier.subscriptions_for(first_user)) == []
        stored = asyncio.run(notifier.subscriptions_for(second_user))
        assert len(stored) == 1
        assert stored[0].auth == "new-auth"

    def test_unsubscribe(self, notifier):
        """Removing a subscription by endpoint."""
        user_id = uuid4()
        asyncio.run(notifier.subscribe(user_id, subscription()))
        assert asyncio.run(notifier.unsubscribe("https://push.example/device-1")) is True
        assert asyncio.run(notifier.unsubscribe("https://push.example/device-1")) is False

    def test_delivers_to_every_device(self, notifier, sender, settings):
        """Each subscription gets the payload with VAPID claims."""
        user_id = uuid4()
        asyncio.run(notifier.subscribe(user_id, subscription("https://push.example/phone")))
        asyncio.run(notifier.subscribe(user_id, subscription("https://push.example/laptop")))

        result = asyncio.run(notifier.notify_user(user_id, {"title": "hi", "body": "hi", "url": "/"}))
        assert result.delivered == 2
        info, payload, kwargs = sender.sent[0]
        assert payload["title"] == "hi"
        assert kwargs["vapid_private_key"] == "private-key"
        assert kwargs["vapid_claims"] == {"sub": "mailto:farm@example.com"}
        assert kwargs["ttl"] == settings.ttl_seconds

    def test_gone_subscriptions_are_pruned(self, storage, settings, audit_logger, audit_storage):
        """404/410 remove the subscription; other errors keep it."""
        sender = FakeSender(errors={
            "https://push.example/gone": 410,
            "https://push.example/flaky": 500,
        })
        notifier = PushNotifier(storage, settings=settings, audit_logger=audit_logger, sender=sender)
        user_id = uuid4()
        for name in ("ok", "gone", "flaky"):
            asyncio.run(notifier.subscribe(user_id, subscription(f"https://push.example/{name}")))

        result = asyncio.run(notifier.notify_user(user_id, {"title": "x", "body": "x", "url": "/"}))
        assert (result.delivered, result.pruned, result.failed) == (1, 1, 1)

        endpoints = {s.endpoint for s in asyncio.run(notifier.subscriptions_for(user_id))}
        assert endpoints == {"https://push.example/ok", "https://push.example/flaky"}
        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.PUSH_SUBSCRIPTION_PRUNED in types
        assert AuditEventType.PUSH_SENT in types

    def test_no_subscriptions(self, notifier, sender):
        """Users who never subscribed get nothing."""
        result = asyncio.run(notifier.notify_user(uuid4(), {"title": "x"}))
        assert result.delivered == 0
        assert sender.sent == []

    def test_task_change_from_webhook_record(self, notifier, sender):
        """Raw database records work as well as Task models."""
        user_id = uuid4()
        asyncio.run(notifier.subscribe(user_id, subscription()))
        record = {"id": str(uuid4()), "title": "Spray", "assignee_id": str(user_id)}

        result = asyncio.run(notifier.notify_task_change("UPDATE", record))
        assert result.delivered == 1
        assert sender.sent[0][1]["url"] == f"/tasks/{record['id']}"


class TestWebhookApp:
    """Tests for the Flask endpoints."""

    @pytest.fixture
    def client(self, notifier, settings):
        app = create_webhook_app(notifier, settings)
        app.config["TESTING"] = True
        return app.test_client()

    def task_event(self, assignee_id, event_type="INSERT"):
        return {
            "type": event_type,
            "table": "tasks",
            "record": {"id": str(uuid4()), "title": "Harvest", "assignee_id": str(assignee_id)},
        }

    def test_health(self, client):
        """Liveness check."""
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_secret_required(self, client):
        """Sending endpoints reject missing or wrong secrets."""
        event = self.task_event(uuid4())
        assert client.post("/api/webhooks/tasks", json=event).status_code == 401
        response = client.post("/api/web-push/send", json=event, headers={"x-webhook-secret": "nope"})
        assert response.status_code == 401

    def test_no_configured_secret_refuses_everything(self, notifier):
        """An unset secret never means open access."""
        open_settings = WebPushSettings(vapid_public_key="pub", vapid_private_key="priv")
        client = create_webhook_app(notifier, open_settings).test_client()
        response = client.post(
            "/api/webhooks/tasks",
            json=self.task_event(uuid4()),
            headers={"x-webhook-secret": ""},
        )
        assert response.status_code == 401

    def test_task_event_notifies_assignee(self, client, notifier, sender):
        """An insert reaches the assignee's devices."""
        user_id = uuid4()
        asyncio.run(notifier.subscribe(user_id, subscription()))
        response = client.post(
            "/api/webhooks/tasks",
            json=self.task_event(user_id),
            headers={"x-webhook-secret": SECRET},
        )
        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["delivered"] == 1
        assert sender.sent[0][1]["title"] == TITLE_ASSIGNED

    def test_other_events_ignored(self, client):
        """Deletes don't notify."""
        response = client.post(
            "/api/web-push/send",
            json=self.task_event(uuid4(), event_type="DELETE"),
            headers={"x-webhook-secret": SECRET},
        )
        assert response.get_json() == {"message": "Event ignored"}

    def test_unassigned_task(self, client):
        """Nothing to send without an assignee."""
        event = {"type": "INSERT", "table": "tasks", "record": {"id": str(uuid4()), "title": "x"}}
        response = client.post("/api/webhooks/tasks", json=event, headers={"x-webhook-secret": SECRET})
        assert response.get_json() == {"message": "No assignee to notify"}

    def test_malformed_assignee(self, client, sender):
        """An assignee id that isn't a UUID is treated as unassigned."""
        event = self.task_event("not-a-uuid")
        response = client.post("/api/webhooks/tasks", json=event, headers={"x-webhook-secret": SECRET})
        assert response.status_code == 200
        assert response.get_json() == {"message": "No assignee to notify"}
        assert sender.sent == []

    def test_subscribe_endpoint(self, client, notifier):
        """Browsers register through the subscribe endpoint."""
        user_id = uuid4()
        response = client.post(
            "/api/web-push/subscribe",
            json={"user_id": str(user_id), "subscription": subscription()},
        )
        assert response.status_code == 200
        assert response.get_json()["success"] is True
        assert len(asyncio.run(notifier.subscriptions_for(user_id))) == 1

    def test_subscribe_requires_subscription(self, client):
        """Bad bodies are rejected."""
        assert client.post("/api/web-push/subscribe", json={"user_id": str(uuid4())}).status_code == 400
        response = client.post("/api/web-push/subscribe", json={"user_id": "nope", "subscription": subscription()})
        assert response.status_code == 400
