"""
Push Notification HTTP Endpoints

A small Flask app the database change hook and browsers talk to:

    POST /api/webhooks/tasks      task change event -> notify assignee
    POST /api/web-push/send       same, for manual or scripted sends
    POST /api/web-push/subscribe  store a browser subscription
    GET  /api/health              liveness check

DESIGN DECISION: The two sending endpoints require the shared secret in
the x-webhook-secret header, compared in constant time. Without a
configured secret they refuse every request rather than run open.
"""

import asyncio
import hmac
from functools import wraps
from typing import Optional
from uuid import UUID

import structlog
from flask import Flask, jsonify, request

from farmbook.config import WebPushSettings, get_settings
from farmbook.notifications.push import PushNotifier


logger = structlog.get_logger(__name__)

SECRET_HEADER = "x-webhook-secret"
NOTIFY_EVENT_TYPES = {"INSERT", "UPDATE"}


def create_webhook_app(
    notifier: PushNotifier,
    settings: Optional[WebPushSettings] = None,
) -> Flask:
    """Build the Flask app around a notifier."""
    settings = settings or get_settings().web_push
    app = Flask(__name__)

    def require_secret(f):
        """Reject requests without the shared webhook secret."""
        @wraps(f)
        def decorated(*args, **kwargs):
            expected = settings.webhook_secret or ""
            provided = request.headers.get(SECRET_HEADER, "")
            if not expected or not hmac.compare_digest(provided, expected):
                return jsonify({"error": "Unauthorized"}), 401
            return f(*args, **kwargs)
        return decorated

    def handle_task_event():
        data = request.get_json(force=True, silent=True) or {}
        event_type = data.get("type")
        table = data.get("table", "tasks")
        record = data.get("record")

        if event_type not in NOTIFY_EVENT_TYPES or not isinstance(record, dict):
            return jsonify({"message": "Event ignored"})

        try:
            result = asyncio.run(notifier.notify_task_change(event_type, record, table))
        except Exception as e:
            logger.error("push_webhook_failed", error=str(e))
            return jsonify({"error": str(e)}), 500

        if result is None:
            return jsonify({"message": "No assignee to notify"})
        return jsonify({"success": True, **result.model_dump()})

    @app.route("/api/webhooks/tasks", methods=["POST"])
    @require_secret
    def task_webhook():
        return handle_task_event()

    @app.route("/api/web-push/send", methods=["POST"])
    @require_secret
    def send_push():
        return handle_task_event()

    @app.route("/api/web-push/subscribe", methods=["POST"])
    def subscribe():
        data = request.get_json(force=True, silent=True) or {}
        subscription = data.get("subscription")
        if not isinstance(subscription, dict) or not subscription.get("endpoint"):
            return jsonify({"error": "No subscription provided"}), 400
        try:
            user_id = UUID(str(data.get("user_id")))
        except ValueError:
            return jsonify({"error": "user_id is required"}), 400

        try:
            record = asyncio.run(notifier.subscribe(user_id, subscription))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.error("push_subscribe_failed", error=str(e))
            return jsonify({"error": str(e)}), 500
        return jsonify({"success": True, "id": str(record.id)})

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok"})

    return app
