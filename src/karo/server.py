"""
Webhook server for karo.

Receives Alertmanager webhooks and dispatches each firing alert to the
matching AlertReactions.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml
from flask import Flask, jsonify, request
from flask_cors import CORS

from karo.alert import AlertPayload, AlertmanagerWebhook
from karo.dispatcher import AlertDispatcher

logger = logging.getLogger(__name__)

DEFAULT_RECEIVER = "karo"
WEBHOOK_PATH = "/webhook"


def alertmanager_config(base_url: str, receiver: str = DEFAULT_RECEIVER) -> Dict[str, Any]:
    """Example Alertmanager configuration routing every alert to karo."""
    url = base_url.rstrip("/") + WEBHOOK_PATH
    return {
        "route": {
            "receiver": receiver,
            "group_by": ["alertname"],
            "group_wait": "10s",
            "group_interval": "10s",
            "repeat_interval": "1h",
        },
        "receivers": [
            {
                "name": receiver,
                "webhook_configs": [
                    {"url": url, "send_resolved": False},
                ],
            },
        ],
    }


def alertmanager_config_yaml(base_url: str, receiver: str = DEFAULT_RECEIVER) -> str:
    return yaml.safe_dump(alertmanager_config(base_url, receiver), sort_keys=False)


class WebhookServer:
    """
    Flask-based webhook server for Alertmanager.

    Each request is handled synchronously: the response reports how many
    jobs were created for the alerts in the batch.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        port: int = 9090,
        host: str = "0.0.0.0",
        service_name: str = "karo",
    ):
        self.dispatcher = dispatcher
        self.port = port
        self.host = host
        self.service_name = service_name

        self.app = Flask(__name__)
        CORS(self.app)

        self._setup_routes()

    @property
    def webhook_url(self) -> str:
        host = "localhost" if self.host in ("0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}{WEBHOOK_PATH}"

    def _setup_routes(self):
        """Set up Flask routes."""

        @self.app.route("/health", methods=["GET"])
        def health():
            return jsonify({
                "status": "healthy",
                "service": self.service_name,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })

        @self.app.route(WEBHOOK_PATH, methods=["POST"])
        @self.app.route(f"{WEBHOOK_PATH}/<receiver>", methods=["POST"])
        def alertmanager_webhook(receiver: Optional[str] = None):
            """
            Handle Alertmanager webhooks.

            Response (200):
                {
                    "message": "Webhook processed successfully",
                    "alerts": int,
                    "jobsCreated": int,
                    "errors": int
                }
            """
            data = request.get_json(silent=True)
            if data is None:
                logger.error("Failed to decode Alertmanager webhook body")
                return jsonify({"status": "error", "error": "invalid JSON body"}), 400

            try:
                webhook = AlertmanagerWebhook.from_json(data)
            except (ValueError, TypeError) as e:
                logger.error(f"Failed to parse Alertmanager webhook: {e}")
                return jsonify({"status": "error", "error": str(e)}), 400

            return jsonify(self.handle_webhook(webhook, receiver or webhook.receiver))

    def handle_webhook(self, webhook: AlertmanagerWebhook, receiver: str = "") -> Dict[str, Any]:
        """Dispatch every firing alert of ``webhook``; returns the response body."""
        logger.info(f"Received Alertmanager webhook with {len(webhook.alerts)} alert(s)")

        jobs_created = 0
        errors = 0
        for raw in webhook:
            payload = AlertPayload.from_alertmanager_alert(raw)
            alert_name = payload.alert_name

            if not payload.is_firing:
                self.dispatcher.skip("not firing", alert_name=alert_name, status=payload.status)
                continue
            if not alert_name:
                self.dispatcher.skip("missing alertname label", status=payload.status)
                continue

            result = self.dispatcher.dispatch(alert_name, payload, receiver=receiver)
            jobs_created += result.jobs_created
            errors += len(result.errors)

        return {
            "message": "Webhook processed successfully",
            "alerts": len(webhook.alerts),
            "jobsCreated": jobs_created,
            "errors": errors,
        }

    def run(self, debug: bool = False):
        """Start the webhook server."""
        logger.info(f"Starting karo webhook server on {self.host}:{self.port}")
        logger.info(f"Alertmanager webhook URL: {self.webhook_url}")

        self.app.run(host=self.host, port=self.port, debug=debug)
