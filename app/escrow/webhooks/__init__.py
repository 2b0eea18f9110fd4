"""
Webhook handling for gateway events.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks. The HTTP endpoint lives in escrow.webhooks.views.
"""

from escrow.webhooks.handlers import dispatch_webhook, register_handler
from escrow.webhooks.reconciler import WebhookReconciler

__all__ = [
    "WebhookReconciler",
    "dispatch_webhook",
    "register_handler",
]
