"""
Pytest fixtures for webhook tests.

Events are stored directly as WebhookEvent rows with a Stripe-shaped
payload; handlers run against the fake-gateway engine from
escrow/conftest.py.
"""

import pytest

from escrow.state_machines import WebhookEventStatus
from escrow.tests.factories import WebhookEventFactory
from escrow.tests.fakes import stripe_event
from escrow.webhooks.reconciler import WebhookReconciler


@pytest.fixture
def reconciler(engine):
    return WebhookReconciler.from_engine(engine)


@pytest.fixture
def make_event(db):
    """Store a pending WebhookEvent for ``event_type`` wrapping ``obj``."""

    def _make(event_type: str, obj: dict, **kwargs):
        payload = stripe_event(event_type, obj)
        return WebhookEventFactory(
            gateway_event_id=payload["id"],
            event_type=event_type,
            payload=payload,
            **kwargs,
        )

    return _make


@pytest.fixture
def processed_webhook_event(make_event):
    return make_event(
        "payment_intent.succeeded",
        {"id": "pi_processed"},
        status=WebhookEventStatus.PROCESSED,
        retry_count=1,
    )
