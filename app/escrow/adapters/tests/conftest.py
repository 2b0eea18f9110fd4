"""
Pytest fixtures for Stripe adapter tests.

The adapter is built around a MagicMock standing in for
``stripe.StripeClient``, so tests configure ``client.v1.<resource>``
return values and side effects directly.

Sections:
    - Adapter Fixtures
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import pytest
import stripe

from escrow.adapters import StripeAdapter

WEBHOOK_SECRET = "whsec_adapter_test"


# =============================================================================
# Adapter Fixtures
# =============================================================================


@pytest.fixture
def stripe_client():
    """MagicMock in place of stripe.StripeClient."""
    return MagicMock(spec_set=["v1"])


@pytest.fixture
def adapter(stripe_client):
    return StripeAdapter(client=stripe_client, webhook_secret=WEBHOOK_SECRET)


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_payment_intent():
    """Create a mock PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "requires_capture",
        amount: int = 10000,
        currency: str = "usd",
        client_secret: str = "pi_test123456_secret_abc123",
        amount_received: int = 0,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "client_secret": client_secret,
                "amount_received": amount_received,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_transfer():
    """Create a mock Transfer response."""

    def _create(
        id: str = "tr_test123456",
        amount: int = 9200,
        currency: str = "usd",
        destination: str = "acct_dest123",
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "transfer",
                "amount": amount,
                "currency": currency,
                "destination": destination,
                "metadata": metadata or {},
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError carrying a decline code in its JSON body."""

    def _create(
        message: str = "Your card was declined.",
        decline_code: str = "generic_decline",
    ) -> stripe.CardError:
        return stripe.CardError(
            message=message,
            param=None,
            code="card_declined",
            json_body={
                "error": {
                    "type": "card_error",
                    "code": "card_declined",
                    "decline_code": decline_code,
                    "message": message,
                }
            },
        )

    return _create


@pytest.fixture
def mock_charge():
    """Create a mock Charge response."""

    def _create(
        id: str = "ch_1",
        payment_intent: str | None = "pi_test123456",
        amount: int = 10000,
        currency: str = "usd",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "charge",
                "payment_intent": payment_intent,
                "amount": amount,
                "currency": currency,
            }
        )

    return _create
