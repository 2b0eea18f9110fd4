"""
Collaborator contracts consumed by the escrow engine.

The engine never reaches for a module-level gateway client or a concrete
model outside its own app. Every component receives the collaborators it
needs through its constructor:

    PaymentGateway: authorization holds, capture, cancel, transfers,
        webhook verification (escrow.adapters.StripeAdapter)
    ItemCatalog: item price/availability and status flips
        (catalog.services.DjangoItemCatalog)
    SellerAccountDirectory: connected payout accounts and fee tiers
        (escrow.services.DjangoSellerAccountDirectory)

Usage:
    from escrow.protocols import PaymentGateway

    class EscrowStateMachine:
        def __init__(self, gateway: PaymentGateway, ...):
            self.gateway = gateway

Note:
    Protocols are structural: test doubles satisfy them without
    inheriting from anything (see escrow/tests/fakes.py).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class AuthorizePaymentParams:
    """
    Parameters for placing an authorization hold.

    Attributes:
        amount_cents: Amount in the smallest currency unit
        currency: ISO 4217 currency code (lowercase)
        idempotency_key: Unique key for idempotent creation
        metadata: Key-value pairs attached to the intent
        capture_method: Always 'manual' for escrow purchases
    """

    amount_cents: int
    currency: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    capture_method: str = "manual"

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class PaymentIntentResult:
    """
    Result from payment intent operations.

    Attributes:
        id: Gateway intent id (pi_xxx)
        status: Gateway status (requires_capture, succeeded, canceled, ...)
        amount_cents: Authorized amount
        currency: Currency code
        client_secret: Secret for client-side confirmation
        captured: Whether funds have been captured
        metadata: Attached metadata
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    captured: bool = False
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_capturable(self) -> bool:
        return self.status == "requires_capture"


@dataclass
class TransferResult:
    """Result from a transfer to a connected account."""

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChargeResult:
    """The parts of a gateway charge the webhook reconciler needs."""

    id: str
    payment_intent_id: str | None
    amount_cents: int = 0
    currency: str = ""


@dataclass(frozen=True)
class PurchasableItem:
    """Snapshot of an item as seen at purchase time."""

    item_id: uuid.UUID
    seller_id: int
    price_cents: int
    currency: str
    is_purchasable: bool


@dataclass(frozen=True)
class ConnectedAccountInfo:
    """A seller's payout destination and its capability flags."""

    account_ref: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool = False


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Payment gateway operations used by the engine.

    Implementations translate provider errors into escrow.exceptions
    GatewayError subclasses and honour idempotency keys so that a retried
    capture or transfer has at most one effect.
    """

    def authorize_payment(self, params: AuthorizePaymentParams) -> PaymentIntentResult:
        """Place a manual-capture authorization hold."""
        ...

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        """Fetch the current state of an intent."""
        ...

    def capture_payment_intent(
        self, payment_intent_id: str, idempotency_key: str
    ) -> PaymentIntentResult:
        """Convert an authorization hold into a charge."""
        ...

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> PaymentIntentResult:
        """Void an uncaptured authorization hold."""
        ...

    def create_transfer(
        self,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
        transfer_group: str | None = None,
    ) -> TransferResult:
        """Move funds to a connected account."""
        ...

    def retrieve_charge(self, charge_id: str) -> ChargeResult:
        """Fetch a charge (used to map chargebacks back to an intent)."""
        ...

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook against the shared secret and return the event."""
        ...


@runtime_checkable
class ItemCatalog(Protocol):
    """Item availability and status flips owned by the catalog."""

    def get_for_purchase(self, item_id: uuid.UUID) -> PurchasableItem: ...

    def mark_pending(self, item_id: uuid.UUID) -> None: ...

    def mark_sold(self, item_id: uuid.UUID) -> None: ...

    def mark_available(self, item_id: uuid.UUID) -> None: ...


@runtime_checkable
class SellerAccountDirectory(Protocol):
    """Seller payout accounts and fee tiers."""

    def get_connected_account(self, seller_id: int) -> ConnectedAccountInfo | None: ...

    def get_tier(self, seller_id: int) -> str: ...

    def update_capabilities(
        self,
        account_ref: str,
        charges_enabled: bool,
        payouts_enabled: bool,
        details_submitted: bool,
    ) -> bool: ...
