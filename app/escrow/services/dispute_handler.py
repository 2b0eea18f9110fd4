"""
DisputeHandler: opening, recording and resolving disputes.

Parties open disputes through the API; the card network opens them
through ``charge.dispute.created`` webhooks; administrators resolve them
from the Django admin. The transaction-level status changes are made by
EscrowStateMachine; this handler validates input and translates gateway
vocabulary.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from escrow.exceptions import InvalidStateTransitionError, NotTransactionPartyError
from escrow.state_machines import DisputeReason, DisputeResolution, TransactionStatus

if TYPE_CHECKING:
    from escrow.models import Dispute, Transaction
    from escrow.services.state_machine import EscrowStateMachine


logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 2000

# Stripe chargeback reasons that map onto our own reasons; anything else is OTHER.
GATEWAY_REASON_MAP = {
    "product_not_received": DisputeReason.NOT_RECEIVED,
    "product_unacceptable": DisputeReason.NOT_AS_DESCRIBED,
}


def map_gateway_reason(gateway_reason: str | None) -> str:
    return GATEWAY_REASON_MAP.get(gateway_reason or "", DisputeReason.OTHER)


class DisputeHandler:
    """Validates and records disputes on escrowed transactions."""

    def __init__(self, state_machine: EscrowStateMachine):
        self.state_machine = state_machine
        self.store = state_machine.store

    def open_dispute(
        self,
        transaction_id: uuid.UUID,
        actor_id: int,
        reason: str,
        description: str = "",
    ) -> Dispute:
        """
        Open a dispute on behalf of the buyer or seller.

        Raises:
            NotTransactionPartyError: Caller is not a party
            ValidationError: Unknown reason or oversized description
            InvalidStateTransitionError: Transaction cannot be disputed now
        """
        txn = self.store.get(transaction_id)
        if not txn.is_party(actor_id):
            raise NotTransactionPartyError(
                "Not authorized to dispute this transaction",
                details={"transaction_id": str(transaction_id)},
            )

        if reason not in DisputeReason.values:
            raise ValidationError(
                f"Unknown dispute reason '{reason}'",
                error_code="INVALID_DISPUTE_REASON",
                details={"reason": reason, "allowed": list(DisputeReason.values)},
            )

        description = (description or "").strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                error_code="DESCRIPTION_TOO_LONG",
            )

        return self.state_machine.open_dispute(
            transaction_id,
            actor_id=actor_id,
            reason=reason,
            description=description,
        )

    def record_gateway_dispute(
        self,
        payment_intent_id: str,
        gateway_dispute_id: str,
        gateway_reason: str | None = None,
    ) -> Transaction | None:
        """Record a chargeback; None if no transaction uses the intent."""
        return self.state_machine.force_dispute(
            payment_intent_id,
            gateway_dispute_id=gateway_dispute_id,
            reason=map_gateway_reason(gateway_reason),
            gateway_reason=gateway_reason or "",
        )

    def resolve(
        self,
        transaction_id: uuid.UUID,
        resolution: str,
        note: str = "",
        resolved_by=None,
    ) -> Transaction:
        """
        Administrative resolution of a disputed transaction.

        RELEASED captures and pays the seller, REFUNDED and CANCELLED void
        the buyer's authorization.
        """
        actions = {
            DisputeResolution.RELEASED: self.state_machine.release_disputed,
            DisputeResolution.REFUNDED: self.state_machine.refund,
            DisputeResolution.CANCELLED: self.state_machine.cancel,
        }
        if resolution not in actions:
            raise ValidationError(
                f"Unknown resolution '{resolution}'",
                error_code="INVALID_RESOLUTION",
                details={"resolution": resolution},
            )

        current = self.store.get(transaction_id)
        if current.status != TransactionStatus.DISPUTED:
            raise InvalidStateTransitionError(
                f"Only disputed transactions can be resolved (status '{current.status}')",
                details={"transaction_id": str(transaction_id), "current_status": current.status},
            )

        txn = actions[resolution](transaction_id, note=note)

        logger.info(
            f"Dispute on transaction {transaction_id} resolved: {resolution}",
            extra={
                "transaction_id": str(transaction_id),
                "resolution": resolution,
                "resolved_by": getattr(resolved_by, "pk", None),
            },
        )
        return txn
