"""
Wiring for the escrow engine.

Views and Celery tasks call ``build_engine()`` at the start of each unit
of work. Nothing is cached at module level; tests build an EscrowEngine
around a fake gateway instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from catalog.services import DjangoItemCatalog
from escrow.adapters import StripeAdapter
from escrow.fees import FeeCalculator
from escrow.services.checkout import CheckoutService
from escrow.services.dispute_handler import DisputeHandler
from escrow.services.payout_dispatcher import PayoutDispatcher
from escrow.services.seller_directory import DjangoSellerAccountDirectory
from escrow.services.state_machine import EscrowStateMachine
from escrow.services.transaction_store import TransactionStore

if TYPE_CHECKING:
    from escrow.protocols import ItemCatalog, PaymentGateway, SellerAccountDirectory


@dataclass
class EscrowEngine:
    """The engine's components, sharing one set of collaborators."""

    gateway: PaymentGateway
    store: TransactionStore
    directory: SellerAccountDirectory
    checkout: CheckoutService
    state_machine: EscrowStateMachine
    payouts: PayoutDispatcher
    disputes: DisputeHandler


def build_engine(
    gateway: PaymentGateway | None = None,
    catalog: ItemCatalog | None = None,
    directory: SellerAccountDirectory | None = None,
    fee_calculator: FeeCalculator | None = None,
) -> EscrowEngine:
    """
    Assemble the engine; unspecified collaborators use the Django-backed defaults.
    """
    if gateway is None:
        gateway = StripeAdapter.from_settings()
    catalog = catalog or DjangoItemCatalog()
    directory = directory or DjangoSellerAccountDirectory()
    fee_calculator = fee_calculator or FeeCalculator.from_settings()

    store = TransactionStore()
    payouts = PayoutDispatcher(gateway=gateway, store=store, directory=directory)
    state_machine = EscrowStateMachine(
        gateway=gateway,
        store=store,
        catalog=catalog,
        directory=directory,
        fee_calculator=fee_calculator,
        payouts=payouts,
    )
    return EscrowEngine(
        gateway=gateway,
        store=store,
        directory=directory,
        checkout=CheckoutService(
            gateway=gateway,
            catalog=catalog,
            directory=directory,
            fee_calculator=fee_calculator,
        ),
        state_machine=state_machine,
        payouts=payouts,
        disputes=DisputeHandler(state_machine),
    )
