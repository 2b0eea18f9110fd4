"""
Escrow app for marketplace purchases.

This app handles:
- Fee previews and authorization holds on the buyer's card
- The transaction lifecycle (held, shipped, completed, disputed, ...)
- Capture on delivery confirmation or automatic release
- Payouts to sellers' connected accounts
- Gateway webhook reconciliation and disputes

Related apps:
    - catalog: items being sold and their sale status
    - core: exceptions, ServiceResult and base models

Usage:
    from escrow.services import build_engine

    engine = build_engine()
    engine.state_machine.confirm_delivery(transaction_id, request.user.id)
"""
