"""
Payments app: escrow settlement on Paystack.

This app handles:
- Payment initiation and payment instructions
- Reconciliation of inbound credits (webhook and polling fallback)
- The Transaction/Escrow state machine
- Seller payouts, the liquidity queue and transfer outcomes
- Buyer refunds
- Platform commission bookkeeping

Related apps:
    - marketplace: Product being bought
    - notifications: Settlement notifications to buyer and seller

Usage:
    from payments.services import PaymentInitiator, PayoutService

    instructions = PaymentInitiator.initiate(buyer, product_id)
    PayoutService.confirm_delivery(instructions.transaction.id, buyer)
"""
