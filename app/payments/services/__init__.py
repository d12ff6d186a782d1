"""
Payment services for coordinating settlement operations.

This module provides:
- PaymentInitiator: Entry point for every purchase
- ReconciliationService: Matches inbound credits to Transactions
- EscrowService: Transaction transitions and escrow-entry side effects
- PayoutService: Delivery confirmation and seller transfers
- RefundService: Buyer refund requests and their resolution
- WalletService: Platform commission bookkeeping
- ReceiptService: Settlement receipts

Usage:
    from payments.services import PaymentInitiator

    instructions = PaymentInitiator.initiate(buyer, product_id)

    from payments.services import InboundPayment, ReconciliationService

    outcome = ReconciliationService.reconcile_event(InboundPayment.from_charge(event["data"]))

    from payments.services import PayoutService

    result = PayoutService.confirm_delivery(txn.id, buyer)
"""

from payments.services.commission import (
    CommissionSplit,
    calculate_commission,
    calculate_gateway_fee,
    kobo_to_naira,
    naira_to_kobo,
)
from payments.services.escrow_service import EscrowService, format_naira
from payments.services.payment_initiator import (
    PaymentChannel,
    PaymentInitiator,
    PaymentInstructions,
)
from payments.services.payout_service import (
    PayoutOutcome,
    PayoutResult,
    PayoutService,
    QueueRunResult,
)
from payments.services.receipt_service import ReceiptService
from payments.services.reconciliation_service import (
    InboundPayment,
    MatchResult,
    MatchTier,
    ReconciliationOutcome,
    ReconciliationService,
)
from payments.services.references import (
    extract_reference,
    generate_payment_reference,
    transfer_reference_for,
)
from payments.services.refund_service import RefundService
from payments.services.wallet_service import WalletService

__all__ = [
    "CommissionSplit",
    "EscrowService",
    "InboundPayment",
    "MatchResult",
    "MatchTier",
    "PaymentChannel",
    "PaymentInitiator",
    "PaymentInstructions",
    "PayoutOutcome",
    "PayoutResult",
    "PayoutService",
    "QueueRunResult",
    "ReceiptService",
    "ReconciliationOutcome",
    "ReconciliationService",
    "RefundService",
    "WalletService",
    "calculate_commission",
    "calculate_gateway_fee",
    "extract_reference",
    "format_naira",
    "generate_payment_reference",
    "kobo_to_naira",
    "naira_to_kobo",
    "transfer_reference_for",
]
