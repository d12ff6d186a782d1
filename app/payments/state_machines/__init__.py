"""
State machine enums for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    ChannelType,
    EscrowStatus,
    RefundRequestStatus,
    TransactionStatus,
    UnmatchedReason,
    WalletEntryType,
    WalletType,
    WebhookEventStatus,
)

__all__ = [
    "ChannelType",
    "EscrowStatus",
    "RefundRequestStatus",
    "TransactionStatus",
    "UnmatchedReason",
    "WalletEntryType",
    "WalletType",
    "WebhookEventStatus",
]
