"""
Known notification types and their default templates.

NotificationService creates the NotificationType row on first use from
this catalog; administrators may then edit the templates in the admin.
Amounts are passed pre-formatted in naira (e.g. "4,850.00").
"""

NOTIFICATION_TYPES = {
    "payment_received": {
        "display_name": "Payment Received",
        "title_template": "Payment received for \"{product_title}\"",
        "body_template": "Your payment of ₦{amount} is held in escrow. Reference: {reference}.",
    },
    "item_sold": {
        "display_name": "Item Sold",
        "title_template": "\"{product_title}\" has been paid for",
        "body_template": "₦{amount} is held in escrow until the buyer confirms delivery.",
    },
    "payment_under_review": {
        "display_name": "Payment Under Review",
        "title_template": "Your payment needs review",
        "body_template": "We received ₦{amount} but \"{product_title}\" was no longer available. Our team will contact you.",
    },
    "payment_cancelled": {
        "display_name": "Payment Cancelled",
        "title_template": "Payment request cancelled",
        "body_template": "The pending payment {reference} for \"{product_title}\" was cancelled.",
    },
    "payout_initiated": {
        "display_name": "Payout Initiated",
        "title_template": "Payout on its way",
        "body_template": "₦{amount} for \"{product_title}\" has been sent to your bank account.",
    },
    "payout_queued": {
        "display_name": "Payout Queued",
        "title_template": "Delivery confirmed, payout pending",
        "body_template": "Delivery of \"{product_title}\" is confirmed. Your payout of ₦{amount} will be sent shortly.",
    },
    "payout_completed": {
        "display_name": "Payout Completed",
        "title_template": "Payout completed",
        "body_template": "₦{amount} for \"{product_title}\" has arrived in your bank account.",
    },
    "payout_failed": {
        "display_name": "Payout Failed",
        "title_template": "Payout failed",
        "body_template": "We could not pay out ₦{amount} for \"{product_title}\". Our team has been alerted.",
    },
    "refund_requested": {
        "display_name": "Refund Requested",
        "title_template": "Refund requested for \"{product_title}\"",
        "body_template": "The buyer asked for a refund: {reason}",
    },
    "refund_processed": {
        "display_name": "Refund Processed",
        "title_template": "Refund approved",
        "body_template": "₦{amount} has been refunded for your purchase of \"{product_title}\".",
    },
    "refund_denied": {
        "display_name": "Refund Denied",
        "title_template": "Refund request denied",
        "body_template": "Your refund request for \"{product_title}\" was not approved. {comment}",
    },
}
