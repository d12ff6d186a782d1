"""
URL configuration for the payments app.

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from payments.views import (
    AdminRefundViewSet,
    AdminTransactionViewSet,
    AdminUnmatchedPaymentViewSet,
    AdminWalletView,
    InitiatePaymentView,
    PayoutDestinationView,
    TransactionViewSet,
    VerifyPaymentView,
)
from payments.webhooks.views import paystack_webhook

app_name = "payments"

router = DefaultRouter()
router.register("transactions", TransactionViewSet, basename="transaction")
router.register("admin/refunds", AdminRefundViewSet, basename="admin-refund")
router.register("admin/transactions", AdminTransactionViewSet, basename="admin-transaction")
router.register("admin/unmatched-payments", AdminUnmatchedPaymentViewSet, basename="admin-unmatched-payment")

urlpatterns = [
    path("initiate/", InitiatePaymentView.as_view(), name="initiate"),
    path("verify/<str:reference>/", VerifyPaymentView.as_view(), name="verify"),
    path("payout-destination/", PayoutDestinationView.as_view(), name="payout-destination"),
    path("admin/wallet/", AdminWalletView.as_view(), name="admin-wallet"),
    # Webhook endpoints
    path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
    path("", include(router.urls)),
]
