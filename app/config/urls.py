"""
URL configuration for the marketplace escrow backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - JWT token obtain/refresh
    /api/v1/notifications/         - Notification inbox and push devices
        (see notifications/urls.py)
    /api/v1/payments/              - Payment endpoints
        initiate/                                   - Start a purchase
        verify/{reference}/                         - Polling fallback
        transactions/                               - Own transactions
        transactions/{id}/cancel/                   - Cancel pending payment
        transactions/{id}/confirm-delivery/         - Release escrow
        transactions/{id}/refund-request/           - Request a refund
        payout-destination/                         - Seller bank details
        webhooks/paystack/                          - Paystack webhook (POST)
        admin/refunds/                              - Pending refunds
        admin/refunds/{id}/approve|deny/            - Resolve a refund
        admin/transactions/                         - Transactions by status
        admin/transactions/{id}/force-payout/       - Force a queued payout
        admin/transactions/{id}/finalize-otp/       - Complete OTP transfer
        admin/unmatched-payments/                   - Manual review queue
        admin/wallet/                               - Platform wallet

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("notifications/", include("notifications.urls")),
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Salmart Escrow Admin"
admin.site.site_title = "Salmart Escrow"
admin.site.index_title = "Payments and settlement"
