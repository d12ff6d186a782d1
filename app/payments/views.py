"""
DRF views for payments app.

Endpoints (prefixed with /api/v1/payments/):
    POST /initiate/                                   - Start a purchase
    GET  /verify/{reference}/                         - Polling fallback for a pending payment
    GET  /transactions/                               - Own purchases and sales
    POST /transactions/{id}/cancel/                   - Buyer cancels a pending payment
    POST /transactions/{id}/confirm-delivery/         - Buyer releases escrow
    POST /transactions/{id}/refund-request/           - Buyer asks for a refund
    GET/PUT /payout-destination/                      - Seller bank details
    GET  /admin/refunds/                              - Refund review queue
    POST /admin/refunds/{id}/approve/ | deny/         - Resolve a refund
    GET  /admin/transactions/                         - All transactions, filterable
    POST /admin/transactions/{id}/force-payout/       - Send a queued payout now
    POST /admin/transactions/{id}/finalize-otp/       - Authorise an OTP transfer
    GET  /admin/unmatched-payments/                   - Manual reconciliation queue
    GET  /admin/wallet/                               - Platform commission wallet

Security:
    - All endpoints require authentication except the webhook
    - /admin/ endpoints require is_staff
    - Application errors are rendered by core.views.api_exception_handler
"""

from __future__ import annotations

from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view

from payments.filters import RefundRequestFilter, TransactionFilter, UnmatchedPaymentFilter
from payments.models import PayoutDestination, RefundRequest, Transaction, UnmatchedPayment
from payments.serializers import (
    AdminTransactionSerializer,
    FinalizeOtpSerializer,
    InitiatePaymentSerializer,
    PaymentInstructionsSerializer,
    PayoutDestinationSerializer,
    PayoutResultSerializer,
    PlatformWalletSerializer,
    RefundRequestCreateSerializer,
    RefundRequestSerializer,
    RefundResolutionSerializer,
    TransactionSerializer,
    UnmatchedPaymentSerializer,
)
from payments.services import (
    PaymentInitiator,
    PayoutService,
    ReconciliationService,
    RefundService,
    WalletService,
)
from payments.state_machines import RefundRequestStatus, TransactionStatus


class InitiatePaymentView(APIView):
    """
    POST /api/v1/payments/initiate/

    Returns 201 with new payment instructions, or 200 with the buyer's
    existing pending instructions for the same product.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="initiate_payment",
        summary="Initiate a payment",
        request=InitiatePaymentSerializer,
        responses={
            201: PaymentInstructionsSerializer,
            200: PaymentInstructionsSerializer,
            404: OpenApiResponse(description="Product not found"),
            409: OpenApiResponse(description="Product sold or another payment pending"),
            503: OpenApiResponse(description="Payment channel could not be provisioned"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        instructions = PaymentInitiator.initiate(
            request.user,
            serializer.validated_data["product_id"],
            expected_price=serializer.validated_data.get("expected_price"),
        )
        return Response(
            instructions.to_dict(),
            status=status.HTTP_200_OK if instructions.reused else status.HTTP_201_CREATED,
        )


class VerifyPaymentView(APIView):
    """
    GET /api/v1/payments/verify/{reference}/

    Looks for the payment in the Paystack ledger when no webhook arrived.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="verify_payment",
        summary="Verify a payment by reference",
        responses={200: TransactionSerializer, 404: OpenApiResponse(description="Unknown reference")},
        tags=["Payments"],
    )
    def get(self, request, reference: str):
        outcome = ReconciliationService.verify_by_reference(reference, user=request.user)
        data = TransactionSerializer(outcome.transaction, context={"request": request}).data
        return Response({**data, "verified": outcome.transaction.status != TransactionStatus.AWAITING_PAYMENT})


@extend_schema_view(
    list=extend_schema(operation_id="list_transactions", summary="List own transactions", tags=["Payments"]),
    retrieve=extend_schema(operation_id="get_transaction", summary="Get transaction", tags=["Payments"]),
)
class TransactionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Purchases and sales of the authenticated user.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TransactionSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = TransactionFilter

    def get_queryset(self):
        user = self.request.user
        return Transaction.objects.filter(Q(buyer=user) | Q(seller=user)).select_related("product")

    @extend_schema(
        operation_id="cancel_transaction",
        summary="Cancel a pending payment",
        request=None,
        responses={200: TransactionSerializer, 409: OpenApiResponse(description="No longer pending")},
        tags=["Payments"],
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        txn = PaymentInitiator.cancel(pk, request.user)
        return Response(self.get_serializer(txn).data)

    @extend_schema(
        operation_id="confirm_delivery",
        summary="Confirm delivery and release escrow",
        request=None,
        responses={
            200: PayoutResultSerializer,
            400: OpenApiResponse(description="Seller has no payout account"),
            409: OpenApiResponse(description="Transaction is not in escrow"),
        },
        tags=["Payments"],
    )
    @action(detail=True, methods=["post"], url_path="confirm-delivery")
    def confirm_delivery(self, request, pk=None):
        result = PayoutService.confirm_delivery(pk, request.user)
        return Response(result.to_dict())

    @extend_schema(
        operation_id="request_refund",
        summary="Request a refund",
        request=RefundRequestCreateSerializer,
        responses={201: RefundRequestSerializer, 409: OpenApiResponse(description="Not refundable")},
        tags=["Payments"],
    )
    @action(detail=True, methods=["post"], url_path="refund-request")
    def refund_request(self, request, pk=None):
        serializer = RefundRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService.request_refund(pk, request.user, serializer.validated_data["reason"])
        return Response(RefundRequestSerializer(refund).data, status=status.HTTP_201_CREATED)


class PayoutDestinationView(APIView):
    """
    GET/PUT /api/v1/payments/payout-destination/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payout_destination",
        summary="Get payout account",
        responses={200: PayoutDestinationSerializer, 404: OpenApiResponse(description="Not registered")},
        tags=["Payouts"],
    )
    def get(self, request):
        destination = PayoutDestination.objects.filter(seller=request.user).first()
        if destination is None:
            return Response(
                {"error": "No payout account registered", "error_code": "NOT_FOUND", "details": {}},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(PayoutDestinationSerializer(destination).data)

    @extend_schema(
        operation_id="set_payout_destination",
        summary="Register or replace payout account",
        request=PayoutDestinationSerializer,
        responses={200: PayoutDestinationSerializer},
        tags=["Payouts"],
    )
    def put(self, request):
        serializer = PayoutDestinationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        destination = PayoutService.register_destination(request.user, **serializer.validated_data)
        return Response(PayoutDestinationSerializer(destination).data)


# =============================================================================
# Admin
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="admin_list_refunds", summary="List refund requests", tags=["Payments Admin"]),
    retrieve=extend_schema(operation_id="admin_get_refund", summary="Get refund request", tags=["Payments Admin"]),
)
class AdminRefundViewSet(viewsets.ReadOnlyModelViewSet):
    """Refund review queue; pending requests by default."""

    permission_classes = [IsAdminUser]
    serializer_class = RefundRequestSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = RefundRequestFilter

    def get_queryset(self):
        queryset = RefundRequest.objects.select_related("transaction", "buyer").order_by("created_at")
        if "status" not in self.request.query_params and self.action == "list":
            queryset = queryset.filter(status=RefundRequestStatus.REQUESTED)
        return queryset

    @extend_schema(
        operation_id="admin_approve_refund",
        summary="Approve a refund",
        request=RefundResolutionSerializer,
        responses={200: RefundRequestSerializer, 503: OpenApiResponse(description="Gateway refund failed")},
        tags=["Payments Admin"],
    )
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        serializer = RefundResolutionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService.approve(pk, request.user, comment=serializer.validated_data["comment"])
        return Response(self.get_serializer(refund).data)

    @extend_schema(
        operation_id="admin_deny_refund",
        summary="Deny a refund",
        request=RefundResolutionSerializer,
        responses={200: RefundRequestSerializer},
        tags=["Payments Admin"],
    )
    @action(detail=True, methods=["post"])
    def deny(self, request, pk=None):
        serializer = RefundResolutionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService.deny(pk, request.user, comment=serializer.validated_data["comment"])
        return Response(self.get_serializer(refund).data)


@extend_schema_view(
    list=extend_schema(operation_id="admin_list_transactions", summary="List transactions", tags=["Payments Admin"]),
    retrieve=extend_schema(operation_id="admin_get_transaction", summary="Get transaction", tags=["Payments Admin"]),
)
class AdminTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAdminUser]
    serializer_class = AdminTransactionSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = TransactionFilter
    queryset = Transaction.objects.select_related("product").all()

    @extend_schema(
        operation_id="admin_force_payout",
        summary="Force a queued payout",
        request=None,
        responses={200: PayoutResultSerializer, 409: OpenApiResponse(description="Not queued")},
        tags=["Payments Admin"],
    )
    @action(detail=True, methods=["post"], url_path="force-payout")
    def force_payout(self, request, pk=None):
        result = PayoutService.force_payout(pk, request.user)
        return Response(result.to_dict())

    @extend_schema(
        operation_id="admin_finalize_otp",
        summary="Submit transfer OTP",
        request=FinalizeOtpSerializer,
        responses={200: PayoutResultSerializer},
        tags=["Payments Admin"],
    )
    @action(detail=True, methods=["post"], url_path="finalize-otp")
    def finalize_otp(self, request, pk=None):
        serializer = FinalizeOtpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = PayoutService.finalize_otp(pk, serializer.validated_data["otp"], request.user)
        return Response(result.to_dict())


@extend_schema_view(
    list=extend_schema(operation_id="admin_list_unmatched", summary="List unmatched payments", tags=["Payments Admin"]),
    retrieve=extend_schema(operation_id="admin_get_unmatched", summary="Get unmatched payment", tags=["Payments Admin"]),
)
class AdminUnmatchedPaymentViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAdminUser]
    serializer_class = UnmatchedPaymentSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = UnmatchedPaymentFilter
    queryset = UnmatchedPayment.objects.all()


class AdminWalletView(APIView):
    """GET /api/v1/payments/admin/wallet/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="admin_get_wallet",
        summary="Platform commission wallet",
        responses={200: PlatformWalletSerializer},
        tags=["Payments Admin"],
    )
    def get(self, request):
        return Response(PlatformWalletSerializer(WalletService.get_wallet()).data)


__all__ = [
    "AdminRefundViewSet",
    "AdminTransactionViewSet",
    "AdminUnmatchedPaymentViewSet",
    "AdminWalletView",
    "InitiatePaymentView",
    "PayoutDestinationView",
    "TransactionViewSet",
    "VerifyPaymentView",
]
