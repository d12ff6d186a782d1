import django_filters as filters

from payments.models import RefundRequest, Transaction, UnmatchedPayment
from payments.state_machines import RefundRequestStatus, TransactionStatus


class TransactionFilter(filters.FilterSet):
    status = filters.MultipleChoiceFilter(choices=TransactionStatus.choices)
    reference = filters.CharFilter(field_name="payment_reference", lookup_expr="iexact")
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Transaction
        fields = ["status", "channel_type", "reference", "created_after", "created_before"]


class RefundRequestFilter(filters.FilterSet):
    status = filters.ChoiceFilter(choices=RefundRequestStatus.choices)

    class Meta:
        model = RefundRequest
        fields = ["status"]


class UnmatchedPaymentFilter(filters.FilterSet):
    class Meta:
        model = UnmatchedPayment
        fields = ["reason", "resolved"]
