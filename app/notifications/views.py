"""
Views for notification API.

ViewSets:
    NotificationViewSet: ReadOnlyModelViewSet with custom actions for read status
    PushDeviceViewSet: Register and unregister push tokens

Endpoints:
    GET  /api/v1/notifications/                 - List user's notifications
    GET  /api/v1/notifications/{id}/            - Get notification detail
    GET  /api/v1/notifications/unread-count/    - Get unread count
    POST /api/v1/notifications/{id}/read/       - Mark single notification as read
    POST /api/v1/notifications/read-all/        - Mark all notifications as read
    POST /api/v1/notifications/devices/         - Register a push token
    DELETE /api/v1/notifications/devices/{id}/  - Unregister a push token
"""

from __future__ import annotations

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from drf_spectacular.utils import (
    extend_schema,
    extend_schema_view,
    OpenApiParameter,
    OpenApiResponse,
)

from notifications.models import Notification, PushDevice
from notifications.serializers import (
    MarkAllReadResponseSerializer,
    NotificationSerializer,
    PushDeviceSerializer,
    UnreadCountSerializer,
)
from notifications.services import NotificationService, PushDeviceService


@extend_schema_view(
    list=extend_schema(
        operation_id="list_notifications",
        summary="List notifications",
        description=(
            "Get paginated list of notifications for the authenticated user. "
            "Supports filtering by read status and notification type."
        ),
        parameters=[
            OpenApiParameter(
                name="is_read",
                type=bool,
                location=OpenApiParameter.QUERY,
                description="Filter by read status (true/false)",
                required=False,
            ),
            OpenApiParameter(
                name="type",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Filter by notification type key",
                required=False,
            ),
        ],
        tags=["Notifications"],
    ),
    retrieve=extend_schema(
        operation_id="get_notification",
        summary="Get notification",
        tags=["Notifications"],
    ),
)
class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for notification operations.

    Users can only access their own notifications.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user).select_related(
            "notification_type"
        )

        is_read = self.request.query_params.get("is_read")
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() == "true")

        type_key = self.request.query_params.get("type")
        if type_key:
            queryset = queryset.filter(notification_type__key=type_key)

        return queryset

    @extend_schema(
        operation_id="get_unread_notification_count",
        summary="Get unread notification count",
        responses={200: UnreadCountSerializer},
        tags=["Notifications"],
    )
    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        count = Notification.objects.filter(recipient=request.user, is_read=False).count()
        return Response(UnreadCountSerializer({"unread_count": count}).data)

    @extend_schema(
        operation_id="mark_notification_read",
        summary="Mark notification as read",
        description="Idempotent: already-read notifications return success.",
        responses={
            200: NotificationSerializer,
            404: OpenApiResponse(description="Notification not found"),
        },
        tags=["Notifications"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        try:
            notification = Notification.objects.get(pk=pk, recipient=request.user)
        except Notification.DoesNotExist:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)

        result = NotificationService.mark_as_read(notification, request.user)
        if not result.success:
            return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)

        return Response(self.get_serializer(result.data).data)

    @extend_schema(
        operation_id="mark_all_notifications_read",
        summary="Mark all notifications as read",
        responses={200: MarkAllReadResponseSerializer},
        tags=["Notifications"],
    )
    @action(detail=False, methods=["post"], url_path="read-all")
    def read_all(self, request):
        result = NotificationService.mark_all_as_read(request.user)
        return Response(MarkAllReadResponseSerializer({"marked_count": result.data}).data)


@extend_schema_view(
    list=extend_schema(operation_id="list_push_devices", summary="List push devices", tags=["Notifications"]),
    create=extend_schema(
        operation_id="register_push_device",
        summary="Register push token",
        description=(
            "Register an FCM or Expo token. The token may be a string or an "
            "object {\"token\": ..., \"platform\": ...}."
        ),
        tags=["Notifications"],
    ),
    destroy=extend_schema(operation_id="unregister_push_device", summary="Unregister push token", tags=["Notifications"]),
)
class PushDeviceViewSet(
    mixins.ListModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    serializer_class = PushDeviceSerializer

    def get_queryset(self):
        return PushDevice.objects.filter(user=self.request.user, is_active=True)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device = PushDeviceService.register(
            request.user,
            serializer.validated_data["token"],
            platform=serializer.validated_data.get("platform"),
        )
        return Response(self.get_serializer(device).data, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        PushDeviceService.unregister(self.request.user, instance.token)
