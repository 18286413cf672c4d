from rest_framework.permissions import BasePermission
from rest_framework.response import Response
from rest_framework.views import APIView

from booking.services.notification_service import NotificationService


class IsStaffOnly(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_staff)


class ProcessQueueView(APIView):
    """
    POST /api/notifications/process
    Sends due pending SMS (at most ?limit=N, default 50) and reports counts.
    """
    permission_classes = [IsStaffOnly]

    def post(self, request):
        try:
            limit = int(request.query_params.get("limit", 50))
        except ValueError:
            limit = 50
        result = NotificationService().dispatch_due(limit=max(1, min(limit, 500)))
        return Response({"success": True, **result})
