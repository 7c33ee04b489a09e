from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor
from accounts.errors import Forbidden
from audit.recorder import list_entries
from audit.serializers import AuditEntrySerializer


class AuditLogListView(APIView):
    """
    GET /api/audit-logs/?organization=<id>&limit=<n>

    Owners, managers and platform admins only.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(
            request,
            organization_id=request.query_params.get("organization"),
            admin_eligible=True,
        )
        if not (actor.is_manager or actor.is_platform_admin):
            raise Forbidden()

        try:
            limit = int(request.query_params.get("limit", 50))
        except (TypeError, ValueError):
            limit = 50

        entries = list_entries(actor, limit=limit)
        return Response(AuditEntrySerializer(entries, many=True).data)
