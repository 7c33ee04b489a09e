from rest_framework import permissions, status
from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import require, resolve_actor, resolve_request_identity
from accounts.errors import error_response
from accounts.throttles import InvitationAcceptThrottle
from invitations.commands import (
    accept_invitation,
    create_invitation,
    list_pending_invitations,
    resend_invitation,
    validate_invitation,
)
from invitations.serializers import (
    InvitationAcceptSerializer,
    InvitationCreateSerializer,
    InvitationPreviewSerializer,
    InvitationSerializer,
)


class OrganizationInvitationListCreateView(APIView):
    """
    GET  /api/organizations/<org_id>/invitations/  - pending invitations
    POST /api/organizations/<org_id>/invitations/  - invite a worker
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, org_id):
        actor = resolve_actor(request, organization_id=org_id)
        require(actor, "workers:manage")

        invitations = list_pending_invitations(actor)
        return Response(InvitationSerializer(invitations, many=True).data)

    def post(self, request, org_id):
        user = resolve_request_identity(request)
        # Tenancy and permission checks happen in the command

        serializer = InvitationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = create_invitation(user, org_id, request=request, **serializer.validated_data)
        if not result.success:
            return error_response(result)

        return Response(
            InvitationSerializer(result.data["invitation"]).data,
            status=status.HTTP_201_CREATED,
        )


class InvitationResendView(APIView):
    """POST /api/organizations/<org_id>/invitations/<invitation_id>/resend/"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, org_id, invitation_id):
        user = resolve_request_identity(request)

        result = resend_invitation(user, invitation_id, organization_id=org_id, request=request)
        if not result.success:
            return error_response(result)

        return Response(InvitationSerializer(result.data["invitation"]).data)


class InvitationAcceptView(APIView):
    """
    GET  /api/invitations/accept/?token=...  - anonymous preview of a link
    POST /api/invitations/accept/            - accept as the signed-in user
    """
    permission_classes = [permissions.AllowAny]
    throttle_classes = [InvitationAcceptThrottle]

    def get(self, request):
        validation = validate_invitation(request.query_params.get("token", ""))
        return Response(InvitationPreviewSerializer.from_validation(validation).data)

    def post(self, request):
        serializer = InvitationAcceptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            user = resolve_request_identity(request)
        except NotAuthenticated:
            user = None
        result = accept_invitation(user, serializer.validated_data["token"], request=request)
        if not result.success:
            return error_response(result)

        membership = result.data["membership"]
        return Response({
            "organization_id": result.data["organization"].pk,
            "organization_name": result.data["organization"].name,
            "membership_id": membership.pk if membership else None,
            "role": membership.role if membership else None,
            "already_member": result.data["already_member"],
        })
