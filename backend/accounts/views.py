from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from .authz import require_platform_admin, resolve_actor, resolve_request_identity
from .commands import (
    approve_user,
    list_members,
    list_pending_approvals,
    reactivate_user,
    register_user,
    reject_user,
    remove_membership,
    suspend_user,
    update_membership,
)
from .errors import error_response
from .models import OrganizationMembership
from .permission_defaults import ROLE_DEFAULTS, catalog_listing
from .serializers import (
    EmailTokenObtainPairSerializer,
    MembershipSerializer,
    MembershipUpdateSerializer,
    OrganizationSerializer,
    RegistrationSerializer,
    RejectUserSerializer,
    UserSerializer,
    tokens_for,
)
from .throttles import LoginThrottle, RegistrationThrottle


# =============================================================================
# Authentication
# =============================================================================

class RegisterView(APIView):
    permission_classes = [permissions.AllowAny]
    throttle_classes = [RegistrationThrottle]

    def post(self, request, *args, **kwargs):
        serializer = RegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = register_user(request=request, **serializer.validated_data)
        if not result.success:
            return error_response(result)

        user = result.data["user"]
        organization = result.data["organization"]
        body = {
            "user": UserSerializer(user).data,
            "organization": OrganizationSerializer(organization).data if organization else None,
        }
        # Owners wait for approval before they get a session.
        if user.can_sign_in:
            body.update(tokens_for(user))
        return Response(body, status=status.HTTP_201_CREATED)


class LoginView(generics.GenericAPIView):
    serializer_class = EmailTokenObtainPairSerializer
    permission_classes = [permissions.AllowAny]
    throttle_classes = [LoginThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(serializer.validated_data, status=status.HTTP_200_OK)


class LogoutView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        refresh_token = request.data.get("refresh")
        if not refresh_token:
            return Response({"detail": "Refresh token required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            token = RefreshToken(refresh_token)
            token.blacklist()
        except TokenError:
            return Response({"detail": "Invalid token"}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(APIView):
    """The signed-in user and every organization they can act in."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = resolve_request_identity(request)

        organizations = [
            {**OrganizationSerializer(org).data, "is_owner": True, "role": None, "permissions": None}
            for org in user.owned_organizations.select_related("owner").order_by("created_at")
        ]
        memberships = OrganizationMembership.objects.filter(user=user).select_related("organization__owner")
        organizations += [
            {
                **OrganizationSerializer(m.organization).data,
                "is_owner": False,
                "role": m.role,
                "permissions": list(m.permissions),
            }
            for m in memberships
        ]
        return Response({"user": UserSerializer(user).data, "organizations": organizations})


# =============================================================================
# Members
# =============================================================================

class MemberListView(APIView):
    """GET /api/organizations/<org_id>/members/"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, org_id):
        actor = resolve_actor(request, organization_id=org_id)
        members = list_members(actor)
        return Response(MembershipSerializer(members, many=True).data)


class MemberDetailView(APIView):
    """PATCH / DELETE /api/organizations/<org_id>/members/<pk>/"""
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, org_id, pk):
        actor = resolve_actor(request, organization_id=org_id)
        # Permission check happens in command

        serializer = MembershipUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = update_membership(actor, pk, request=request, **serializer.validated_data)
        if not result.success:
            return error_response(result)

        return Response(MembershipSerializer(result.data).data)

    def delete(self, request, org_id, pk):
        actor = resolve_actor(request, organization_id=org_id)

        result = remove_membership(actor, pk, request=request)
        if not result.success:
            return error_response(result)

        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Permissions
# =============================================================================

class PermissionListView(APIView):
    """Catalog of grantable permissions and the suggested defaults per role."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response({
            "permissions": catalog_listing(),
            "role_defaults": {role: sorted(codes) for role, codes in ROLE_DEFAULTS.items()},
        })


# =============================================================================
# Admin Approval
# =============================================================================

class PendingApprovalsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        user = resolve_request_identity(request)
        require_platform_admin(user)

        pending = list_pending_approvals()
        return Response([
            {
                **UserSerializer(u).data,
                "business_name": next((o.name for o in u.owned_organizations.all()), ""),
            }
            for u in pending
        ])


class UserStatusActionView(APIView):
    """Base for POST /api/admin/users/<pk>/<action>/."""
    permission_classes = [permissions.IsAuthenticated]
    command = None

    def run(self, request, admin_user, pk):
        return type(self).command(admin_user, pk, request=request)

    def post(self, request, pk):
        user = resolve_request_identity(request)
        require_platform_admin(user)

        result = self.run(request, user, pk)
        if not result.success:
            return error_response(result)
        return Response(result.data)


class ApproveUserView(UserStatusActionView):
    command = approve_user


class RejectUserView(UserStatusActionView):
    command = reject_user

    def run(self, request, admin_user, pk):
        serializer = RejectUserSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return reject_user(admin_user, pk, reason=serializer.validated_data["reason"], request=request)


class SuspendUserView(UserStatusActionView):
    command = suspend_user


class ReactivateUserView(UserStatusActionView):
    command = reactivate_user
