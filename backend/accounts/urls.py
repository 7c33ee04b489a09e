# accounts/urls.py
"""
URL configuration for accounts/auth API.

Endpoints:
- /auth/ - Authentication (register, login, logout, me)
- /organizations/<org_id>/members/ - Membership management
- /permissions/ - Permission catalog
- /admin/ - Platform admin approval actions
"""

from django.urls import path

from .views import (
    # Auth
    RegisterView,
    LoginView,
    LogoutView,
    MeView,
    # Members
    MemberListView,
    MemberDetailView,
    # Permissions
    PermissionListView,
    # Admin Approval
    PendingApprovalsView,
    ApproveUserView,
    RejectUserView,
    SuspendUserView,
    ReactivateUserView,
)

app_name = "accounts"

urlpatterns = [
    # ==========================================================================
    # Authentication
    # ==========================================================================
    path("auth/register/", RegisterView.as_view(), name="register"),
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("auth/me/", MeView.as_view(), name="me"),

    # ==========================================================================
    # Members
    # ==========================================================================
    path("organizations/<int:org_id>/members/", MemberListView.as_view(), name="member-list"),
    path("organizations/<int:org_id>/members/<int:pk>/", MemberDetailView.as_view(), name="member-detail"),

    # ==========================================================================
    # Permissions
    # ==========================================================================
    path("permissions/", PermissionListView.as_view(), name="permission-list"),

    # ==========================================================================
    # Admin Approval
    # ==========================================================================
    path("admin/pending-approvals/", PendingApprovalsView.as_view(), name="pending-approvals"),
    path("admin/users/<int:pk>/approve/", ApproveUserView.as_view(), name="approve-user"),
    path("admin/users/<int:pk>/reject/", RejectUserView.as_view(), name="reject-user"),
    path("admin/users/<int:pk>/suspend/", SuspendUserView.as_view(), name="suspend-user"),
    path("admin/users/<int:pk>/reactivate/", ReactivateUserView.as_view(), name="reactivate-user"),
]
