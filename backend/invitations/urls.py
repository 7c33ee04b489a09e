# invitations/urls.py
from django.urls import path

from invitations.views import (
    InvitationAcceptView,
    InvitationResendView,
    OrganizationInvitationListCreateView,
)

app_name = "invitations"

urlpatterns = [
    path(
        "organizations/<int:org_id>/invitations/",
        OrganizationInvitationListCreateView.as_view(),
        name="organization-invitations",
    ),
    path(
        "organizations/<int:org_id>/invitations/<uuid:invitation_id>/resend/",
        InvitationResendView.as_view(),
        name="invitation-resend",
    ),
    path("invitations/accept/", InvitationAcceptView.as_view(), name="invitation-accept"),
]
