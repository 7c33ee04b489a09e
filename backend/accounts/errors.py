# accounts/errors.py
"""
Failure codes shared by the accounts, invitations and audit commands.

Commands return ``CommandResult.fail(message, code)``; views turn the code
into an HTTP status with ``http_status_for``. Every authorization denial
uses ``FORBIDDEN`` so callers cannot tell a missing permission from a
missing membership.
"""

from rest_framework import status
from rest_framework.exceptions import APIException, PermissionDenied
from rest_framework.response import Response


class ErrorCodes:
    AUTHENTICATION_REQUIRED = "authentication_required"
    NO_ORGANIZATION_CONTEXT = "no_organization_context"
    FORBIDDEN = "forbidden"

    ALREADY_MEMBER = "already_member"
    DUPLICATE_PENDING_INVITATION = "duplicate_pending_invitation"
    INVALID_STATE = "invalid_state"
    TOO_SOON = "too_soon"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    SELF_INVITATION = "self_invitation"
    EMAIL_MISMATCH = "email_mismatch"

    SELF_MODIFICATION = "self_modification"
    SELF_REMOVAL = "self_removal"
    INVALID_PERMISSION = "invalid_permission"
    INVALID_ROLE = "invalid_role"
    INVALID_EMAIL = "invalid_email"
    EMAIL_TAKEN = "email_taken"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"


_STATUS_BY_CODE = {
    ErrorCodes.AUTHENTICATION_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorCodes.NO_ORGANIZATION_CONTEXT: status.HTTP_403_FORBIDDEN,
    ErrorCodes.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCodes.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.TOO_SOON: status.HTTP_429_TOO_MANY_REQUESTS,
}


def http_status_for(code) -> int:
    return _STATUS_BY_CODE.get(code, status.HTTP_400_BAD_REQUEST)


class NoOrganizationContext(APIException):
    """Authenticated, but not attached to any organization and none was named."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Join your team to continue."
    default_code = ErrorCodes.NO_ORGANIZATION_CONTEXT


FORBIDDEN_DETAIL = "Forbidden."


class Forbidden(PermissionDenied):
    """
    The one denial body: same as a FORBIDDEN CommandResult rendered by
    ``error_response``, whatever the reason behind it.
    """

    def __init__(self):
        super().__init__(
            {"detail": FORBIDDEN_DETAIL, "code": ErrorCodes.FORBIDDEN},
            code=ErrorCodes.FORBIDDEN,
        )


def error_response(result):
    """Turn a failed CommandResult into a DRF Response."""
    body = {"detail": result.error, "code": result.code}
    if isinstance(result.data, dict):
        body.update(result.data)
    return Response(body, status=http_status_for(result.code))
