# accounts/throttles.py
"""
Rate limiting classes for authentication and invitation endpoints.

These throttles protect against:
- Bot signups (registration)
- Brute force attacks (login)
- Token guessing on the invitation accept link
"""

from rest_framework.throttling import AnonRateThrottle, SimpleRateThrottle


class RegistrationThrottle(AnonRateThrottle):
    """
    Rate limit registration attempts.

    Configured via settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['registration']
    """
    scope = 'registration'


class LoginThrottle(AnonRateThrottle):
    """
    Rate limit login attempts.

    Configured via settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['login']
    """
    scope = 'login'


class InvitationAcceptThrottle(SimpleRateThrottle):
    """
    Rate limit invitation validation and acceptance, per user or per IP.

    Configured via settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['invitation_accept']
    """
    scope = 'invitation_accept'

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            ident = request.user.pk
        else:
            ident = self.get_ident(request)
        return self.cache_format % {"scope": self.scope, "ident": ident}
