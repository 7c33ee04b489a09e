# invitations/__init__.py
"""
Invitations app - onboarding workers into a workshop.

Invitation states: PENDING -> ACCEPTED | EXPIRED. Resend rotates the token
and may revive an EXPIRED invitation back to PENDING. Rows are never
deleted.

The raw token only exists in the accept link that is emailed; the database
stores its SHA-256 hash.
"""

default_app_config = "invitations.apps.InvitationsConfig"
