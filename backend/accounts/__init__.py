# accounts/__init__.py
"""
Accounts app - Authentication and multi-tenancy for StitchCraft.

This app provides:
- User: Custom user model with a global role and approval status
- Organization: Tenant (a tailoring workshop) with exactly one owner
- OrganizationMembership: Non-owner access with a role and explicit grants
- Permission catalog and role defaults
- ActorContext: Authorization context utilities

Multi-tenancy is enforced at every layer through the ActorContext pattern:
identity -> tenancy -> permission, on every request.
"""

default_app_config = "accounts.apps.AccountsConfig"
