# accounts/management/commands/check_permission_grants.py

from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.models import OrganizationMembership
from accounts.permission_defaults import is_valid_permission
from audit.models import AuditAction
from audit.recorder import record


class Command(BaseCommand):
    help = "Report (and optionally drop) membership grants that are not in the permission catalog"

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Remove unknown permission codes from the affected memberships.",
        )

    def handle(self, *args, **options):
        affected = 0
        fixed = 0

        memberships = OrganizationMembership.objects.select_related("user", "organization").order_by("id")
        for membership in memberships.iterator():
            invalid = sorted(code for code in membership.permission_set if not is_valid_permission(code))
            if not invalid:
                continue

            affected += 1
            self.stdout.write(
                f"{membership.organization.slug} / {membership.user.email}: {', '.join(invalid)}"
            )

            if options["fix"]:
                with transaction.atomic():
                    before = sorted(membership.permission_set)
                    membership.set_permissions(set(before) - set(invalid))
                    membership.save(update_fields=["permissions", "updated_at"])
                    record(
                        None,
                        AuditAction.MEMBER_UPDATED,
                        "membership",
                        membership.pk,
                        details={
                            "user_email": membership.user.email,
                            "before": {"role": membership.role, "permissions": before},
                            "after": {"role": membership.role, "permissions": list(membership.permissions)},
                            "revoked": invalid,
                            "source": "check_permission_grants",
                        },
                        organization=membership.organization,
                    )
                fixed += 1

        if affected == 0:
            self.stdout.write(self.style.SUCCESS("All grants are valid."))
        elif options["fix"]:
            self.stdout.write(self.style.SUCCESS(f"Done! Fixed {fixed} membership(s)."))
        else:
            self.stdout.write(self.style.WARNING(f"{affected} membership(s) hold unknown permissions. Re-run with --fix."))
