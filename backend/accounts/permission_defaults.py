# accounts/permission_defaults.py
import re

PERMISSION_CATALOG = {
    "orders": {"read", "write", "delete"},
    "tasks": {"read", "write", "assign"},
    "clients": {"read", "write"},
    "inventory": {"read", "write"},
    "payments": {"read", "write"},
    "invoices": {"read", "write"},
    "settings": {"read", "write"},
    "workers": {"manage"},
    "measurements": {"read", "write", "sync"},
}

PERMISSION_LABELS = {
    "orders:read": "View orders",
    "orders:write": "Create and edit orders",
    "orders:delete": "Delete orders",
    "tasks:read": "View tasks",
    "tasks:write": "Create and edit tasks",
    "tasks:assign": "Assign tasks to workers",
    "clients:read": "View clients",
    "clients:write": "Create and edit clients",
    "inventory:read": "View inventory",
    "inventory:write": "Manage inventory",
    "payments:read": "View payments",
    "payments:write": "Record payments",
    "invoices:read": "View invoices",
    "invoices:write": "Create and edit invoices",
    "settings:read": "View workshop settings",
    "settings:write": "Change workshop settings",
    "workers:manage": "Invite and manage workers",
    "measurements:read": "View measurements",
    "measurements:write": "Record measurements",
    "measurements:sync": "Sync measurements from devices",
}

PERMISSION_PATTERN = re.compile(r"^[a-z]+:[a-z]+$")


def all_permission_codes() -> set[str]:
    return {
        f"{resource}:{action}"
        for resource, actions in PERMISSION_CATALOG.items()
        for action in actions
    }


# Suggested grants, applied only when a manager asks for them.
ROLE_DEFAULTS = {
    "MANAGER": all_permission_codes(),
    "SENIOR": {
        "orders:read",
        "orders:write",
        "tasks:read",
        "tasks:write",
        "tasks:assign",
        "clients:read",
        "clients:write",
        "inventory:read",
        "inventory:write",
        "payments:read",
        "invoices:read",
    },
    "WORKER": {
        "orders:read",
        "tasks:read",
        "tasks:write",
        "clients:read",
        "inventory:read",
    },
    "APPRENTICE": {
        "orders:read",
        "tasks:read",
        "clients:read",
    },
}


class UnknownPermission(ValueError):
    """Raised when a grant names a permission outside the catalog."""

    def __init__(self, codes):
        self.codes = sorted(codes)
        super().__init__(f"Unknown permission(s): {', '.join(self.codes)}")


def is_valid_permission(code) -> bool:
    if not isinstance(code, str) or not PERMISSION_PATTERN.match(code):
        return False
    resource, action = code.split(":", 1)
    return action in PERMISSION_CATALOG.get(resource, ())


def normalize_permissions(codes) -> list[str]:
    """Return the codes sorted and de-duplicated, rejecting anything unknown."""
    codes = list(codes or ())
    invalid = {str(code) for code in codes if not is_valid_permission(code)}
    if invalid:
        raise UnknownPermission(invalid)
    return sorted(set(codes))


def defaults_for_role(role: str) -> list[str]:
    return sorted(ROLE_DEFAULTS.get(role, ()))


def catalog_listing() -> list[dict]:
    return [
        {
            "code": code,
            "resource": code.split(":", 1)[0],
            "action": code.split(":", 1)[1],
            "label": PERMISSION_LABELS.get(code, code),
        }
        for code in sorted(all_permission_codes())
    ]
