"""Map ERP roles to GitHub repository permissions."""

from __future__ import annotations

from .models import Permission, Role

# Hands-on contributors can push; everyone else gets read access.
ROLE_PERMISSIONS: dict[Role, Permission] = {
    Role.DEV: Permission.PUSH,
    Role.ADMIN: Permission.PULL,
    Role.CLIENT: Permission.PULL,
}

_unmapped = sorted(role.value for role in Role if role not in ROLE_PERMISSIONS)
if _unmapped:
    raise RuntimeError(f"ROLE_PERMISSIONS has no entry for role(s): {', '.join(_unmapped)}")


def permission_for(role: Role | str) -> Permission:
    return ROLE_PERMISSIONS[Role(role)]
