"""
Permission catalog - the role -> permission mapping

The catalog is consumed read-only: the engine asks it which permissions a
role grants and which identifiers exist, and never changes it. The static
catalog below carries the clinic's built-in roles; deployments with
configurable roles provide their own object satisfying PermissionCatalog.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from pydantic import BaseModel, Field

from clinic_teams.directory.models import User


class PermissionDefinition(BaseModel):
    """One permission identifier as listed by the catalog"""

    id: str
    name: str
    category: str


class Role(BaseModel):
    """A built-in role and the permissions it grants"""

    id: str
    name: str
    description: str = ""
    level: int = 0
    permissions: list[str] = Field(default_factory=list)


class PermissionCatalog(Protocol):
    """Read-only role/permission catalog"""

    def get_user_permissions(self, user: User | Mapping[str, Any]) -> set[str]:
        """Role permissions of the user plus their custom grants"""
        ...

    def get_all_permissions(self) -> list[PermissionDefinition]: ...

    def get_all_roles(self) -> list[Role]: ...


_PERMISSION_GROUPS: dict[str, tuple[str, ...]] = {
    "patients": ("view", "create", "edit", "delete", "export", "view_all"),
    "appointments": ("view", "create", "edit", "delete", "view_all", "view_practitioner"),
    "medical_records": ("view", "create", "edit", "delete", "view_all"),
    "consents": ("view", "create", "edit", "delete", "revoke", "templates_manage"),
    "invoices": ("view", "create", "edit", "delete", "send"),
    "quotes": ("view", "create", "edit", "delete"),
    "analytics": ("view", "export", "admin"),
    "users": ("view", "create", "edit", "delete", "permissions", "export"),
    "roles": ("view", "create", "edit", "delete"),
    "teams": ("view", "create", "edit", "delete", "export"),
    "delegations": ("view", "create", "edit", "approve", "revoke"),
    "audit": ("read", "export", "manage", "delete"),
    "system": ("settings", "backup", "audit"),
    "settings": ("view", "edit", "clinic", "security"),
}

DEFAULT_PERMISSIONS: list[PermissionDefinition] = [
    PermissionDefinition(
        id=f"{category}.{action}",
        name=f"{category.replace('_', ' ').capitalize()}: {action.replace('_', ' ')}",
        category=category,
    )
    for category, actions in _PERMISSION_GROUPS.items()
    for action in actions
]


def _grants(category: str, *actions: str) -> list[str]:
    return [f"{category}.{action}" for action in actions]


_CLINICAL_BASE = (
    _grants("patients", "view", "create", "edit")
    + _grants("appointments", "view", "create", "edit", "delete")
    + _grants("medical_records", "view", "create", "edit")
    + _grants("consents", "view", "create", "edit", "revoke")
)

DEFAULT_ROLES: dict[str, Role] = {
    "super_admin": Role(
        id="super_admin",
        name="Super administrator",
        description="Full access to every feature of the platform",
        level=100,
        permissions=[p.id for p in DEFAULT_PERMISSIONS],
    ),
    "admin": Role(
        id="admin",
        name="Administrator",
        description="Manages the clinic and its users",
        level=90,
        permissions=(
            _grants("patients", *_PERMISSION_GROUPS["patients"])
            + _grants("appointments", *_PERMISSION_GROUPS["appointments"])
            + _grants("medical_records", *_PERMISSION_GROUPS["medical_records"])
            + _grants("consents", *_PERMISSION_GROUPS["consents"])
            + _grants("invoices", *_PERMISSION_GROUPS["invoices"])
            + _grants("quotes", *_PERMISSION_GROUPS["quotes"])
            + _grants("analytics", "view", "export")
            + _grants("users", "view", "create", "edit", "delete", "export")
            + _grants("roles", "view")
            + _grants("teams", *_PERMISSION_GROUPS["teams"])
            + _grants("delegations", *_PERMISSION_GROUPS["delegations"])
            + _grants("settings", "view", "edit", "clinic")
        ),
    ),
    "doctor": Role(
        id="doctor",
        name="Doctor",
        description="Consultations, diagnoses and prescriptions",
        level=70,
        permissions=(
            _CLINICAL_BASE
            + _grants("quotes", "view", "create", "edit")
            + _grants("analytics", "view")
            + _grants("teams", "view")
            + _grants("delegations", "view", "create")
            + _grants("settings", "view")
        ),
    ),
    "specialist": Role(
        id="specialist",
        name="Specialist",
        description="Doctor with access specific to a specialty",
        level=70,
        permissions=(
            _CLINICAL_BASE
            + _grants("quotes", "view", "create")
            + _grants("analytics", "view")
            + _grants("teams", "view")
            + _grants("delegations", "view", "create")
            + _grants("settings", "view")
        ),
    ),
    "nurse": Role(
        id="nurse",
        name="Nurse",
        description="Nursing care and patient follow-up",
        level=50,
        permissions=(
            _grants("patients", "view", "edit")
            + _grants("appointments", "view", "create", "edit", "delete")
            + _grants("medical_records", "view")
            + _grants("consents", "view")
            + _grants("settings", "view")
        ),
    ),
    "secretary": Role(
        id="secretary",
        name="Medical secretary",
        description="Front desk and administration",
        level=30,
        permissions=(
            _grants("patients", "view", "create", "edit", "view_all")
            + _grants(
                "appointments", "view", "create", "edit", "delete", "view_all", "view_practitioner"
            )
            + _grants("invoices", "view", "create", "edit", "send")
            + _grants("quotes", "view", "create", "edit")
            + _grants("settings", "view")
        ),
    ),
    "readonly": Role(
        id="readonly",
        name="Read only",
        description="Consultation access only",
        level=10,
        permissions=[
            f"{category}.view"
            for category in (
                "patients",
                "appointments",
                "medical_records",
                "consents",
                "invoices",
                "quotes",
                "analytics",
                "settings",
            )
        ],
    ),
}


class StaticPermissionCatalog:
    """
    In-memory catalog

    Args:
        roles: Roles to serve (defaults to the built-in clinic roles)
        permissions: Known permission identifiers (defaults to every
            permission granted by a role plus the built-in list)
    """

    def __init__(
        self,
        roles: Iterable[Role] | None = None,
        permissions: Iterable[PermissionDefinition] | None = None,
    ) -> None:
        self._roles = {r.id: r for r in (roles if roles is not None else DEFAULT_ROLES.values())}
        known = {p.id: p for p in (permissions if permissions is not None else DEFAULT_PERMISSIONS)}
        for role in self._roles.values():
            for permission_id in role.permissions:
                if permission_id not in known:
                    category = permission_id.split(".", 1)[0]
                    known[permission_id] = PermissionDefinition(
                        id=permission_id, name=permission_id, category=category
                    )
        self._permissions = known

    def role_permissions(self, role_id: str) -> set[str]:
        role = self._roles.get(role_id)
        return set(role.permissions) if role else set()

    def get_user_permissions(self, user: User | Mapping[str, Any]) -> set[str]:
        if isinstance(user, User):
            role, custom = user.role, user.permissions
        else:
            role, custom = user.get("role", ""), user.get("permissions", [])
        return self.role_permissions(role) | set(custom)

    def get_all_permissions(self) -> list[PermissionDefinition]:
        return list(self._permissions.values())

    def get_all_roles(self) -> list[Role]:
        return list(self._roles.values())


default_catalog = StaticPermissionCatalog()
