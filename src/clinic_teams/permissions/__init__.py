"""
Permissions - who may do what, right now

The catalog maps roles to permission identifiers; the resolver adds team
grants and currently active delegations on top, recomputed on every check.
"""

from clinic_teams.permissions.catalog import (
    DEFAULT_PERMISSIONS,
    DEFAULT_ROLES,
    PermissionCatalog,
    PermissionDefinition,
    Role,
    StaticPermissionCatalog,
)

__all__ = [
    "DEFAULT_PERMISSIONS",
    "DEFAULT_ROLES",
    "PermissionCatalog",
    "PermissionDefinition",
    "Role",
    "StaticPermissionCatalog",
]
