"""
Directory - users and teams

Users carry a role (resolved to permissions by the PermissionCatalog) and
are soft-deleted so history keeps resolving. Teams group users under a
leader who is always a member, and may carry extra team-level permissions.
"""

from clinic_teams.directory.models import Team, TimeSlot, User
from clinic_teams.directory.projections import TeamRegistry, UserDirectory

__all__ = [
    "Team",
    "TimeSlot",
    "User",
    "TeamRegistry",
    "UserDirectory",
]
