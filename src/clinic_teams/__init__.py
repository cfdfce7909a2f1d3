"""
Clinic Teams - team membership and time-bounded permission delegation

Staff are grouped into teams under a leader; a permission holder can hand
part of their authority to a colleague for a fixed window, subject to
approval, with overlaps flagged and expiry computed on every check.
"""

from clinic_teams.clinic import ClinicTeams

__version__ = "0.1.0"
__all__ = ["ClinicTeams", "__version__"]
