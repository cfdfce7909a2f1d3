"""
Notification intents

Delegations carry three flags (start, end, daily reminder). This module
only decides which intents are due on a given day; sending them is the job
of an external notifier, and nothing here is persisted.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel

from clinic_teams.delegation.models import Delegation, DelegationStatus
from clinic_teams.kernel.time import ensure_utc

IntentKind = Literal["start", "end", "daily_reminder"]


class NotificationIntent(BaseModel):
    """Something an external notifier should tell both parties today"""

    kind: IntentKind
    delegation_id: str
    from_user_id: str
    to_user_id: str
    permissions: list[str]
    due_on: date


def due_notifications(
    delegations: Iterable[Delegation],
    now: datetime,
) -> list[NotificationIntent]:
    """
    Intents due on the calendar day (UTC) of `now`

    Only delegations whose derived status is active produce intents:
    - start: on the day of start_date, if start_notification is set
    - end: on the day of end_date, if end_notification is set
    - daily_reminder: every day, if daily_reminder is set
    """
    now = ensure_utc(now)
    today = now.date()
    intents = []

    for delegation in delegations:
        if delegation.status(now) is not DelegationStatus.ACTIVE:
            continue

        kinds: list[IntentKind] = []
        prefs = delegation.notifications
        if prefs.start_notification and delegation.start_date.date() == today:
            kinds.append("start")
        if prefs.end_notification and delegation.end_date.date() == today:
            kinds.append("end")
        if prefs.daily_reminder:
            kinds.append("daily_reminder")

        intents.extend(
            NotificationIntent(
                kind=kind,
                delegation_id=delegation.delegation_id,
                from_user_id=delegation.from_user_id,
                to_user_id=delegation.to_user_id,
                permissions=delegation.permissions,
                due_on=today,
            )
            for kind in kinds
        )

    return intents
