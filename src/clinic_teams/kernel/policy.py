"""
Clinic policy - tunable parameters for teams and delegations

All values have defaults matching the clinic's historical behaviour, so an
unconfigured installation behaves exactly as documented.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

Weekday = Literal[
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
]

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class ClinicPolicy(BaseModel):
    """
    Configuration for the team and delegation engine

    Passed to handlers and the facade; never mutated at runtime.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking configuration changes",
    )

    # Team schedule template
    default_work_start: str = Field(
        default="08:00",
        pattern=r"^([01]\d|2[0-3]):[0-5]\d$",
        description="Opening time used for new teams created without a schedule",
    )

    default_work_end: str = Field(
        default="17:00",
        pattern=r"^([01]\d|2[0-3]):[0-5]\d$",
        description="Closing time used for new teams created without a schedule",
    )

    default_work_days: list[Weekday] = Field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday"],
        description="Working days in the default schedule; other days are closed",
    )

    # Delegations
    cascade_revocation_reason: str = Field(
        default="team deleted",
        min_length=1,
        description="Revocation reason recorded on delegations deactivated by team deletion",
    )

    default_notifications: dict[str, bool] = Field(
        default_factory=lambda: {
            "start_notification": True,
            "end_notification": True,
            "daily_reminder": False,
        },
        description="Notification intent flags applied when the caller supplies none",
    )

    max_delegation_days: int | None = Field(
        default=None,
        ge=1,
        description="Optional cap on delegation window length (None = unlimited)",
    )

    # Reporting
    recent_activity_days: int = Field(
        default=7,
        ge=1,
        description="Window for the 'delegations created recently' statistic",
    )

    @field_validator("default_notifications")
    @classmethod
    def _known_notification_flags(cls, value: dict[str, bool]) -> dict[str, bool]:
        unknown = set(value) - {"start_notification", "end_notification", "daily_reminder"}
        if unknown:
            raise ValueError(f"Unknown notification flags: {sorted(unknown)}")
        return value

    def default_schedule(self) -> dict[str, dict[str, str] | None]:
        """Weekly schedule template for teams created without one"""
        return {
            day: (
                {"start": self.default_work_start, "end": self.default_work_end}
                if day in self.default_work_days
                else None
            )
            for day in WEEKDAYS
        }
