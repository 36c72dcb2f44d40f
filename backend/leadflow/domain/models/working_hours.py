"""
Working Hours Model
Business-configurable window in which cleaning jobs can start
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List
from datetime import datetime, time
import pytz


def _parse_hhmm(value: str) -> time:
    hour, minute = map(int, value.split(":"))
    return time(hour, minute)


class WorkingHours(BaseModel):
    """
    Working-hours policy used when proposing appointment slots.

    Loaded from the ``business.working_hours`` section of the YAML config.
    """

    start: str = Field(default="08:00", description="Start of working day (HH:MM)")
    end: str = Field(default="17:00", description="End of working day (HH:MM), exclusive")
    timezone: str = Field(default="Europe/Copenhagen", description="Timezone of the business")
    allowed_days: List[int] = Field(
        default=[0, 1, 2, 3, 4],
        description="Working days (0=Monday, 6=Sunday)"
    )
    slot_times: List[str] = Field(
        default=["10:00", "14:00"],
        description="Candidate start times offered each working day (HH:MM)"
    )

    @field_validator("start", "end")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        _parse_hhmm(value)
        return value

    @field_validator("slot_times")
    @classmethod
    def _validate_slot_times(cls, value: List[str]) -> List[str]:
        for item in value:
            _parse_hhmm(item)
        return sorted(value, key=_parse_hhmm)

    @field_validator("allowed_days")
    @classmethod
    def _validate_days(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("allowed_days must contain at least one day")
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("allowed_days must be between 0 (Monday) and 6 (Sunday)")
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "WorkingHours":
        if self.start_time >= self.end_time:
            raise ValueError(f"Working day start {self.start} must be before end {self.end}")
        return self

    @property
    def start_time(self) -> time:
        return _parse_hhmm(self.start)

    @property
    def end_time(self) -> time:
        return _parse_hhmm(self.end)

    @property
    def tz(self):
        """pytz timezone, UTC if the configured name is unknown"""
        try:
            return pytz.timezone(self.timezone)
        except pytz.exceptions.UnknownTimeZoneError:
            return pytz.UTC

    def localize(self, value: datetime) -> datetime:
        """Convert (or attach) the business timezone"""
        if value.tzinfo is None:
            return self.tz.localize(value)
        return value.astimezone(self.tz)

    def candidate_times(self) -> List[time]:
        """Configured slot start times that fall inside the working window"""
        return [
            t for t in map(_parse_hhmm, self.slot_times)
            if self.start_time <= t < self.end_time
        ]
