"""
Shared base for stored records.

Every record kept in storage has a UUID primary key and strips
surrounding whitespace from text fields.

Timestamps are stored in UTC. Anything a person reads as a calendar day
(the day work was done, "today", the current month) is taken in the
farm's local timezone from AppSettings.local_timezone.
"""

from datetime import date, datetime, timezone
from functools import lru_cache
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field

from farmbook.config import get_settings


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@lru_cache()
def local_zone() -> ZoneInfo:
    """
    The farm's timezone (cached).

    Call local_zone.cache_clear() together with get_settings.cache_clear()
    after changing LOCAL_TIMEZONE.
    """
    return ZoneInfo(get_settings().app.local_timezone)


def to_local(moment: datetime) -> datetime:
    """Convert an aware datetime to local time; naive values are taken as local already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(local_zone())


def local_date(moment: datetime) -> date:
    """The local calendar day of a moment."""
    return to_local(moment).date()


def local_today() -> date:
    return datetime.now(local_zone()).date()


class Record(BaseModel):
    """Base class for everything persisted through the storage interface."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record identifier"
    )

    def with_changes(self, **changes) -> "Record":
        """
        Return a validated copy with the given fields replaced.

        Unlike model_copy(update=...), the result goes through validation
        so invariants are re-checked after an edit.
        """
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)
