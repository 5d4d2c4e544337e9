"""Per-contact communication quotas and contact records."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from caregate.models.records import CommunicationKind
from caregate.windows import parse_hhmm


class KindQuota(BaseModel):
    """Limits for one communication kind.

    Attributes:
        enabled: Whether the limits are enforced at all
        max_per_hour: Allowed attempts in the rolling hour
        max_per_day: Allowed attempts in the rolling 24 hours
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = False
    max_per_hour: int = Field(default=3, ge=0, alias="maxPerHour")
    max_per_day: int = Field(default=10, ge=0, alias="maxPerDay")


class QuietHours(BaseModel):
    """Local wall-clock window during which every attempt is denied."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        """Reject anything that is not a 24-hour ``HH:MM`` time."""
        parse_hhmm(v)
        return v.strip()


class ContactQuota(BaseModel):
    """Quota configuration for a single contact. Absence means unlimited."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    calls: KindQuota = Field(default_factory=KindQuota)
    texts: KindQuota = Field(default_factory=lambda: KindQuota(max_per_hour=5, max_per_day=20))
    voicemail_allowance: int = Field(
        default=2,
        ge=0,
        validation_alias=AliasChoices("voicemailAllowance", "voicemailAllowed"),
        serialization_alias="voicemailAllowance",
    )
    quiet_hours: QuietHours | None = Field(default=None, alias="quietHours")

    def for_kind(self, kind: CommunicationKind) -> KindQuota:
        """Return the sub-quota governing ``kind``."""
        return self.calls if kind is CommunicationKind.CALL else self.texts


class Contact(BaseModel):
    """A contact the protected user can reach, with its optional quota.

    Unknown fields written by the contacts screen (photo, birthdate, ...)
    are carried through untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    phone_number: str = Field(default="", alias="phoneNumber")
    quota: ContactQuota | None = Field(
        default=None,
        validation_alias=AliasChoices("frequencySettings", "quota"),
        serialization_alias="frequencySettings",
    )
