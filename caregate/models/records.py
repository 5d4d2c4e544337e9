"""Communication attempt records.

Defines the allowed-attempt catalog entry and the two blocked-attempt audit
records. Field names are camelCase on disk; legacy field names from older
app versions are still accepted when reading.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field

from caregate.windows import ensure_utc, utc_now

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


def new_record_id() -> str:
    """Generate an identifier for a blocked-attempt record."""
    return uuid.uuid4().hex


class CommunicationKind(str, Enum):
    """Kinds of communication governed by contact quotas."""

    CALL = "call"
    TEXT = "text"


class FrequencyRecord(BaseModel):
    """An allowed communication that was actually carried out."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    contact_id: str = Field(alias="contactId")
    kind: CommunicationKind = Field(
        validation_alias=AliasChoices("kind", "type"),
        serialization_alias="kind",
    )
    occurred_at: UtcDatetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("occurredAt", "timestamp"),
        serialization_alias="occurredAt",
    )


class BlockedMessage(BaseModel):
    """A text the protected user tried to send while it was not allowed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_record_id)
    contact_id: str = Field(alias="contactId")
    text: str = Field(
        default="",
        validation_alias=AliasChoices("text", "message"),
        serialization_alias="text",
    )
    occurred_at: UtcDatetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("occurredAt", "timestamp"),
        serialization_alias="occurredAt",
    )


class BlockedCall(BaseModel):
    """A call the protected user tried to place while it was not allowed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_record_id)
    contact_id: str = Field(alias="contactId")
    occurred_at: UtcDatetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("occurredAt", "timestamp"),
        serialization_alias="occurredAt",
    )
    voicemail_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("voicemailRef", "voicemailRecordingUrl"),
        serialization_alias="voicemailRef",
    )


@dataclass(frozen=True)
class Violation:
    """Merged read-only view over blocked calls and texts."""

    kind: CommunicationKind
    contact_id: str
    occurred_at: datetime
    text: str | None = None

    @classmethod
    def from_message(cls, message: BlockedMessage) -> Violation:
        return cls(CommunicationKind.TEXT, message.contact_id, message.occurred_at, message.text)

    @classmethod
    def from_call(cls, call: BlockedCall) -> Violation:
        return cls(CommunicationKind.CALL, call.contact_id, call.occurred_at)


class CommunicationStats(BaseModel):
    """Allowed communications for one contact in the rolling 24 hour window."""

    calls: int = 0
    texts: int = 0
