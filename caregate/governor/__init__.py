"""Communication rate governor and the contact quota registry."""

from caregate.governor.contacts import ContactRegistry, auto_enable, default_quota
from caregate.governor.rate_governor import (
    BLOCKED_CALLS_KEY,
    BLOCKED_MESSAGES_KEY,
    FREQUENCY_RECORDS_KEY,
    RateGovernor,
)

__all__ = [
    "BLOCKED_CALLS_KEY",
    "BLOCKED_MESSAGES_KEY",
    "FREQUENCY_RECORDS_KEY",
    "ContactRegistry",
    "RateGovernor",
    "auto_enable",
    "default_quota",
]
