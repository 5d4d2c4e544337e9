"""Escalating caregiver alerts.

Example:
    >>> from caregate.alerting import AlertCoordinator
    >>>
    >>> coordinator = AlertCoordinator(store, governor, gateway)
    >>> await coordinator.load_state()
    >>> coordinator.on_communication_blocked()
"""

from caregate.alerting.coordinator import ALERT_STATE_KEY, LEGACY_SETTINGS_KEY, AlertCoordinator
from caregate.alerting.debounce import DebouncedTask
from caregate.alerting.messages import compose_alert_message, most_recent, truncate_preview

__all__ = [
    "ALERT_STATE_KEY",
    "LEGACY_SETTINGS_KEY",
    "AlertCoordinator",
    "DebouncedTask",
    "compose_alert_message",
    "most_recent",
    "truncate_preview",
]
