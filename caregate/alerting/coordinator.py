"""Escalating caregiver alerts.

The coordinator owns the caregiver notification settings and a tripped
breaker with three states:

    READY -> PRIMARY_SENT -> ESCALATION_SENT

Each evaluation advances at most one level. Once a level has fired it stays
tripped until a caregiver resets it, however long the blocked count stays
above threshold. State is persisted before any message leaves the process,
and a failed delivery never rolls the breaker back.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, tzinfo
from typing import Any

from caregate.alerting.debounce import DebouncedTask
from caregate.alerting.messages import (
    PREVIEW_LENGTH,
    RECENT_VIOLATION_LIMIT,
    compose_alert_message,
)
from caregate.gateway import GatewayError, MessagingGateway
from caregate.governor import RateGovernor
from caregate.models import (
    AlertEvaluation,
    AlertLevel,
    AlertSettingsUpdate,
    AlertState,
    AlertStatus,
    ViolationStats,
)
from caregate.models.schemas import dump_alert_state, normalize_alert_state, parse_alert_state
from caregate.monitoring import record_alert, record_storage_error
from caregate.observability import CaregiverAuditLogger, get_audit_logger
from caregate.storage import KeyValueStore, StorageError
from caregate.windows import DAY, Clock, utc_now, window_start

logger = logging.getLogger(__name__)

ALERT_STATE_KEY = "caregiver_alert_state"
LEGACY_SETTINGS_KEY = "caregiver_notification_settings"


class AlertCoordinator:
    """Decides when to notify the caregiver and delivers the notification.

    Example:
        coordinator = AlertCoordinator(store, governor, gateway)
        await coordinator.load_state()

        # After every blocked attempt
        coordinator.on_communication_blocked()
    """

    def __init__(
        self,
        store: KeyValueStore,
        governor: RateGovernor,
        gateway: MessagingGateway,
        clock: Clock = utc_now,
        timezone: tzinfo | None = None,
        debounce_seconds: float = 1.0,
        recent_limit: int = RECENT_VIOLATION_LIMIT,
        preview_length: int = PREVIEW_LENGTH,
        delivery_timeout: float = 30.0,
        contact_names: Callable[[str], str | None] | None = None,
        audit_logger: CaregiverAuditLogger | None = None,
    ) -> None:
        """Initialize alert coordinator.

        Args:
            store: Key-value store holding the alert state
            governor: Source of blocked-attempt counts and violations
            gateway: Delivers SMS alerts and emergency calls
            clock: Source of the current aware UTC time
            timezone: Zone for times shown in messages (None for system local)
            debounce_seconds: Delay that collapses bursts of blocks
            recent_limit: Maximum violations listed in a message
            preview_length: Maximum characters of text preview
            delivery_timeout: Upper bound on a single gateway call
            contact_names: Resolves contact IDs to display names
            audit_logger: Audit logger for alerts and resets
        """
        self._store = store
        self._governor = governor
        self._gateway = gateway
        self._clock = clock
        self._timezone = timezone
        self._recent_limit = recent_limit
        self._preview_length = preview_length
        self._delivery_timeout = delivery_timeout
        self._contact_names = contact_names
        self._audit = audit_logger or get_audit_logger()

        self._state = AlertState()
        self._lock = asyncio.Lock()
        self._loaded = False
        self._debouncer = DebouncedTask(
            self.check_and_send_alerts, debounce_seconds, name="caregiver-alert-check"
        )

    @property
    def state(self) -> AlertState:
        """Current alert state (immutable)."""
        return self._state

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load_state(self) -> AlertState:
        """Load the alert state, migrating older shapes and falling back to defaults."""
        async with self._lock:
            raw = await self._read(ALERT_STATE_KEY)
            legacy_raw = await self._read(LEGACY_SETTINGS_KEY) if raw is None else None

            self._state = parse_alert_state(raw, legacy_raw, now=self._clock())
            self._loaded = True

            logger.info(
                f"Loaded caregiver alert state: status={self._state.status.value}, "
                f"notifications_enabled={self._state.notifications_enabled}"
            )
            return self._state

    async def ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load_state()

    async def _read(self, key: str) -> str | None:
        try:
            return await self._store.get(key)
        except StorageError as e:
            logger.warning(f"Could not read '{key}', using defaults: {e}")
            record_storage_error("alerting", "read")
            return None

    async def _persist(self) -> None:
        try:
            await self._store.set(ALERT_STATE_KEY, dump_alert_state(self._state))
        except StorageError as e:
            logger.error(f"Failed to persist caregiver alert state: {e}")
            record_storage_error("alerting", "write")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _today_blocked(self, now: datetime) -> int:
        return self._governor.count_blocked_since(window_start(now, DAY))

    @staticmethod
    def _next_level(state: AlertState, today_blocked: int) -> AlertLevel | None:
        if (
            state.status is AlertStatus.PRIMARY_SENT
            and state.escalation_configured
            and today_blocked >= state.escalation_threshold
        ):
            return AlertLevel.ESCALATION

        if state.status is AlertStatus.READY and today_blocked >= state.primary_threshold:
            return AlertLevel.PRIMARY

        return None

    @staticmethod
    def _advance(state: AlertState, level: AlertLevel, now: datetime) -> AlertState:
        if level is AlertLevel.ESCALATION:
            return state.model_copy(
                update={"status": AlertStatus.ESCALATION_SENT, "escalation_sent_at": now}
            )
        return state.model_copy(update={"status": AlertStatus.PRIMARY_SENT, "primary_sent_at": now})

    async def check_and_send_alerts(self, force_send: bool = False) -> AlertEvaluation:
        """Evaluate the breaker against today's blocked count and notify on a transition.

        Args:
            force_send: Send a test message now, ignoring the enabled flag and
                thresholds; the breaker is left untouched

        Returns:
            What was evaluated and whether a message was delivered
        """
        await self.ensure_loaded()

        async with self._lock:
            now = self._clock()
            today_blocked = self._today_blocked(now)
            state = self._state

            if force_send:
                level = None
            elif not state.notifications_enabled:
                return AlertEvaluation(today_blocked=today_blocked)
            else:
                level = self._next_level(state, today_blocked)
                if level is None:
                    return AlertEvaluation(today_blocked=today_blocked)

                self._state = self._advance(state, level, now)
                await self._persist()
                logger.info(
                    f"🚨 Caregiver alert breaker {state.status.value} -> "
                    f"{self._state.status.value} ({today_blocked} blocked in 24h)"
                )

            delivery_state = self._state
            violations = [
                v for v in self._governor.iter_violations() if v.occurred_at > window_start(now, DAY)
            ]

        body = compose_alert_message(
            level,
            today_blocked,
            violations,
            name_lookup=self._contact_names,
            timezone=self._timezone,
            recent_limit=self._recent_limit,
            preview_length=self._preview_length,
        )
        delivered = await self._deliver(
            delivery_state, body, level.value if level else "test", today_blocked
        )

        return AlertEvaluation(
            today_blocked=today_blocked, level=level, delivered=delivered, forced=force_send
        )

    async def _deliver(
        self, state: AlertState, body: str, level_name: str, today_blocked: int
    ) -> bool:
        if not state.can_deliver_sms:
            logger.warning(f"Caregiver {level_name} alert not sent: SMS disabled or no phone number")
            record_alert(level_name, "skipped")
            self._audit.log_alert_sent(level_name, today_blocked, False)
            return False

        delivered = False
        try:
            await asyncio.wait_for(
                self._gateway.send_text(state.phone_number, body),
                timeout=self._delivery_timeout,
            )
            delivered = True
            logger.info(f"✅ Caregiver {level_name} alert delivered")
        except TimeoutError:
            logger.warning(
                f"⏱️ Caregiver {level_name} alert timed out after {self._delivery_timeout}s"
            )
        except GatewayError as e:
            logger.error(f"❌ Caregiver {level_name} alert failed: {e}")

        record_alert(level_name, "delivered" if delivered else "failed")
        self._audit.log_alert_sent(level_name, today_blocked, delivered)
        return delivered

    def on_communication_blocked(self) -> bool:
        """Schedule a debounced evaluation after a blocked attempt.

        Returns:
            True if an evaluation was scheduled, False if absorbed by a
            pending one or if no event loop is running
        """
        try:
            return self._debouncer.trigger()
        except RuntimeError:
            logger.warning("No running event loop, caregiver alert check not scheduled")
            return False

    async def wait_for_pending(self) -> None:
        """Wait for scheduled evaluations to complete."""
        await self._debouncer.wait()

    async def close(self) -> None:
        """Cancel any pending evaluation."""
        self._debouncer.cancel()
        await self._debouncer.wait()

    # ------------------------------------------------------------------
    # Caregiver actions
    # ------------------------------------------------------------------

    async def reset_alerts(self) -> AlertState:
        """Return the breaker to READY, clearing both sent timestamps."""
        await self.ensure_loaded()
        async with self._lock:
            previous = self._state.status
            self._state = self._state.model_copy(
                update={
                    "status": AlertStatus.READY,
                    "primary_sent_at": None,
                    "escalation_sent_at": None,
                    "last_reset_at": self._clock(),
                }
            )
            await self._persist()

        self._audit.log_alert_reset("all", previous.value, AlertStatus.READY.value)
        logger.info(f"Caregiver alerts reset from {previous.value}")
        return self._state

    async def _step_back(self, expected: AlertStatus, update: dict[str, Any], scope: str) -> bool:
        await self.ensure_loaded()
        async with self._lock:
            if self._state.status is not expected:
                logger.debug(f"Ignoring {scope} reset: status is {self._state.status.value}")
                return False
            self._state = self._state.model_copy(update=update)
            await self._persist()
            new_status = self._state.status

        self._audit.log_alert_reset(scope, expected.value, new_status.value)
        return True

    async def reset_primary_alert(self) -> bool:
        """Step PRIMARY_SENT back to READY. No-op in any other state."""
        return await self._step_back(
            AlertStatus.PRIMARY_SENT,
            {"status": AlertStatus.READY, "primary_sent_at": None, "last_reset_at": self._clock()},
            "primary",
        )

    async def reset_escalation_alert(self) -> bool:
        """Step ESCALATION_SENT back to PRIMARY_SENT. No-op in any other state."""
        return await self._step_back(
            AlertStatus.ESCALATION_SENT,
            {"status": AlertStatus.PRIMARY_SENT, "escalation_sent_at": None},
            "escalation",
        )

    async def update_settings(self, **changes: Any) -> AlertState:
        """Edit the caregiver alert configuration.

        Args:
            **changes: Any of phone_number, notifications_enabled, sms_enabled,
                primary_threshold, escalation_enabled, escalation_threshold

        Returns:
            The updated state

        Raises:
            pydantic.ValidationError: On unknown fields or thresholds below one
        """
        edit = AlertSettingsUpdate(**changes).model_dump(exclude_unset=True)
        # Only the phone number may be cleared; other fields ignore explicit None
        update = {k: v for k, v in edit.items() if v is not None or k == "phone_number"}
        await self.ensure_loaded()

        async with self._lock:
            updated = self._state.model_copy(update=update)
            self._state = normalize_alert_state(updated, self._clock())
            if updated.status is not self._state.status:
                logger.info(
                    f"Escalation no longer configured, breaker stepped back to "
                    f"{self._state.status.value}"
                )
            await self._persist()

        self._audit.log_settings_updated(sorted(update))
        return self._state

    async def send_test_alert(self) -> AlertEvaluation:
        """Send a test alert to the caregiver without touching the breaker."""
        return await self.check_and_send_alerts(force_send=True)

    async def emergency_call_caregiver(self, reason: str) -> bool:
        """Place a voice call to the caregiver.

        Args:
            reason: Why the call is being placed (logged only)

        Returns:
            True if the gateway accepted the call
        """
        await self.ensure_loaded()
        phone_number = self._state.phone_number
        if not phone_number:
            logger.warning(f"Emergency call requested ({reason}) but no caregiver number is set")
            return False

        logger.warning(f"📞 Placing emergency call to caregiver: {reason}")
        try:
            await asyncio.wait_for(
                self._gateway.place_call(phone_number), timeout=self._delivery_timeout
            )
        except TimeoutError:
            logger.error(f"Emergency call timed out after {self._delivery_timeout}s")
            record_alert("emergency_call", "failed")
            return False
        except GatewayError as e:
            logger.error(f"Emergency call failed: {e}")
            record_alert("emergency_call", "failed")
            return False

        record_alert("emergency_call", "delivered")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_violation_stats(self) -> ViolationStats:
        """Blocked-attempt activity for the caregiver settings screen.

        Threshold-reached times are reconstructed by replaying today's
        violations in time order and taking the Nth one for a threshold N.
        """
        now = self._clock()
        cutoff = window_start(now, DAY)
        today = [v for v in self._governor.iter_violations() if v.occurred_at > cutoff]
        state = self._state

        def reached_at(threshold: int) -> datetime | None:
            return today[threshold - 1].occurred_at if len(today) >= threshold else None

        return ViolationStats(
            today_blocked=len(today),
            lifetime_blocked=self._governor.count_blocked_total(),
            status=state.status,
            primary_triggered=state.status is not AlertStatus.READY,
            escalation_triggered=state.status is AlertStatus.ESCALATION_SENT,
            primary_sent_at=state.primary_sent_at,
            escalation_sent_at=state.escalation_sent_at,
            primary_threshold_reached_at=reached_at(state.primary_threshold),
            escalation_threshold_reached_at=(
                reached_at(state.escalation_threshold) if state.escalation_configured else None
            ),
        )
