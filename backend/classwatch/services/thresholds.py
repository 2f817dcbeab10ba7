"""Threshold rules mapping negative perception events to student alerts.

The table is a plain object so callers (and tests) can pass their own rules to
the evaluator and the reconciler. ``default_threshold_table`` builds the
production table from settings.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from classwatch.config import Settings, settings
from classwatch.models.monitoring import AlertKind, AlertSeverity, EventKind


@dataclass(frozen=True)
class ThresholdRule:
    event_kind: str
    alert_kind: str
    severity: str
    threshold_seconds: int
    title_template: str
    message_template: str

    def title(self, name: str) -> str:
        return self.title_template.format(name=name)

    def message(self, name: str, minutes: int) -> str:
        return self.message_template.format(name=name, minutes=minutes)


class ThresholdTable:
    def __init__(
        self,
        rules: Iterable[ThresholdRule],
        *,
        window_minutes: int = 10,
        suppression_minutes: int = 30,
    ) -> None:
        self._by_event: Dict[str, ThresholdRule] = {}
        self._by_alert: Dict[str, ThresholdRule] = {}
        for rule in rules:
            if rule.event_kind in self._by_event:
                raise ValueError(f"Duplicate threshold rule for event kind '{rule.event_kind}'")
            self._by_event[rule.event_kind] = rule
            self._by_alert[rule.alert_kind] = rule
        self.window_minutes = window_minutes
        self.suppression_minutes = suppression_minutes

    def rule_for(self, event_kind: str) -> Optional[ThresholdRule]:
        return self._by_event.get(event_kind)

    def rule_for_alert(self, alert_kind: str) -> Optional[ThresholdRule]:
        return self._by_alert.get(alert_kind)

    @property
    def alert_kinds(self) -> Tuple[str, ...]:
        return tuple(self._by_alert)

    def __iter__(self):
        return iter(self._by_event.values())


def default_threshold_table(config: Settings = settings) -> ThresholdTable:
    return ThresholdTable(
        [
            ThresholdRule(
                event_kind=EventKind.EYES_CLOSED.value,
                alert_kind=AlertKind.STUDENT_SLEEPING.value,
                severity=AlertSeverity.CRITICAL.value,
                threshold_seconds=config.STUDENT_SLEEPING_SECONDS,
                title_template="Student Sleeping — {name}",
                message_template="{name} appears to be sleeping (eyes closed for {minutes} minutes)",
            ),
            ThresholdRule(
                event_kind=EventKind.LOOKING_AWAY.value,
                alert_kind=AlertKind.STUDENT_NOT_LOOKING.value,
                severity=AlertSeverity.WARNING.value,
                threshold_seconds=config.STUDENT_NOT_LOOKING_SECONDS,
                title_template="Not Paying Attention — {name}",
                message_template="{name} not looking at class for {minutes} minutes",
            ),
            ThresholdRule(
                event_kind=EventKind.NOT_IN_FRAME.value,
                alert_kind=AlertKind.STUDENT_LEFT_FRAME.value,
                severity=AlertSeverity.WARNING.value,
                threshold_seconds=config.STUDENT_LEFT_FRAME_SECONDS,
                title_template="Student Left Frame — {name}",
                message_template="{name} left the camera frame for {minutes} minutes",
            ),
            ThresholdRule(
                event_kind=EventKind.DISTRACTED.value,
                alert_kind=AlertKind.STUDENT_DISTRACTED.value,
                severity=AlertSeverity.WARNING.value,
                threshold_seconds=config.STUDENT_DISTRACTED_SECONDS,
                title_template="Student Distracted — {name}",
                message_template="{name} showing distracted behavior for {minutes} minutes",
            ),
            ThresholdRule(
                event_kind=EventKind.PHONE_DETECTED.value,
                alert_kind=AlertKind.PHONE_DETECTED.value,
                severity=AlertSeverity.WARNING.value,
                threshold_seconds=config.PHONE_DETECTED_SECONDS,
                title_template="Phone Detected — {name}",
                message_template="{name} appears to be using phone in class",
            ),
        ],
        window_minutes=config.EVENT_WINDOW_MINUTES,
        suppression_minutes=config.ALERT_SUPPRESSION_MINUTES,
    )
