"""User-defined crisis rules.

Rules are evaluated against every ingested signal, independently of the
built-in detectors. A rule matches when ANY threshold its author set is
satisfied; unset thresholds are ignored rather than treated as zero.
"""
import logging
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Sequence
import uuid

from mentionguard.shared.errors import InvalidStateError, NotFoundError, ValidationError
from mentionguard.shared.models import (
    CrisisRule,
    RuleActions,
    RuleTriggers,
    Signal,
)
from .bucket_store import TimeBucketStore
from .config import CrisisConfig
from .detectors import negative_share
from .events import CrisisEvent, CrisisEventType, EventPublisher
from .lifecycle import CrisisLifecycle
from .repository import InMemoryRuleRepository, RuleRepository

logger = logging.getLogger(__name__)


def _optional_number(definition: Dict[str, Any], key: str, cast, upper=None):
    value = definition.get(key)
    if value is None:
        return None
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number, got {value!r}")
    if number <= 0:
        raise ValidationError(f"{key} must be positive, got {value!r}")
    if upper is not None and number > upper:
        raise ValidationError(f"{key} must be at most {upper}, got {value!r}")
    return number


def _string_list(definition: Dict[str, Any], key: str) -> tuple:
    value = definition.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{key} must be a list of strings")
    return tuple(str(v).strip() for v in value if str(v).strip())


class RuleEngine:
    """Stores crisis rules and applies their actions on match."""

    def __init__(
        self,
        lifecycle: CrisisLifecycle,
        store: TimeBucketStore,
        rule_repository: Optional[RuleRepository] = None,
        publisher: Optional[EventPublisher] = None,
        config: Optional[CrisisConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.lifecycle = lifecycle
        self.store = store
        self.rules = rule_repository or InMemoryRuleRepository()
        self.publisher = publisher or lifecycle.publisher
        self.config = config or lifecycle.config
        self._clock = clock or datetime.utcnow
        self._counter_lock = Lock()

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    def create_rule(self, definition: Dict[str, Any]) -> CrisisRule:
        """Create a rule from an author-supplied definition dict.

        Args:
            definition: name, description, volume_threshold,
                negative_sentiment_percentage, reach_threshold, keywords,
                auto_escalate, notify_users, assign_to, is_active

        Returns:
            The stored CrisisRule

        Raises:
            ValidationError: No threshold set, or a malformed value
        """
        triggers = RuleTriggers(
            volume_threshold=_optional_number(definition, "volume_threshold", int),
            negative_sentiment_percentage=_optional_number(
                definition, "negative_sentiment_percentage", float, upper=100.0
            ),
            reach_threshold=_optional_number(definition, "reach_threshold", int),
            keywords=_string_list(definition, "keywords"),
        )
        if triggers.is_empty():
            raise ValidationError("Rule must define at least one threshold")

        actions = RuleActions(
            auto_escalate=bool(definition.get("auto_escalate", False)),
            notify_users=_string_list(definition, "notify_users"),
            assign_to=definition.get("assign_to") or None,
        )

        rule = CrisisRule(
            id=f"rule_{uuid.uuid4().hex[:12]}",
            name=str(definition.get("name") or "Untitled rule"),
            description=str(definition.get("description") or ""),
            triggers=triggers,
            actions=actions,
            created_at=self._clock(),
            is_active=definition.get("is_active", True) is not False,
        )
        self.rules.save(rule)

        logger.info(
            "CRISIS_RULE_CREATED",
            extra={
                "rule_id": rule.id,
                "is_active": rule.is_active,
                "auto_escalate": actions.auto_escalate,
                "keyword_count": len(triggers.keywords),
            }
        )
        return rule

    def get_rule(self, rule_id: str) -> CrisisRule:
        rule = self.rules.get(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule not found: {rule_id}")
        return rule

    def list_rules(self, active_only: bool = False) -> List[CrisisRule]:
        rules = sorted(self.rules.list_all(), key=lambda r: r.created_at)
        if active_only:
            rules = [r for r in rules if r.is_active]
        return rules

    def set_rule_active(self, rule_id: str, is_active: bool) -> CrisisRule:
        with self._counter_lock:
            rule = self.get_rule(rule_id)
            rule.is_active = bool(is_active)
            self.rules.save(rule)

        logger.info(
            "CRISIS_RULE_TOGGLED",
            extra={"rule_id": rule_id, "is_active": rule.is_active}
        )
        return rule

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def match_reasons(
        self,
        rule: CrisisRule,
        signal: Signal,
        window: Sequence[Signal],
    ) -> List[str]:
        """Thresholds of rule satisfied by signal and its bucket window."""
        t = rule.triggers
        reasons = []

        if t.volume_threshold is not None and len(window) >= t.volume_threshold:
            reasons.append("volume")

        if t.negative_sentiment_percentage is not None:
            share = negative_share(window, self.config.negative_sentiment_cutoff)
            if (
                share.total_count >= self.config.sentiment_min_sample
                and share.exact_percentage >= t.negative_sentiment_percentage
            ):
                reasons.append("negative_sentiment")

        if t.reach_threshold is not None and signal.reach >= t.reach_threshold:
            reasons.append("reach")

        if t.keywords and signal.content:
            content = signal.content.lower()
            if any(k.lower() in content for k in t.keywords):
                reasons.append("keyword")

        return reasons

    def evaluate(self, signal: Signal) -> List[CrisisRule]:
        """Evaluate all active rules against an ingested signal.

        Returns:
            Matched rules, with triggered_count already incremented
        """
        bucket = self.store.get_bucket(signal.captured_at)
        window = bucket.signals if bucket is not None else (signal,)

        matched = []
        for rule in self.list_rules(active_only=True):
            reasons = self.match_reasons(rule, signal, window)
            if not reasons:
                continue

            with self._counter_lock:
                current = self.rules.get(rule.id) or rule
                current.triggered_count += 1
                self.rules.save(current)

            logger.warning(
                "RULE_MATCHED",
                extra={
                    "rule_id": rule.id,
                    "signal_id": signal.id,
                    "reasons": reasons,
                    "triggered_count": current.triggered_count,
                }
            )
            self._apply_actions(current, signal, reasons)
            matched.append(current)

        return matched

    def _apply_actions(
        self,
        rule: CrisisRule,
        signal: Signal,
        reasons: List[str],
    ) -> None:
        actions = rule.actions
        source = f"rule:{rule.id}"
        crisis = None

        if actions.auto_escalate or actions.assign_to:
            crisis, _ = self.lifecycle.ensure_open_crisis(signal, source=source)

        if actions.auto_escalate and crisis is not None:
            if crisis.escalated:
                logger.info(
                    "RULE_ESCALATION_SKIPPED",
                    extra={"rule_id": rule.id, "crisis_id": crisis.id, "reason": "already_escalated"}
                )
            else:
                try:
                    self.lifecycle.escalate(crisis.id, reason=source)
                except InvalidStateError as e:
                    logger.info(
                        "RULE_ESCALATION_SKIPPED",
                        extra={"rule_id": rule.id, "crisis_id": crisis.id, "reason": str(e)}
                    )

        if actions.assign_to and crisis is not None:
            try:
                self.lifecycle.assign(crisis.id, actions.assign_to)
            except InvalidStateError as e:
                logger.info(
                    "RULE_ASSIGNMENT_SKIPPED",
                    extra={"rule_id": rule.id, "crisis_id": crisis.id, "reason": str(e)}
                )

        if actions.notify_users:
            event = CrisisEvent.create(
                CrisisEventType.RULE_TRIGGERED,
                crisis_id=crisis.id if crisis else None,
                severity=crisis.severity.value if crisis else None,
                data={
                    "rule_id": rule.id,
                    "rule_name": rule.name,
                    "signal_id": signal.id,
                    "reasons": reasons,
                },
                notify_users=list(actions.notify_users),
                timestamp=self._clock(),
            )
            try:
                self.publisher.publish(event)
            except Exception as e:
                logger.error(
                    "RULE_NOTIFICATION_FAILED",
                    extra={"rule_id": rule.id, "event_id": event.event_id, "error": str(e)}
                )
