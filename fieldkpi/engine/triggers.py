# ==============================================================================
# fieldkpi/engine/triggers.py
# ------------------------------------------------------------------------------
# Rule-based action and notification dispatch.
#
# Score-based rules form tiers: the strictest tier whose threshold the KPI
# score meets is the baseline. Condition-based rules are additive and are
# appended in declaration order. Actions are de-duplicated by identifier;
# recipients are unioned so each role is notified once per evaluation.
# ==============================================================================

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConditionEvaluationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Trigger:
    type: str
    action: str
    recipients: tuple
    rule_id: str = None
    reason: str = None

    def to_dict(self):
        return {
            'type': self.type, 'action': self.action, 'recipients': list(self.recipients),
            'ruleId': self.rule_id, 'reason': self.reason,
        }


@dataclass(frozen=True)
class TriggerOutcome:
    triggers: tuple
    recipients: tuple
    matched_rules: tuple
    warnings: tuple = ()

    @property
    def actions(self):
        return [t.action for t in self.triggers]


def select_score_tier(score_rules, kpi_score):
    """
    Picks the baseline tier: rules sorted by threshold descending (ties keep
    declaration order); the first with threshold <= score wins. When the score
    is below every threshold the lowest tier is the catch-all.
    """
    ordered = sorted(score_rules, key=lambda rule: rule.threshold, reverse=True)
    if not ordered:
        return None
    for rule in ordered:
        if rule.threshold <= kpi_score:
            return rule
    return ordered[-1]


def evaluate(record, kpi_score, config):
    """
    Evaluates all active trigger rules for one scored record.

    Args:
        record: PerformanceRecord (or mapping of metric key -> value).
        kpi_score (float): Aggregate score from the scoring engine.
        config (EngineConfig): Snapshot holding rules and the action catalogue.

    Returns:
        TriggerOutcome: Ordered, de-duplicated triggers plus the recipient union.
    """
    values = dict(record if isinstance(record, Mapping) else record.values)
    values['kpi_score'] = kpi_score

    selected = []
    warnings = []
    tier = select_score_tier(config.score_rules, kpi_score)
    if tier is not None:
        selected.append((tier, f"KPI score {kpi_score:g} meets tier >= {tier.threshold:g}"))

    for rule in config.condition_rules:
        try:
            fired = rule.expression.evaluate(values)
        except ConditionEvaluationError as e:
            warnings.append(f"Trigger '{rule.rule_id}' skipped: {e}")
            continue
        if fired:
            selected.append((rule, f"Condition met: {rule.expression.describe()}"))

    entries = {}
    order = []
    recipients = []
    for rule, reason in selected:
        for role in rule.recipients:
            if role not in recipients:
                recipients.append(role)
        for action in rule.actions:
            action_type = config.catalogue.classify(action)
            if action_type is None:
                continue
            if action in entries:
                merged = entries[action]
                roles = merged.recipients + tuple(r for r in rule.recipients if r not in merged.recipients)
                entries[action] = Trigger(merged.type, action, roles, merged.rule_id, merged.reason)
            else:
                entries[action] = Trigger(action_type, action, rule.recipients, rule.rule_id, reason)
                order.append(action)

    triggers = tuple(entries[action] for action in order)
    logger.debug(f"Score {kpi_score:g}: rules {[r.rule_id for r, _ in selected]} -> {[t.action for t in triggers]}")
    return TriggerOutcome(triggers, tuple(recipients), tuple(r.rule_id for r, _ in selected), tuple(warnings))
