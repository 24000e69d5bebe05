# ==============================================================================
# fieldkpi/engine/definitions.py
# ------------------------------------------------------------------------------
# Typed configuration for the scoring and trigger engines, and the load-time
# validation that turns loosely-typed admin JSON into it.
#
# Loading never silently "fixes" a configuration: anything that makes the
# configuration unusable raises ConfigurationError, anything merely suspicious
# (weights not summing to 100, rating gaps, unordered bands, malformed trigger
# conditions) is collected as a ConfigurationWarning on the EngineConfig.
# ==============================================================================

import logging
from dataclasses import dataclass, field

from .conditions import parse_condition
from .errors import ConditionSyntaxError, ConfigurationError, ConfigurationWarning
from .operators import Operator
from .schema import metric_key_for

logger = logging.getLogger(__name__)

SCORE_BASED = 'score_based'
CONDITION_BASED = 'condition_based'
TRIGGER_TYPES = (SCORE_BASED, CONDITION_BASED)

TRAINING = 'training'
AUDIT = 'audit'
WARNING = 'warning'
ACTION_TYPES = (TRAINING, AUDIT, WARNING)

# Placeholder action used by the top tier: notify, but assign nothing.
NO_OP_ACTIONS = {'none', 'no action', ''}

UNRATED = 'Unrated'
WEIGHT_TOTAL = 100.0


@dataclass(frozen=True)
class ThresholdBand:
    operator: Operator
    value: float
    score: float
    label: str = ''

    def matches(self, metric_value):
        return self.operator.apply(metric_value, self.value)

    def to_dict(self):
        return {'operator': self.operator.value, 'value': self.value, 'score': self.score, 'label': self.label}


@dataclass(frozen=True)
class MetricDefinition:
    metric_key: str
    weight: float
    thresholds: tuple
    is_active: bool = True
    name: str = None
    updated_at: str = None
    updated_by: str = None

    def to_dict(self):
        return {
            'metric': self.name or self.metric_key,
            'metricKey': self.metric_key,
            'weightage': self.weight,
            'thresholds': [band.to_dict() for band in self.thresholds],
            'isActive': self.is_active,
            'updatedAt': self.updated_at,
            'updatedBy': self.updated_by,
        }


@dataclass(frozen=True)
class TriggerRule:
    rule_id: str
    trigger_type: str
    condition: object
    threshold: float
    actions: tuple
    recipients: tuple
    is_active: bool = True
    expression: object = None
    updated_at: str = None
    updated_by: str = None

    @property
    def is_evaluable(self):
        return self.trigger_type == SCORE_BASED or self.expression is not None

    def describe(self):
        if self.trigger_type == SCORE_BASED:
            return f"KPI score >= {self.threshold:g}"
        if self.expression is not None:
            return self.expression.describe()
        return str(self.condition)

    def to_dict(self):
        return {
            '_id': self.rule_id,
            'triggerType': self.trigger_type,
            'condition': self.condition,
            'threshold': self.threshold,
            'actions': list(self.actions),
            'emailRecipients': list(self.recipients),
            'isActive': self.is_active,
            'updatedAt': self.updated_at,
            'updatedBy': self.updated_by,
        }


@dataclass(frozen=True)
class RatingBand:
    label: str
    min_score: float
    max_score: float

    def contains(self, score):
        if self.max_score >= WEIGHT_TOTAL:
            return self.min_score <= score <= self.max_score
        return self.min_score <= score < self.max_score

    def to_dict(self):
        return {'label': self.label, 'minScore': self.min_score, 'maxScore': self.max_score}


@dataclass(frozen=True)
class RatingScale:
    """Ordered rating bands, highest first."""
    bands: tuple

    def rate(self, score):
        """Returns (label, None) or (UNRATED, reason) when the score falls in a gap."""
        for band in self.bands:
            if band.contains(score):
                return band.label, None
        return UNRATED, f"KPI score {score:g} is not covered by any rating band"

    def to_list(self):
        return [band.to_dict() for band in self.bands]


@dataclass(frozen=True)
class ActionCatalogue:
    """Maps action identifiers to an action type (training / audit / warning)."""
    types: dict = field(default_factory=dict)
    training_keywords: tuple = ('training',)
    warning_keywords: tuple = ('warning',)

    def classify(self, action):
        """Returns the action type, or None for placeholder actions such as 'None'."""
        if action is None or str(action).strip().lower() in NO_OP_ACTIONS:
            return None
        if action in self.types:
            return self.types[action]
        lowered = str(action).lower()
        if any(keyword in lowered for keyword in self.warning_keywords):
            return WARNING
        if any(keyword in lowered for keyword in self.training_keywords):
            return TRAINING
        return AUDIT


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable configuration snapshot used for one batch evaluation.
    Build it with `EngineConfig.from_dicts(...)` so that all load-time
    validation runs exactly once.
    """
    metrics: tuple
    trigger_rules: tuple
    rating_scale: RatingScale
    catalogue: ActionCatalogue = field(default_factory=ActionCatalogue)
    sentinels: dict = field(default_factory=dict)
    warnings: tuple = ()

    @property
    def active_metrics(self):
        return tuple(m for m in self.metrics if m.is_active)

    @property
    def score_rules(self):
        return tuple(r for r in self.trigger_rules if r.is_active and r.trigger_type == SCORE_BASED)

    @property
    def condition_rules(self):
        return tuple(r for r in self.trigger_rules
                     if r.is_active and r.trigger_type == CONDITION_BASED and r.is_evaluable)

    @classmethod
    def from_dicts(cls, metrics, triggers, ratings, action_types=None,
                   training_keywords=None, warning_keywords=None, sentinels=None):
        """
        Parses and validates raw configuration dictionaries.

        Args:
            metrics (list): Metric definitions as stored/edited by administrators.
            triggers (list): Trigger rules.
            ratings (list): Rating bands, e.g. [{'label': 'Outstanding', 'minScore': 85}, ...].
            action_types (dict): Optional action identifier -> action type overrides.
            training_keywords / warning_keywords (list): Fallback classification keywords.
            sentinels (dict): Per-metric default for missing/unparseable values.

        Returns:
            EngineConfig: The validated snapshot (warnings attached).

        Raises:
            ConfigurationError: If any part is structurally unreadable.
        """
        warnings = []
        metric_defs = load_metric_definitions(metrics, warnings)
        rules = load_trigger_rules(triggers, warnings)
        scale = load_rating_scale(ratings, warnings)
        catalogue = load_action_catalogue(action_types, training_keywords, warning_keywords)
        for warning in warnings:
            logger.warning(f"Configuration warning [{warning.code}]: {warning.message}")
        return cls(
            metrics=tuple(metric_defs), trigger_rules=tuple(rules), rating_scale=scale,
            catalogue=catalogue, sentinels=dict(sentinels or {}), warnings=tuple(warnings),
        )


# --- Loaders ---

def _number(value, what):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    if number != number:
        raise ConfigurationError(f"{what} must be a number, got NaN")
    return number


def as_flag(value):
    if isinstance(value, str):
        return value.strip().lower() not in ('false', '0', 'no', 'off', '')
    return True if value is None else bool(value)


def load_metric_definitions(raw_metrics, warnings):
    """Parses metric definitions and appends weight/band warnings."""
    if not isinstance(raw_metrics, (list, tuple)):
        raise ConfigurationError("Metrics configuration must be a list")

    definitions = []
    for index, raw in enumerate(raw_metrics):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Metric #{index + 1} must be an object")
        name = raw.get('metric') or raw.get('metricKey') or raw.get('metric_key')
        key = metric_key_for(raw.get('metricKey') or raw.get('metric_key') or name)
        if key is None or key == 'kpi_score':
            raise ConfigurationError(f"Metric #{index + 1} has an unknown metric name: {name!r}")

        weight = _number(raw.get('weightage', raw.get('weight')), f"Weight of '{name}'")
        if not 0 <= weight <= WEIGHT_TOTAL:
            raise ConfigurationError(f"Weight of '{name}' must be between 0 and 100, got {weight:g}")

        raw_bands = raw.get('thresholds') or []
        if not isinstance(raw_bands, (list, tuple)):
            raise ConfigurationError(f"Thresholds of '{name}' must be a list")
        bands = []
        for band_index, band in enumerate(raw_bands):
            try:
                bands.append(ThresholdBand(
                    operator=Operator.parse(band['operator']),
                    value=_number(band['value'], f"Threshold value of '{name}'"),
                    score=_number(band['score'], f"Threshold score of '{name}'"),
                    label=str(band.get('label') or ''),
                ))
            except (KeyError, TypeError) as e:
                raise ConfigurationError(f"Threshold #{band_index + 1} of '{name}' is incomplete: {e}")

        definition = MetricDefinition(
            metric_key=key, weight=weight, thresholds=tuple(bands), is_active=as_flag(raw.get('isActive', True)),
            name=str(name), updated_at=raw.get('updatedAt'), updated_by=raw.get('updatedBy'),
        )
        _check_bands(definition, warnings)
        definitions.append(definition)

    active = [d for d in definitions if d.is_active]
    seen = set()
    for definition in active:
        if definition.metric_key in seen:
            warnings.append(ConfigurationWarning(
                'duplicate_metric', f"Metric '{definition.metric_key}' is configured more than once",
                definition.metric_key))
        seen.add(definition.metric_key)

    total = sum(d.weight for d in active)
    if abs(total - WEIGHT_TOTAL) > 1e-6:
        warnings.append(ConfigurationWarning(
            'weight_sum', f"Active metric weights sum to {total:g}, expected 100", None))
    return definitions


def _check_bands(definition, warnings):
    name = definition.name or definition.metric_key
    if not definition.thresholds:
        warnings.append(ConfigurationWarning(
            'no_thresholds', f"Metric '{name}' has no threshold bands and will always score 0",
            definition.metric_key))
        return

    previous = None
    for band in definition.thresholds:
        if band.score > definition.weight:
            warnings.append(ConfigurationWarning(
                'band_score_exceeds_weight',
                f"Band '{band.label}' of '{name}' scores {band.score:g} but the weight is "
                f"{definition.weight:g}; the contribution is capped", definition.metric_key))
        if previous is not None and previous.operator.is_lower_bound and band.operator.is_lower_bound \
                and band.value > previous.value:
            warnings.append(ConfigurationWarning(
                'band_order', f"Lower-bound bands of '{name}' are not in descending order "
                f"({previous.value:g} then {band.value:g}); first match wins", definition.metric_key))
        if previous is not None and previous.operator.is_upper_bound and band.operator.is_upper_bound \
                and band.value < previous.value:
            warnings.append(ConfigurationWarning(
                'band_order', f"Upper-bound bands of '{name}' are not in ascending order "
                f"({previous.value:g} then {band.value:g}); first match wins", definition.metric_key))
        previous = band


def _recipients(raw):
    if isinstance(raw, dict):
        raw = [role for role, enabled in raw.items() if as_flag(enabled)]
    if isinstance(raw, str):
        raw = [part for part in raw.split(',')]
    roles = []
    for role in raw or []:
        role = str(role).strip()
        if role and role not in roles:
            roles.append(role)
    return tuple(roles)


def load_trigger_rules(raw_rules, warnings):
    """Parses trigger rules; malformed conditions become warnings and the rule is skipped."""
    if not isinstance(raw_rules, (list, tuple)):
        raise ConfigurationError("Trigger configuration must be a list")

    rules = []
    for index, raw in enumerate(raw_rules):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Trigger #{index + 1} must be an object")
        rule_id = str(raw.get('_id') or raw.get('id') or index + 1)
        trigger_type = str(raw.get('triggerType') or '').strip().lower()
        if trigger_type not in TRIGGER_TYPES:
            raise ConfigurationError(f"Trigger '{rule_id}' has an unknown trigger type: {raw.get('triggerType')!r}")

        threshold = raw.get('threshold')
        if trigger_type == SCORE_BASED:
            threshold = _number(threshold, f"Threshold of trigger '{rule_id}'")
        else:
            threshold = _number(threshold, f"Threshold of trigger '{rule_id}'") if threshold not in (None, '') else None

        actions = []
        for action in raw.get('actions') or []:
            action = str(action).strip()
            if action not in actions:
                actions.append(action)

        expression = None
        condition = raw.get('condition')
        is_active = as_flag(raw.get('isActive', True))
        if trigger_type == CONDITION_BASED:
            try:
                expression = parse_condition(condition)
            except ConditionSyntaxError as e:
                if is_active:
                    warnings.append(ConfigurationWarning(
                        'malformed_condition', f"Trigger '{rule_id}' skipped: {e}", rule_id))

        rules.append(TriggerRule(
            rule_id=rule_id, trigger_type=trigger_type, condition=condition, threshold=threshold,
            actions=tuple(actions), recipients=_recipients(raw.get('emailRecipients')),
            is_active=is_active, expression=expression,
            updated_at=raw.get('updatedAt'), updated_by=raw.get('updatedBy'),
        ))

    score_rules = [r for r in rules if r.is_active and r.trigger_type == SCORE_BASED]
    if score_rules and min(r.threshold for r in score_rules) > 0:
        warnings.append(ConfigurationWarning(
            'no_catch_all_tier', "The lowest score-based tier is above 0; it is used as the catch-all", None))
    return rules


def load_rating_scale(raw_bands, warnings):
    """
    Builds the rating scale. Bands may give only `minScore`; the upper bound is
    then the next higher band's minimum (100 for the top band). The scale must
    partition 0-100; gaps and overlaps are reported, not repaired.
    """
    if not isinstance(raw_bands, (list, tuple)) or not raw_bands:
        raise ConfigurationError("Rating scale must be a non-empty list")

    parsed = []
    for raw in raw_bands:
        try:
            label = str(raw['label'])
            minimum = _number(raw.get('minScore', raw.get('min')), f"Minimum of rating '{label}'")
        except (KeyError, TypeError):
            raise ConfigurationError(f"Rating band is missing a label: {raw!r}")
        maximum = raw.get('maxScore', raw.get('max'))
        parsed.append((label, minimum, None if maximum in (None, '') else _number(maximum, f"Maximum of rating '{label}'")))

    parsed.sort(key=lambda item: item[1], reverse=True)
    bands = []
    upper = WEIGHT_TOTAL
    for label, minimum, maximum in parsed:
        bands.append(RatingBand(label, minimum, upper if maximum is None else maximum))
        upper = minimum

    ascending = sorted(bands, key=lambda b: b.min_score)
    if ascending[0].min_score > 0:
        warnings.append(ConfigurationWarning(
            'rating_gap', f"Rating scale does not cover 0-{ascending[0].min_score:g}", ascending[0].label))
    for lower, higher in zip(ascending, ascending[1:]):
        if higher.min_score > lower.max_score:
            warnings.append(ConfigurationWarning(
                'rating_gap', f"Rating scale has a gap between {lower.max_score:g} and {higher.min_score:g}",
                higher.label))
        elif higher.min_score < lower.max_score:
            warnings.append(ConfigurationWarning(
                'rating_overlap', f"Rating bands '{lower.label}' and '{higher.label}' overlap",
                higher.label))
    if ascending[-1].max_score < WEIGHT_TOTAL:
        warnings.append(ConfigurationWarning(
            'rating_gap', f"Rating scale does not cover {ascending[-1].max_score:g}-100", ascending[-1].label))
    return RatingScale(tuple(bands))


def load_action_catalogue(action_types=None, training_keywords=None, warning_keywords=None):
    types = {}
    for action, action_type in (action_types or {}).items():
        action_type = str(action_type).strip().lower()
        if action_type not in ACTION_TYPES:
            raise ConfigurationError(f"Action '{action}' has an unknown action type: {action_type!r}")
        types[str(action)] = action_type
    return ActionCatalogue(
        types=types,
        training_keywords=tuple(k.lower() for k in (training_keywords or ('training',))),
        warning_keywords=tuple(k.lower() for k in (warning_keywords or ('warning',))),
    )
