# ==============================================================================
# fieldkpi/engine/scoring.py
# ------------------------------------------------------------------------------
# Weighted multi-metric scoring: threshold bands -> per-metric sub-scores ->
# aggregate KPI score (0-100) -> rating label.
# Pure functions of (record, definitions); no state, no I/O.
# ==============================================================================

from collections.abc import Mapping
from dataclasses import dataclass

from .definitions import WEIGHT_TOTAL


@dataclass(frozen=True)
class MetricScore:
    metric_key: str
    value: float
    score: float
    weight: float
    band_label: str = None
    matched: bool = True

    def to_dict(self):
        return {
            'metric': self.metric_key, 'value': self.value, 'score': self.score,
            'weight': self.weight, 'band': self.band_label, 'matched': self.matched,
        }


@dataclass(frozen=True)
class ScoreCard:
    aggregate_score: float
    rating: str
    breakdown: tuple
    warnings: tuple = ()

    def scores_by_metric(self):
        return {item.metric_key: item.score for item in self.breakdown}


def score_metric(definition, value):
    """
    Scores one metric: the first band (in declared order) whose operator holds
    for `value` wins, and its score is capped at the metric's weight.
    """
    for band in definition.thresholds:
        if band.matches(value):
            return MetricScore(definition.metric_key, value, min(band.score, definition.weight),
                               definition.weight, band.label, True)
    return MetricScore(definition.metric_key, value, 0.0, definition.weight, None, False)


def score(record, metric_definitions, rating_scale):
    """
    Computes the KPI score card for a record.

    Args:
        record: A PerformanceRecord or a plain mapping of metric key -> value.
        metric_definitions (iterable): MetricDefinitions; inactive ones are ignored entirely.
        rating_scale (RatingScale): Ordered rating bands.

    Returns:
        ScoreCard: Aggregate score (clamped to 0-100, rounded to 2 decimals),
        rating, per-metric breakdown and warnings.
    """
    values = record if isinstance(record, Mapping) else record.values
    breakdown = []
    warnings = []
    for definition in metric_definitions:
        if not definition.is_active:
            continue
        value = values.get(definition.metric_key)
        if value is None:
            value = 0.0
            warnings.append(f"No value for metric '{definition.metric_key}'; scored as 0")
        item = score_metric(definition, value)
        if not item.matched:
            warnings.append(f"Metric '{definition.metric_key}' value {value:g} matched no threshold band; contributes 0")
        breakdown.append(item)

    total = sum(item.score for item in breakdown)
    aggregate = round(min(max(total, 0.0), WEIGHT_TOTAL), 2)
    rating, problem = rating_scale.rate(aggregate)
    if problem:
        warnings.append(problem)
    return ScoreCard(aggregate, rating, tuple(breakdown), tuple(warnings))
