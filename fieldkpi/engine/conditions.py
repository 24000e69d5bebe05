# ==============================================================================
# fieldkpi/engine/conditions.py
# ------------------------------------------------------------------------------
# Typed boolean expressions for condition-based trigger rules.
#
# Administrators historically typed conditions as free text, e.g.
#     "Major Negativity > 0% AND General Negativity < 25%"
# Those strings are parsed once, when configuration is loaded, into a small
# tree of Comparison / AllOf / AnyOf nodes that is evaluated directly against
# a record's normalized metric values. JSON trees are accepted too:
#     {"all": [{"metric": "major_negativity", "operator": ">", "value": 0}, ...]}
# ==============================================================================

import re
from dataclasses import dataclass

from .errors import ConditionEvaluationError, ConditionSyntaxError, ConfigurationError
from .operators import Operator
from .schema import metric_key_for

_COMPARISON_RE = re.compile(
    r"^\s*(?P<name>[A-Za-z][A-Za-z0-9 _'&-]*?)\s*"
    r"(?P<op>>=|<=|==|=>|=<|=|>|<|≥|≤)\s*"
    r"(?P<value>-?\d+(?:\.\d+)?)\s*%?\s*$"
)
_OR_RE = re.compile(r'\s+OR\s+|\s*\|\|\s*', re.IGNORECASE)
_AND_RE = re.compile(r'\s+AND\s+|\s*&&\s*', re.IGNORECASE)


@dataclass(frozen=True)
class Comparison:
    metric: str
    operator: Operator
    value: float

    def evaluate(self, values):
        if self.metric not in values:
            raise ConditionEvaluationError(f"Record has no value for '{self.metric}'")
        return self.operator.apply(values[self.metric], self.value)

    def metrics(self):
        return {self.metric}

    def to_dict(self):
        return {'metric': self.metric, 'operator': self.operator.value, 'value': self.value}

    def describe(self):
        return f"{self.metric} {self.operator.value} {self.value:g}"


@dataclass(frozen=True)
class AllOf:
    terms: tuple

    def evaluate(self, values):
        return all(term.evaluate(values) for term in self.terms)

    def metrics(self):
        return set().union(*(term.metrics() for term in self.terms))

    def to_dict(self):
        return {'all': [term.to_dict() for term in self.terms]}

    def describe(self):
        return ' AND '.join(_wrap(term) for term in self.terms)


@dataclass(frozen=True)
class AnyOf:
    terms: tuple

    def evaluate(self, values):
        return any(term.evaluate(values) for term in self.terms)

    def metrics(self):
        return set().union(*(term.metrics() for term in self.terms))

    def to_dict(self):
        return {'any': [term.to_dict() for term in self.terms]}

    def describe(self):
        return ' OR '.join(_wrap(term) for term in self.terms)


def _wrap(term):
    text = term.describe()
    return f"({text})" if isinstance(term, (AllOf, AnyOf)) else text


def parse_condition(condition):
    """
    Builds an expression tree from a free-text string or a JSON-style dict.

    Args:
        condition (str | dict): The stored condition.

    Returns:
        Comparison | AllOf | AnyOf: The parsed expression.

    Raises:
        ConditionSyntaxError: If the condition is empty or malformed.
    """
    if isinstance(condition, (Comparison, AllOf, AnyOf)):
        return condition
    if isinstance(condition, dict):
        return _from_dict(condition)
    if not isinstance(condition, str) or not condition.strip():
        raise ConditionSyntaxError(f"Empty or non-text condition: {condition!r}")
    if '(' in condition or ')' in condition:
        raise ConditionSyntaxError(f"Parentheses are not supported in conditions: '{condition}'")

    alternatives = [part for part in _OR_RE.split(condition.strip())]
    any_terms = []
    for alternative in alternatives:
        all_terms = tuple(_parse_comparison(chunk, condition) for chunk in _AND_RE.split(alternative))
        any_terms.append(all_terms[0] if len(all_terms) == 1 else AllOf(all_terms))
    return any_terms[0] if len(any_terms) == 1 else AnyOf(tuple(any_terms))


def _parse_comparison(text, whole):
    match = _COMPARISON_RE.match(text)
    if not match:
        raise ConditionSyntaxError(f"Cannot parse '{text.strip()}' in condition '{whole}'")
    metric = metric_key_for(match.group('name'))
    if metric is None:
        raise ConditionSyntaxError(f"Unknown metric '{match.group('name').strip()}' in condition '{whole}'")
    try:
        operator = Operator.parse(match.group('op'))
    except ConfigurationError as e:
        raise ConditionSyntaxError(str(e)) from e
    return Comparison(metric, operator, float(match.group('value')))


def _from_dict(node):
    for key, node_type in (('all', AllOf), ('any', AnyOf)):
        if key in node:
            children = node[key]
            if not isinstance(children, (list, tuple)) or not children:
                raise ConditionSyntaxError(f"'{key}' needs a non-empty list of terms")
            return node_type(tuple(_from_dict(child) if isinstance(child, dict) else parse_condition(child)
                                   for child in children))
    try:
        metric = metric_key_for(node['metric'])
        operator = Operator.parse(node['operator'])
        value = float(node['value'])
    except KeyError as e:
        raise ConditionSyntaxError(f"Condition term is missing {e}") from e
    except (ConfigurationError, TypeError, ValueError) as e:
        raise ConditionSyntaxError(f"Invalid condition term {node!r}: {e}") from e
    if metric is None:
        raise ConditionSyntaxError(f"Unknown metric {node.get('metric')!r} in condition")
    return Comparison(metric, operator, value)
