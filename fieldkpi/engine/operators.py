# ==============================================================================
# fieldkpi/engine/operators.py
# ------------------------------------------------------------------------------
# Comparison operators shared by threshold bands and trigger conditions.
# ==============================================================================

from enum import Enum

from .errors import ConfigurationError

# Tolerance for EQ so that 0.1 + 0.2 style float noise does not break "== 0.3".
EQ_TOLERANCE = 1e-9


class Operator(Enum):
    GTE = '>='
    GT = '>'
    LTE = '<='
    LT = '<'
    EQ = '=='

    @classmethod
    def parse(cls, value):
        """Accepts an Operator, its symbol ('>=') or its name ('GTE')."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        text = _ALIASES.get(text, text)
        for op in cls:
            if text == op.value or text.upper() == op.name:
                return op
        raise ConfigurationError(f"Unknown comparison operator: {value!r}")

    def apply(self, left, right):
        if self is Operator.GTE:
            return left >= right
        if self is Operator.GT:
            return left > right
        if self is Operator.LTE:
            return left <= right
        if self is Operator.LT:
            return left < right
        return abs(left - right) <= EQ_TOLERANCE

    @property
    def is_lower_bound(self):
        return self in (Operator.GTE, Operator.GT)

    @property
    def is_upper_bound(self):
        return self in (Operator.LTE, Operator.LT)


_ALIASES = {'=': '==', '≥': '>=', '≤': '<=', '=>': '>=', '=<': '<='}
