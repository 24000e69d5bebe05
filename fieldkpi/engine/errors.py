# ==============================================================================
# fieldkpi/engine/errors.py
# ------------------------------------------------------------------------------
# Error taxonomy for the KPI engine.
# Recoverable problems are plain data objects collected into results; only
# fatal conditions are raised as exceptions.
# ==============================================================================

from dataclasses import dataclass, field


class KPIEngineError(Exception):
    """Base class for fatal engine errors."""


class ConfigurationError(KPIEngineError):
    """Configuration cannot be read at all (unknown operator, bad weight, ...)."""


class ConditionSyntaxError(KPIEngineError):
    """A trigger condition could not be parsed into an expression tree."""


class ConditionEvaluationError(KPIEngineError):
    """A parsed condition references a value the record does not carry."""


class BatchCancelled(KPIEngineError):
    """Raised when a batch run is cancelled before it completes."""


@dataclass(frozen=True)
class RowError:
    """A single input row that could not be normalized."""
    row_index: int
    reason: str
    identifier: str = None

    def to_dict(self):
        return {'row': self.row_index, 'reason': self.reason, 'identifier': self.identifier}


@dataclass(frozen=True)
class ConfigurationWarning:
    """A configuration problem that does not block evaluation."""
    code: str
    message: str
    subject: str = None

    def to_dict(self):
        return {'code': self.code, 'message': self.message, 'subject': self.subject}


@dataclass(frozen=True)
class UnmatchedIdentity:
    """A row whose employee could not be resolved to a user."""
    row_index: int
    name: str = None
    email: str = None
    employee_id: str = None

    def describe(self):
        parts = [p for p in (self.employee_id, self.email, self.name) if p]
        return f"Unmatched identity for row {self.row_index}: {' / '.join(parts) or 'no identity columns'}"


@dataclass(frozen=True)
class CommitConflict:
    """An assignment for (user, period, action) already exists."""
    user_id: int
    period: str
    action: str
    existing_id: int = None
    status: str = field(default='already_applied')

    def to_dict(self):
        return {
            'userId': self.user_id, 'period': self.period, 'action': self.action,
            'existingId': self.existing_id, 'status': self.status,
        }
