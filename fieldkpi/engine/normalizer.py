# ==============================================================================
# fieldkpi/engine/normalizer.py
# ------------------------------------------------------------------------------
# Turns raw upload rows into PerformanceRecords: one numeric percentage per
# tracked metric, a period, and a resolved (or explicitly unmatched) identity.
# Identity lookups go through an injected resolver; nothing here touches the
# database.
# ==============================================================================

import logging
from dataclasses import dataclass, field

import pandas as pd

from .errors import RowError, UnmatchedIdentity
from .schema import (DEFAULT_SENTINELS, IDENTITY_COLUMNS, METRIC_COLUMNS, METRIC_COUNT_COLUMNS,
                     METRIC_KEYS, PERIOD_COLUMNS, TOTAL_CASES_COLUMNS, find_column)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceRecord:
    row_index: int
    employee_identifier: str
    period: str
    values: dict
    name: str = None
    email: str = None
    employee_id: str = None
    user_id: object = None
    total_cases: float = None
    warnings: tuple = ()
    raw: dict = field(default_factory=dict, compare=False)

    @property
    def matched(self):
        return self.user_id is not None


class StaticIdentityResolver:
    """
    In-memory resolver backed by plain dictionaries, for running the engine
    without a database. The app and the CLI use SqlIdentityResolver.
    """

    def __init__(self, by_employee_id=None, by_email=None, by_name=None):
        self.by_employee_id = dict(by_employee_id or {})
        self.by_email = {k.lower(): v for k, v in (by_email or {}).items()}
        self.by_name = {k.lower(): v for k, v in (by_name or {}).items()}

    def resolve(self, employee_id=None, email=None, name=None):
        if employee_id and employee_id in self.by_employee_id:
            return self.by_employee_id[employee_id]
        if email and email.lower() in self.by_email:
            return self.by_email[email.lower()]
        if name and name.lower() in self.by_name:
            return self.by_name[name.lower()]
        return None


# --- Helper Functions ---

def _blank(value):
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip() or value.strip().lower() == 'nan'
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _text(value):
    if _blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_percentage(value):
    """
    Coerces a spreadsheet cell to a float. Accepts numbers and strings like
    '95.5', '95.5%' or '1,234'. Returns None when the cell is blank or not a number.
    """
    if _blank(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).strip().replace(',', '').rstrip('%').strip()
    try:
        return float(cleaned)
    except ValueError:
        return None


def format_period(value):
    """Normalizes a 'Month' cell; Excel dates become 'Oct-25' style labels."""
    if _blank(value):
        return None
    if hasattr(value, 'strftime'):
        return value.strftime('%b-%y')
    return _text(value)


def detect_period(rows):
    """Returns the first non-blank 'Month' value in the batch, or None."""
    for row in rows:
        column = find_column(row.keys(), PERIOD_COLUMNS)
        if column and not _blank(row.get(column)):
            return format_period(row[column])
    return None


def _metric_value(row, metric_key, total_cases):
    """Returns (value, how) where how is 'percent', 'derived', 'unparseable' or 'missing'."""
    column = find_column(row.keys(), METRIC_COLUMNS[metric_key])
    if column is not None and not _blank(row.get(column)):
        value = parse_percentage(row[column])
        return (value, 'percent') if value is not None else (None, 'unparseable')

    count_column = find_column(row.keys(), METRIC_COUNT_COLUMNS[metric_key])
    if count_column is not None and not _blank(row.get(count_column)):
        count = parse_percentage(row[count_column])
        if count is not None and total_cases:
            return round(count / total_cases * 100, 2), 'derived'
        return None, 'unparseable'
    return None, 'missing'


# --- Main Normalization Functions ---

def normalize_row(row, row_index, resolver=None, period=None, batch_period=None, sentinels=None):
    """
    Normalizes a single raw row.

    Args:
        row (dict): Column header -> cell value.
        row_index (int): Spreadsheet row number used in error reports.
        resolver: Object with `resolve(employee_id, email, name)`; None means nobody matches.
        period (str): Explicit period; overrides the row's own 'Month'.
        batch_period (str): Period auto-detected for the batch, used when the row has none.
        sentinels (dict): Per-metric default for missing/unparseable values.

    Returns:
        tuple: (PerformanceRecord, None) on success or (None, RowError) if the row is rejected.
    """
    sentinels = {**DEFAULT_SENTINELS, **(sentinels or {})}

    name = _text(row.get(find_column(row.keys(), IDENTITY_COLUMNS['name'])))
    employee_id = _text(row.get(find_column(row.keys(), IDENTITY_COLUMNS['employee_id'])))
    email = _text(row.get(find_column(row.keys(), IDENTITY_COLUMNS['email'])))
    identifier = employee_id or email or name
    if identifier is None:
        return None, RowError(row_index, 'Row has no employee name, employee ID or email')

    row_period = format_period(row.get(find_column(row.keys(), PERIOD_COLUMNS)))
    resolved_period = period or row_period or batch_period
    if not resolved_period:
        return None, RowError(row_index, 'Period not found; include a "Month" column (e.g. Oct-25)', identifier)

    total_cases = parse_percentage(row.get(find_column(row.keys(), TOTAL_CASES_COLUMNS)))

    values = {}
    warnings = []
    seen_any = False
    for key in METRIC_KEYS:
        value, how = _metric_value(row, key, total_cases)
        if how != 'missing':
            seen_any = True
        if value is None:
            value = float(sentinels[key])
            reason = 'is not a number' if how == 'unparseable' else 'is missing'
            warnings.append(f"Metric '{key}' {reason}; defaulted to {value:g}")
        values[key] = value

    if not seen_any:
        return None, RowError(row_index, 'Row has none of the KPI metric columns', identifier)

    user_id = resolver.resolve(employee_id=employee_id, email=email, name=name) if resolver else None
    if user_id is None:
        warnings.append(UnmatchedIdentity(row_index, name, email, employee_id).describe())

    logger.debug(f"Row {row_index} ({identifier}, {resolved_period}) -> {values} matched={user_id is not None}")
    return PerformanceRecord(
        row_index=row_index, employee_identifier=identifier, period=resolved_period, values=values,
        name=name, email=email, employee_id=employee_id, user_id=user_id, total_cases=total_cases,
        warnings=tuple(warnings), raw=dict(row),
    ), None


def normalize_rows(rows, resolver=None, period=None, sentinels=None, first_row_number=2):
    """
    Normalizes a batch of rows. Rejected rows are reported, never raised.

    Returns:
        tuple: (records, row_errors, period) where period is the explicit or
        auto-detected batch period.
    """
    rows = list(rows)
    batch_period = period or detect_period(rows)
    records, errors = [], []
    for offset, row in enumerate(rows):
        record, error = normalize_row(row, offset + first_row_number, resolver, period, batch_period, sentinels)
        if error is not None:
            logger.warning(f"SKIPPING Row {error.row_index}: {error.reason}")
            errors.append(error)
        else:
            records.append(record)
    return records, errors, batch_period
