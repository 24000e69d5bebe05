# ==============================================================================
# fieldkpi/engine/schema.py
# ------------------------------------------------------------------------------
# Defines the expected structure of an uploaded KPI sheet.
# This schema is the single source of truth for the validator and normalizer.
# ==============================================================================

# Canonical metric keys, in display order.
METRIC_KEYS = [
    'tat', 'major_negativity', 'quality_concern', 'neighbor_check',
    'general_negativity', 'app_usage', 'insufficiency',
]

# Human-readable metric names used by the admin screens and by free-text
# trigger conditions. Several spellings map onto the same key.
METRIC_NAMES = {
    'tat': 'tat',
    'turn around time': 'tat',
    'major negativity': 'major_negativity',
    'major negative': 'major_negativity',
    'major neg': 'major_negativity',
    'quality concern': 'quality_concern',
    'quality': 'quality_concern',
    'neighbor check': 'neighbor_check',
    'neighbour check': 'neighbor_check',
    'general negativity': 'general_negativity',
    'negativity': 'general_negativity',
    'negative': 'general_negativity',
    'app usage': 'app_usage',
    'cases done on app': 'app_usage',
    'online': 'app_usage',
    'insufficiency': 'insufficiency',
    'insuff': 'insufficiency',
    'overall kpi score': 'kpi_score',
    'kpi score': 'kpi_score',
    'kpi_score': 'kpi_score',
}

# Uploaded column headers, per metric, for the percentage value.
METRIC_COLUMNS = {
    'tat': ['TAT %', 'TAT', 'TAT Percentage'],
    'major_negativity': ['Major Negative %', 'Major Negativity %', 'Major Neg %'],
    'quality_concern': ['Quality Concern % Age', 'Quality Concern %', 'Quality %'],
    'neighbor_check': ['Neighbor Check % Age', 'Neighbor Check %', 'Neighbour Check %'],
    'general_negativity': ['Negative %', 'Negativity %', 'General Negativity %'],
    'app_usage': ['Online % Age', 'App Usage %', 'Online %'],
    'insufficiency': ['Insuff %', 'Insufficiency %'],
}

# Raw count columns; used to derive a percentage when the % column is absent.
METRIC_COUNT_COLUMNS = {
    'tat': ['IN TAT'],
    'major_negativity': ['Major Negative'],
    'quality_concern': ['Quality Concern'],
    'neighbor_check': ['Neighbor Check'],
    'general_negativity': ['Negative'],
    'app_usage': ['Online'],
    'insufficiency': ['Insuff'],
}

TOTAL_CASES_COLUMNS = ['Total Case Done', 'Total Cases', 'Cases Done']

IDENTITY_COLUMNS = {
    'name': ['FE', 'fe', 'Field Executive', 'Name'],
    'employee_id': ['Employee ID', 'EmployeeId', 'Emp ID'],
    'email': ['Email', 'email', 'E-mail'],
}

PERIOD_COLUMNS = ['Month', 'month', 'MONTH']

# Value used when a metric is missing or unparseable in a row.
DEFAULT_SENTINELS = {key: 0.0 for key in METRIC_KEYS}

# Columns the upload validator insists on: one alias of each must be present.
REQUIRED_UPLOAD_FIELDS = {
    'name': IDENTITY_COLUMNS['name'],
    'tat': METRIC_COLUMNS['tat'],
    'major_negativity': METRIC_COLUMNS['major_negativity'],
    'general_negativity': METRIC_COLUMNS['general_negativity'],
}

TEMPLATE_COLUMNS = [
    'Month', 'FE', 'Employee ID', 'Email', 'Total Case Done',
    'IN TAT', 'TAT %', 'Major Negative', 'Major Negative %',
    'Negative', 'Negative %', 'Quality Concern', 'Quality Concern % Age',
    'Insuff', 'Insuff %', 'Neighbor Check', 'Neighbor Check % Age',
    'Online', 'Online % Age',
]


def metric_key_for(name):
    """Maps a display name or key ('Quality Concern', 'quality_concern') to a metric key."""
    if name is None:
        return None
    cleaned = str(name).strip().lower().replace('%', '').strip()
    if cleaned in METRIC_KEYS:
        return cleaned
    return METRIC_NAMES.get(cleaned) or METRIC_NAMES.get(cleaned.replace('_', ' '))


def find_column(columns, candidates):
    """Returns the first candidate header present in `columns`, or None."""
    for candidate in candidates:
        if candidate in columns:
            return candidate
    return None
