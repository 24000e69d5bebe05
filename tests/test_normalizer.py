# tests/test_normalizer.py

from datetime import datetime

import pytest

from fieldkpi.engine.normalizer import (StaticIdentityResolver, format_period, normalize_row, normalize_rows,
                                        parse_percentage)

RESOLVER = StaticIdentityResolver(by_employee_id={'E1': 1}, by_email={'Vikram.Singh@example.com': 2},
                                  by_name={'Meera Iyer': 3})


@pytest.mark.parametrize('cell,expected', [
    (95, 95.0), ('95.5', 95.5), ('95.5%', 95.5), (' 1,234 ', 1234.0), ('', None), (None, None),
    (float('nan'), None), ('n/a', None), (True, None),
])
def test_parse_percentage(cell, expected):
    assert parse_percentage(cell) == expected


def test_format_period_turns_dates_into_month_labels():
    assert format_period(datetime(2025, 10, 1)) == 'Oct-25'
    assert format_period('Jan-25') == 'Jan-25'
    assert format_period(None) is None


def test_percentage_strings_are_normalized(make_row):
    record, error = normalize_row(make_row(tat='96%', insuff='0.5 %'), 2, RESOLVER)
    assert error is None
    assert record.values['tat'] == 96.0
    assert record.values['insufficiency'] == 0.5
    assert record.user_id == 1
    assert record.employee_identifier == 'E1'
    assert record.warnings == ()


def test_percentage_derived_from_counts_when_percent_column_absent():
    row = {'Month': 'Jan-25', 'FE': 'Asha Rao', 'Total Case Done': 200, 'IN TAT': 190,
           'Major Negative %': 1, 'Negative %': 10}
    record, _ = normalize_row(row, 2)
    assert record.values['tat'] == 95.0
    assert record.total_cases == 200


def test_missing_metric_defaults_to_sentinel_with_warning(make_row):
    row = make_row()
    del row['Online % Age']
    row['Insuff %'] = 'unknown'
    record, _ = normalize_row(row, 7, RESOLVER, sentinels={'app_usage': 100})

    assert record.values['app_usage'] == 100
    assert record.values['insufficiency'] == 0
    assert "Metric 'app_usage' is missing; defaulted to 100" in record.warnings
    assert "Metric 'insufficiency' is not a number; defaulted to 0" in record.warnings


def test_rows_without_identity_or_metrics_are_rejected(make_row):
    _, error = normalize_row({'Month': 'Jan-25', 'TAT %': 90}, 5)
    assert error.row_index == 5
    assert 'no employee' in error.reason

    _, error = normalize_row({'Month': 'Jan-25', 'FE': 'Asha Rao', 'Remarks': 'ok'}, 6)
    assert 'none of the KPI metric columns' in error.reason
    assert error.identifier == 'Asha Rao'


def test_row_without_any_period_is_rejected(make_row):
    _, error = normalize_row(make_row(month=None), 3)
    assert 'Period not found' in error.reason


def test_identity_resolution_falls_back_to_email_then_name(make_row):
    by_email = dict(make_row(name='V. Singh', employee_id=None), Email='vikram.singh@EXAMPLE.com')
    record, _ = normalize_row(by_email, 2, RESOLVER)
    assert record.user_id == 2

    record, _ = normalize_row(make_row(name='meera iyer', employee_id=None), 3, RESOLVER)
    assert record.user_id == 3


def test_unmatched_row_is_kept_and_flagged(make_row):
    record, error = normalize_row(make_row(name='Nobody', employee_id='X9'), 4, RESOLVER)
    assert error is None
    assert record.matched is False
    assert any(w.startswith('Unmatched identity for row 4') for w in record.warnings)


def test_batch_period_detection_and_override(make_row):
    rows = [make_row(month=None), make_row(name='Vikram Singh', employee_id='E2', month='Feb-25')]

    records, errors, period = normalize_rows(rows, RESOLVER)
    assert period == 'Feb-25'
    assert [r.period for r in records] == ['Feb-25', 'Feb-25']
    assert errors == []

    records, _, period = normalize_rows(rows, RESOLVER, period='Mar-25')
    assert period == 'Mar-25'
    assert {r.period for r in records} == {'Mar-25'}


def test_rejected_rows_are_reported_by_sheet_row_number(make_row):
    rows = [make_row(), {'Month': 'Jan-25'}, make_row(name='Vikram Singh', employee_id='E2')]
    records, errors, _ = normalize_rows(rows, RESOLVER)
    assert len(records) == 2
    assert [e.row_index for e in errors] == [3]
