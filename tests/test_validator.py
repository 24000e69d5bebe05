# tests/test_validator.py

from io import BytesIO, StringIO

import pandas as pd

from fieldkpi.engine.validator import read_upload, validate_frame

UPLOAD_CSV = """Month,FE,Employee ID,TAT %,Major Negative %,Quality Concern % Age,Negative %,Online % Age,Insuff %
Jan-25,Asha Rao,E1,96,1.0,0,10,95,0.5
Jan-25,Vikram Singh,E2,88,2.2,,18,82,1.8
,,,,,,,,
"""


def test_csv_rows_are_plain_dicts_with_none_for_blank_cells():
    rows, errors = validate_frame(pd.read_csv(StringIO(UPLOAD_CSV)))

    assert errors == []
    assert len(rows) == 2
    assert rows[0]['FE'] == 'Asha Rao'
    assert rows[1]['Quality Concern % Age'] is None


def test_header_whitespace_is_stripped():
    df = pd.read_csv(StringIO(' FE ,TAT % ,Major Negative %,Negative %\nAsha Rao,96,1,10\n'))
    rows, errors = validate_frame(df)
    assert errors == []
    assert rows[0]['TAT %'] == 96


def test_missing_required_columns_are_listed():
    rows, errors = validate_frame(pd.read_csv(StringIO('FE,TAT %\nAsha Rao,96\n')))
    assert rows is None
    assert errors == ['Missing required columns: Major Negative %, Negative %']


def test_empty_sheet_is_rejected():
    rows, errors = validate_frame(pd.DataFrame())
    assert rows is None
    assert errors == ['Excel file is empty or invalid format']


def test_read_upload_picks_parser_from_filename(tmp_path):
    path = tmp_path / 'kpi.csv'
    path.write_text(UPLOAD_CSV)
    rows, errors = read_upload(str(path))
    assert errors == []
    assert [row['Employee ID'] for row in rows] == ['E1', 'E2']


def test_read_upload_of_excel_stream():
    buffer = BytesIO()
    pd.read_csv(StringIO(UPLOAD_CSV)).dropna(how='all').to_excel(buffer, index=False, engine='openpyxl')
    buffer.seek(0)
    rows, errors = read_upload(buffer, 'kpi.xlsx')
    assert errors == []
    assert rows[1]['TAT %'] == 88


def test_unreadable_file_reports_an_error():
    rows, errors = read_upload(BytesIO(b'not a spreadsheet'), 'kpi.xlsx')
    assert rows is None
    assert errors[0].startswith('The file is not a readable spreadsheet')


def test_legacy_xls_is_rejected_before_parsing():
    rows, errors = read_upload(BytesIO(b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1'), 'kpi.xls')
    assert rows is None
    assert errors == ["Unsupported file type '.xls'. Upload an .xlsx or .csv file"]
