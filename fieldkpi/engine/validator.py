# ==============================================================================
# fieldkpi/engine/validator.py
# ------------------------------------------------------------------------------
# Reads an uploaded KPI sheet (xlsx/csv) and checks its structure.
# ==============================================================================

import os

import pandas as pd

from .schema import REQUIRED_UPLOAD_FIELDS, find_column

SUPPORTED_EXTENSIONS = ('.xlsx', '.csv')


def read_upload(source, filename=None):
    """
    Reads the first sheet of an uploaded file and validates its columns.

    Args:
        source (str | file-like): Path or stream of the uploaded file.
        filename (str): Original filename; decides between CSV and Excel parsing.

    Returns:
        tuple: A tuple containing:
            - list: One dict per data row (column header -> cell), or None on failure.
            - list: Human-readable error messages.
    """
    name = filename or (source if isinstance(source, str) else getattr(source, 'filename', '') or '')
    extension = os.path.splitext(str(name))[1].lower()
    if extension and extension not in SUPPORTED_EXTENSIONS:
        return None, [f"Unsupported file type '{extension}'. Upload an .xlsx or .csv file"]

    try:
        if extension == '.csv':
            df = pd.read_csv(source)
        else:
            df = pd.read_excel(source, sheet_name=0)
    except Exception as e:
        return None, [f"The file is not a readable spreadsheet. Technical error: {e}"]

    return validate_frame(df)


def validate_frame(df):
    """Checks a parsed DataFrame for required columns and returns (rows, errors)."""
    if df is None or df.empty:
        return None, ['Excel file is empty or invalid format']

    df = df.rename(columns=lambda column: str(column).strip())
    df = df.dropna(how='all')
    columns = list(df.columns)

    missing = [candidates[0] for candidates in REQUIRED_UPLOAD_FIELDS.values()
               if find_column(columns, candidates) is None]
    if missing:
        return None, [f"Missing required columns: {', '.join(missing)}"]

    # NaN cells become None so the rows are plain, JSON-friendly dicts.
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient='records'), []
