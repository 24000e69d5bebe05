# ==============================================================================
# fieldkpi/main/utils.py
# ------------------------------------------------------------------------------
# Response envelope, error handling and request parsing shared by the API routes.
# ==============================================================================

import os
from datetime import datetime
from functools import wraps
from io import BytesIO

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from fieldkpi import db
from fieldkpi.engine.errors import ConfigurationError
from fieldkpi.engine.validator import read_upload
from fieldkpi.main.forms import KPIUploadForm


def api_response(data=None, message='', success=True, status=200):
    """Wraps a payload in the dashboard's {success, data, message} envelope."""
    return jsonify({'success': success, 'data': data, 'message': message}), status


def api_error(message, status=400, data=None):
    return api_response(data=data, message=message, success=False, status=status)


def handle_api_errors(f):
    """Turns configuration, storage and unexpected failures into 500 responses after a rollback."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ConfigurationError as e:
            db.session.rollback()
            current_app.logger.error(f"KPI configuration is invalid: {e}", exc_info=True)
            return api_error(f'KPI configuration is invalid: {e}', 500)
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Database operation failed: {e}", exc_info=True)
            return api_error('A database error occurred. Please check the server log.', 500)
        except HTTPException:
            raise
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Unexpected error in {request.path}: {e}", exc_info=True)
            return api_error('An unexpected error occurred. Please check the server log.', 500)
    return decorated_function


def allowed_file(filename):
    """Checks the upload's extension against the app config."""
    return '.' in filename and \
           os.path.splitext(filename)[1].lower() in current_app.config['ALLOWED_EXTENSIONS']


def request_payload(key):
    """
    Reads a list from a JSON body, either bare or under `key`.
    Returns None when the body has no such list.
    """
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        payload = payload.get(key)
    return payload if isinstance(payload, list) else None


def updated_by():
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and payload.get('updatedBy'):
        return str(payload['updatedBy'])
    return request.headers.get('X-User') or 'admin'


def rows_from_request():
    """
    Extracts upload rows from either a JSON body `{rows, period}` or a
    multipart form carrying `excelFile` and an optional `period`.

    Returns:
        tuple: (rows, period, upload, errors) where `upload` is
               (filename, raw bytes) for file uploads and None for JSON.
    """
    if request.is_json:
        payload = request.get_json(silent=True) or {}
        rows = payload.get('rows') if isinstance(payload, dict) else None
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            return None, None, None, ['Request body must contain "rows": a list of objects']
        if not rows:
            return None, None, None, ['No data rows to evaluate']
        return rows, payload.get('period') or None, None, []

    form = KPIUploadForm()
    if not form.validate_on_submit():
        return None, None, None, [message for messages in form.errors.values() for message in messages]

    upload = form.excelFile.data
    filename = secure_filename(upload.filename)
    if not allowed_file(filename):
        accepted = ' or '.join(sorted(current_app.config['ALLOWED_EXTENSIONS']))
        return None, None, None, [f'Only {accepted} files are accepted']
    content = upload.read()
    rows, errors = read_upload(BytesIO(content), filename)
    return rows, form.period.data or None, (filename, content), errors


def archive_name(filename):
    """Timestamped name under which a committed upload is recorded and archived."""
    return f"{datetime.utcnow():%Y%m%d%H%M%S}_{filename}"


def archive_upload(stored_name, content):
    """Keeps a copy of a committed upload in the upload folder."""
    os.makedirs(current_app.config['UPLOAD_FOLDER'], exist_ok=True)
    with open(os.path.join(current_app.config['UPLOAD_FOLDER'], stored_name), 'wb') as f:
        f.write(content)
