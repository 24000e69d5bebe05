# ==============================================================================
# fieldkpi/main/routes.py
# ------------------------------------------------------------------------------
# JSON API consumed by the KPI admin dashboard: configuration management and
# the preview/commit upload flow.
# ==============================================================================

import json
from io import BytesIO

import pandas as pd
from flask import Response, current_app, send_file

from fieldkpi import db
from fieldkpi.cli import due_days_from_config
from fieldkpi.engine import commit_upload, preview_upload
from fieldkpi.engine.errors import ConfigurationError
from fieldkpi.engine.schema import TEMPLATE_COLUMNS
from fieldkpi.main import bp
from fieldkpi.main.utils import (api_error, api_response, archive_name, archive_upload, handle_api_errors,
                                 request_payload, rows_from_request, updated_by)
from fieldkpi.models import Employee
from fieldkpi.notifications import LoggingDispatcher
from fieldkpi.repository import SqlAlchemyRepository, SqlIdentityResolver

TEMPLATE_SAMPLE_ROW = {
    'Month': 'Jan-25', 'FE': 'Sample Executive', 'Employee ID': 'EMP001', 'Email': 'sample@example.com',
    'Total Case Done': 100, 'IN TAT': 96, 'TAT %': 96, 'Major Negative': 1, 'Major Negative %': 1,
    'Negative': 10, 'Negative %': 10, 'Quality Concern': 0, 'Quality Concern % Age': 0,
    'Insuff': 0, 'Insuff %': 0.5, 'Neighbor Check': 92, 'Neighbor Check % Age': 92,
    'Online': 95, 'Online % Age': 95,
}

# --- Helper Functions ---

def _configuration_payload(repository):
    """Stored configuration plus the warnings it produces when loaded."""
    raw = repository.raw_config()
    try:
        warnings = [w.to_dict() for w in repository.load_config().warnings]
    except ConfigurationError as e:
        warnings = [{'code': 'invalid_configuration', 'message': str(e), 'subject': None}]
    return {
        'metrics': raw['metrics'],
        'triggers': raw['triggers'],
        'ratings': raw['ratings'],
        'actionTypes': raw['actionTypes'],
        'warnings': warnings,
    }


def _save_section(key, replace):
    """Validates and stores one configuration section from the request body."""
    items = request_payload(key)
    if items is None:
        return api_error(f'Request body must contain "{key}": a list')
    try:
        warnings = replace(items)
    except ConfigurationError as e:
        db.session.rollback()
        current_app.logger.warning(f"Rejected {key} update: {e}")
        return api_error(str(e))
    db.session.commit()
    current_app.logger.info(f"KPI {key} updated ({len(items)} entries, {len(warnings)} warnings)")
    data = _configuration_payload(SqlAlchemyRepository())
    message = f'{key.capitalize()} saved'
    if warnings:
        message += f' with {len(warnings)} warning(s)'
    return api_response(data, message)

# --- Configuration Routes ---

@bp.route('/api/kpi-configuration', methods=['GET'])
@handle_api_errors
def get_configuration():
    return api_response(_configuration_payload(SqlAlchemyRepository()), 'KPI configuration loaded')


@bp.route('/api/kpi-configuration/metrics', methods=['PUT'])
@handle_api_errors
def update_metrics():
    repository = SqlAlchemyRepository()
    user = updated_by()
    return _save_section('metrics', lambda items: repository.replace_metrics(items, user))


@bp.route('/api/kpi-configuration/triggers', methods=['PUT'])
@handle_api_errors
def update_triggers():
    repository = SqlAlchemyRepository()
    user = updated_by()
    return _save_section('triggers', lambda items: repository.replace_triggers(items, user))


@bp.route('/api/kpi-configuration/ratings', methods=['PUT'])
@handle_api_errors
def update_ratings():
    return _save_section('ratings', SqlAlchemyRepository().replace_ratings)


@bp.route('/api/kpi-configuration/reset', methods=['POST'])
@handle_api_errors
def reset_configuration():
    """Restores the default metrics, triggers and business settings."""
    repository = SqlAlchemyRepository()
    repository.reset_defaults(updated_by())
    db.session.commit()
    current_app.logger.info('KPI configuration reset to defaults')
    return api_response(_configuration_payload(repository), 'KPI configuration reset to defaults')


@bp.route('/api/kpi-configuration/export', methods=['GET'])
@handle_api_errors
def export_configuration():
    """Downloads the stored configuration as a JSON file."""
    body = json.dumps(SqlAlchemyRepository().raw_config(), indent=2, ensure_ascii=False)
    return Response(body, mimetype='application/json',
                    headers={'Content-Disposition': 'attachment; filename=kpi-configuration.json'})

# --- Upload Routes ---

@bp.route('/api/kpi-triggers/preview', methods=['POST'])
@handle_api_errors
def preview_triggers():
    """Scores the uploaded rows without writing or sending anything."""
    rows, period, _, errors = rows_from_request()
    if errors:
        return api_error('; '.join(errors))

    evaluation = preview_upload(rows, SqlAlchemyRepository(), SqlIdentityResolver(), period=period)
    return api_response(evaluation.to_dict(),
                        f'Evaluated {len(evaluation.results)} records for {evaluation.period}')


@bp.route('/api/kpi-triggers/commit', methods=['POST'])
@handle_api_errors
def commit_triggers():
    """Scores the uploaded rows again and persists results, assignments and notifications."""
    rows, period, upload, errors = rows_from_request()
    if errors:
        return api_error('; '.join(errors))

    filename = archive_name(upload[0]) if upload else 'api-upload'
    report = commit_upload(
        rows, SqlAlchemyRepository(), SqlIdentityResolver(), LoggingDispatcher(), period=period,
        filename=filename, due_days=due_days_from_config(current_app.config),
    )
    if upload:
        archive_upload(filename, upload[1])
    return api_response(report.to_dict(),
                        f'Committed {report.results_saved} results, created {report.assignments_created} '
                        f'assignments ({len(report.conflicts)} already applied)')


@bp.route('/api/kpi-triggers/template', methods=['GET'])
def download_template():
    """An .xlsx upload template with every recognised column and one sample row."""
    buffer = BytesIO()
    pd.DataFrame([TEMPLATE_SAMPLE_ROW], columns=TEMPLATE_COLUMNS).to_excel(buffer, index=False, engine='openpyxl')
    buffer.seek(0)
    return send_file(buffer, as_attachment=True, download_name='kpi_upload_template.xlsx',
                     mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')


@bp.route('/api/kpi-triggers/history/<int:user_id>', methods=['GET'])
@handle_api_errors
def user_history(user_id):
    """Persisted results and assignments for one employee, newest first."""
    employee = db.session.get(Employee, user_id)
    if employee is None:
        return api_error('Employee not found', 404)
    data = SqlAlchemyRepository().history_for_user(user_id)
    data['employee'] = {'id': employee.id, 'employeeId': employee.employee_id,
                        'name': employee.name, 'email': employee.email}
    return api_response(data, f"{len(data['results'])} results for {employee.name}")
