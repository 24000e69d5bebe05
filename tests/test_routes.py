# tests/test_routes.py

import json
from io import BytesIO

import pandas as pd

from fieldkpi.engine.schema import TEMPLATE_COLUMNS
from fieldkpi.seed import DEFAULT_METRICS

UPLOAD_CSV = b"""Month,FE,Employee ID,TAT %,Major Negative %,Quality Concern % Age,Neighbor Check % Age,Negative %,Online % Age,Insuff %
Jan-25,Asha Rao,E1,96,1.0,0,92,10,95,0.5
Jan-25,Vikram Singh,E2,96,1.0,1.2,92,10,95,0.5
Jan-25,Unknown Person,X9,96,1.0,0,92,10,95,0.5
"""

# --- Configuration API ---

def test_get_configuration_returns_seeded_defaults(client):
    response = client.get('/api/kpi-configuration')
    body = response.get_json()

    assert response.status_code == 200
    assert body['success'] is True
    assert [m['metric'] for m in body['data']['metrics']][:2] == ['TAT', 'Major Negativity']
    assert len(body['data']['triggers']) == 9
    assert body['data']['ratings'][0] == {'label': 'Outstanding', 'minScore': 85}
    assert body['data']['warnings'] == []


def test_update_metrics_reports_weight_warning(client):
    metrics = [dict(m) for m in DEFAULT_METRICS]
    metrics[4]['weightage'] = 20

    response = client.put('/api/kpi-configuration/metrics', json={'metrics': metrics, 'updatedBy': 'ops'})
    body = response.get_json()

    assert response.status_code == 200
    assert 'warning' in body['message']
    assert [w['code'] for w in body['data']['warnings']] == ['weight_sum']
    assert body['data']['metrics'][4]['weightage'] == 20
    assert body['data']['metrics'][0]['updatedBy'] == 'ops'


def test_invalid_metric_update_is_rejected_and_nothing_changes(client):
    response = client.put('/api/kpi-configuration/metrics',
                          json=[{'metric': 'TAT', 'weightage': 20, 'thresholds': [
                              {'operator': '=~', 'value': 95, 'score': 20}]}])
    assert response.status_code == 400
    assert response.get_json()['success'] is False
    assert 'operator' in response.get_json()['message']

    metrics = client.get('/api/kpi-configuration').get_json()['data']['metrics']
    assert len(metrics) == 7


def test_update_requires_a_list(client):
    response = client.put('/api/kpi-configuration/triggers', json={'triggers': 'none'})
    assert response.status_code == 400


def test_update_triggers_keeps_malformed_condition_as_warning(client):
    triggers = [
        {'triggerType': 'score_based', 'condition': 'Overall KPI Score', 'threshold': 0,
         'actions': ['Audit Call'], 'emailRecipients': ['HOD']},
        {'triggerType': 'condition_based', 'condition': 'TAT is bad', 'actions': ['Audit Call'],
         'emailRecipients': ['HOD']},
    ]
    response = client.put('/api/kpi-configuration/triggers', json={'triggers': triggers})
    body = response.get_json()
    assert response.status_code == 200
    assert [w['code'] for w in body['data']['warnings']] == ['malformed_condition']
    assert len(body['data']['triggers']) == 2


def test_update_ratings_with_gap_warns(client):
    ratings = [{'label': 'Good', 'minScore': 60}, {'label': 'Poor', 'minScore': 0, 'maxScore': 50}]
    body = client.put('/api/kpi-configuration/ratings', json={'ratings': ratings}).get_json()
    assert body['success'] is True
    assert body['data']['ratings'] == ratings
    assert [w['code'] for w in body['data']['warnings']] == ['rating_gap']


def test_reset_restores_defaults(client):
    client.put('/api/kpi-configuration/metrics', json={'metrics': DEFAULT_METRICS[:1]})
    body = client.post('/api/kpi-configuration/reset').get_json()
    assert body['success'] is True
    assert len(body['data']['metrics']) == 7
    assert body['data']['warnings'] == []


def test_export_is_a_json_download(client):
    response = client.get('/api/kpi-configuration/export')
    assert response.status_code == 200
    assert 'attachment' in response.headers['Content-Disposition']
    exported = json.loads(response.data)
    assert len(exported['metrics']) == 7
    assert exported['actionTypes']['Warning Letter'] == 'warning'

# --- Upload API ---

def _upload(client, endpoint, filename='kpi.csv', content=UPLOAD_CSV, period=None):
    data = {'excelFile': (BytesIO(content), filename)}
    if period:
        data['period'] = period
    return client.post(endpoint, data=data, content_type='multipart/form-data')


def test_preview_from_file_writes_nothing(client, seeded_app):
    from fieldkpi.models import Assignment, EvaluationRecord, NotificationRecord, UploadBatch

    response = _upload(client, '/api/kpi-triggers/preview')
    data = response.get_json()['data']

    assert response.status_code == 200
    assert data['totalRecords'] == 3
    assert data['matchedUsers'] == 2
    assert [r['kpiScore'] for r in data['previewResults']] == [100, 80, 100]
    assert data['previewResults'][1]['rating'] == 'Excellent'
    assert data['previewResults'][2]['matched'] is False
    with seeded_app.app_context():
        assert UploadBatch.query.count() == 0
        assert EvaluationRecord.query.count() == 0
        assert Assignment.query.count() == 0
        assert NotificationRecord.query.count() == 0


def test_preview_from_json_rows_with_explicit_period(client):
    rows = [{'FE': 'Asha Rao', 'Employee ID': 'E1', 'TAT %': 80, 'Major Negative %': 0, 'Negative %': 5}]
    body = client.post('/api/kpi-triggers/preview', json={'rows': rows, 'period': 'Mar-25'}).get_json()
    assert body['success'] is True
    assert body['data']['period'] == 'Mar-25'
    assert body['data']['previewResults'][0]['userId'] is not None


def test_upload_with_wrong_extension_is_rejected(client):
    response = _upload(client, '/api/kpi-triggers/preview', filename='kpi.txt')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Only .csv or .xlsx files are accepted'


def test_legacy_xls_upload_is_rejected(client):
    response = _upload(client, '/api/kpi-triggers/preview', filename='kpi.xls')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Only .csv or .xlsx files are accepted'


def test_accepted_extensions_come_from_config(client, seeded_app, monkeypatch):
    monkeypatch.setitem(seeded_app.config, 'ALLOWED_EXTENSIONS', {'.csv'})
    response = _upload(client, '/api/kpi-triggers/preview', filename='kpi.xlsx')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Only .csv files are accepted'


def test_upload_missing_required_columns_is_rejected(client):
    response = _upload(client, '/api/kpi-triggers/preview', content=b'FE,TAT %\nAsha Rao,96\n')
    assert response.status_code == 400
    assert 'Missing required columns' in response.get_json()['message']


def test_commit_twice_is_idempotent(client, seeded_app):
    from fieldkpi.models import Assignment, EvaluationRecord, NotificationRecord, UploadBatch

    first = _upload(client, '/api/kpi-triggers/commit').get_json()['data']
    second = _upload(client, '/api/kpi-triggers/commit').get_json()['data']

    assert first['assignmentsCreated'] == 6
    assert first['skippedUnmatched'] == 1
    assert first['notificationsQueued'] == 10
    assert second['assignmentsCreated'] == 0
    assert len(second['alreadyApplied']) == 6
    assert second['notificationsQueued'] == 0
    with seeded_app.app_context():
        assert Assignment.query.count() == 6
        assert NotificationRecord.query.count() == 10
        assert UploadBatch.query.count() == 2
        assert EvaluationRecord.query.count() == 6


def test_history_lists_results_and_assignments(client, seeded_app):
    from fieldkpi.models import Employee

    _upload(client, '/api/kpi-triggers/commit')
    with seeded_app.app_context():
        user_id = Employee.query.filter_by(employee_id='E2').first().id

    body = client.get(f'/api/kpi-triggers/history/{user_id}').get_json()
    assert body['data']['employee']['name'] == 'Vikram Singh'
    assert [r['kpiScore'] for r in body['data']['results']] == [80]
    assert {a['action'] for a in body['data']['assignments']} == {
        'Audit Call', 'Negativity Handling Training Module', "Do's & Don'ts Training Module", 'RCA of complaints'}


def test_history_of_unknown_employee_is_404(client):
    response = client.get('/api/kpi-triggers/history/999')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_template_download_has_every_column(client):
    response = client.get('/api/kpi-triggers/template')
    assert response.status_code == 200
    template = pd.read_excel(BytesIO(response.data))
    assert list(template.columns) == TEMPLATE_COLUMNS
    assert len(template) == 1

# --- Upload archiving and failures ---

def test_committed_upload_is_archived(client, seeded_app, tmp_path):
    seeded_app.config['UPLOAD_FOLDER'] = str(tmp_path)

    response = _upload(client, '/api/kpi-triggers/commit')

    assert response.status_code == 200
    archived = [path.name for path in tmp_path.iterdir()]
    assert len(archived) == 1 and archived[0].endswith('_kpi.csv')


def test_failed_commit_archives_nothing(client, seeded_app, tmp_path):
    from fieldkpi import db
    from fieldkpi.models import AppSetting, UploadBatch

    seeded_app.config['UPLOAD_FOLDER'] = str(tmp_path)
    AppSetting.query.filter_by(key='RATING_SCALE').first().value = '{not json'
    db.session.commit()

    response = _upload(client, '/api/kpi-triggers/commit')

    assert response.status_code == 500
    assert response.get_json()['success'] is False
    assert list(tmp_path.iterdir()) == []
    assert UploadBatch.query.count() == 0


def test_unexpected_error_keeps_the_json_envelope(client, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError('resolver exploded')

    monkeypatch.setattr('fieldkpi.main.routes.preview_upload', broken)
    response = client.post('/api/kpi-triggers/preview', json={'rows': [{'FE': 'Asha Rao'}]})

    assert response.status_code == 500
    assert response.is_json
    assert response.get_json() == {
        'success': False, 'data': None,
        'message': 'An unexpected error occurred. Please check the server log.'}


def test_oversized_upload_is_still_a_413(client, seeded_app):
    seeded_app.config['MAX_CONTENT_LENGTH'] = 64
    response = _upload(client, '/api/kpi-triggers/preview')
    assert response.status_code == 413
