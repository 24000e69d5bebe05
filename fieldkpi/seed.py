import json
import logging

from fieldkpi import db
from fieldkpi.models import AppSetting, MetricConfig, TriggerConfig

DEFAULT_RATING_SCALE = [
    {'label': 'Outstanding', 'minScore': 85},
    {'label': 'Excellent', 'minScore': 70},
    {'label': 'Satisfactory', 'minScore': 50},
    {'label': 'Need Improvement', 'minScore': 40},
    {'label': 'Unsatisfactory', 'minScore': 0},
]

DEFAULT_ACTION_TYPES = {
    'Basic Training Module': 'training',
    'Negativity Handling Training Module': 'training',
    "Do's & Don'ts Training Module": 'training',
    'Application Usage Training': 'training',
    'Audit Call': 'audit',
    'Cross-check last 3 months data': 'audit',
    'Dummy Audit Case': 'audit',
    'RCA of complaints': 'audit',
    'Cross-verification of selected insuff cases by another FE': 'audit',
    'Warning Letter': 'warning',
}

DEFAULT_SETTINGS = {
    # key: [value, description, value_type]
    'RATING_SCALE': [json.dumps(DEFAULT_RATING_SCALE), 'Rating bands by minimum KPI score; must cover 0-100 (JSON)', 'json'],
    'ACTION_TYPES': [json.dumps(DEFAULT_ACTION_TYPES), 'Action identifier -> training / audit / warning (JSON)', 'json'],
    'TRAINING_KEYWORDS': [json.dumps(['training', 'module']), 'Keywords classifying unknown actions as training (JSON)', 'json'],
    'WARNING_KEYWORDS': [json.dumps(['warning']), 'Keywords classifying unknown actions as warnings (JSON)', 'json'],
    'METRIC_SENTINELS': [json.dumps({}), 'Per-metric value used when an uploaded cell is missing; default 0 (JSON)', 'json'],
}

# Lower is better for the negativity, quality and insufficiency metrics, so
# their bands start from the worst value. First matching band wins.
DEFAULT_METRICS = [
    {'metric': 'TAT', 'weightage': 20, 'thresholds': [
        {'operator': '>=', 'value': 95, 'score': 20, 'label': 'Excellent (95%+)'},
        {'operator': '>=', 'value': 90, 'score': 10, 'label': 'Good (90-94%)'},
        {'operator': '>=', 'value': 85, 'score': 5, 'label': 'Average (85-89%)'},
        {'operator': '<', 'value': 85, 'score': 0, 'label': 'Poor (<85%)'},
    ]},
    {'metric': 'Major Negativity', 'weightage': 20, 'thresholds': [
        {'operator': '>=', 'value': 2.5, 'score': 0, 'label': 'High (2.5%+)'},
        {'operator': '>=', 'value': 2.0, 'score': 5, 'label': 'Medium (2.0-2.4%)'},
        {'operator': '>=', 'value': 1.5, 'score': 15, 'label': 'Low (1.5-1.9%)'},
        {'operator': '<', 'value': 1.5, 'score': 20, 'label': 'Excellent (<1.5%)'},
    ]},
    {'metric': 'Quality Concern', 'weightage': 20, 'thresholds': [
        {'operator': '==', 'value': 0, 'score': 20, 'label': 'Perfect (0%)'},
        {'operator': '<=', 'value': 0.25, 'score': 15, 'label': 'Good (0-0.25%)'},
        {'operator': '<=', 'value': 0.5, 'score': 10, 'label': 'Average (0.26-0.5%)'},
        {'operator': '>', 'value': 0.5, 'score': 0, 'label': 'Poor (>0.5%)'},
    ]},
    {'metric': 'Neighbor Check', 'weightage': 10, 'thresholds': [
        {'operator': '>=', 'value': 90, 'score': 10, 'label': 'Excellent (90%+)'},
        {'operator': '>=', 'value': 85, 'score': 5, 'label': 'Good (85-89%)'},
        {'operator': '>=', 'value': 80, 'score': 2, 'label': 'Average (80-84%)'},
        {'operator': '<', 'value': 80, 'score': 0, 'label': 'Poor (<80%)'},
    ]},
    {'metric': 'General Negativity', 'weightage': 10, 'thresholds': [
        {'operator': '>=', 'value': 25, 'score': 0, 'label': 'High (25%+)'},
        {'operator': '>=', 'value': 20, 'score': 2, 'label': 'Medium (20-24%)'},
        {'operator': '>=', 'value': 15, 'score': 5, 'label': 'Low (15-19%)'},
        {'operator': '<', 'value': 15, 'score': 10, 'label': 'Excellent (<15%)'},
    ]},
    {'metric': 'App Usage', 'weightage': 10, 'thresholds': [
        {'operator': '>=', 'value': 90, 'score': 10, 'label': 'Excellent (90%+)'},
        {'operator': '>=', 'value': 85, 'score': 5, 'label': 'Good (85-89%)'},
        {'operator': '>=', 'value': 80, 'score': 2, 'label': 'Average (80-84%)'},
        {'operator': '<', 'value': 80, 'score': 0, 'label': 'Poor (<80%)'},
    ]},
    {'metric': 'Insufficiency', 'weightage': 10, 'thresholds': [
        {'operator': '<', 'value': 1, 'score': 10, 'label': 'Excellent (<1%)'},
        {'operator': '<=', 'value': 1.5, 'score': 5, 'label': 'Good (1-1.5%)'},
        {'operator': '<=', 'value': 2, 'score': 2, 'label': 'Average (1.6-2%)'},
        {'operator': '>', 'value': 2, 'score': 0, 'label': 'Poor (>2%)'},
    ]},
]

ALL_ROLES = ['FE', 'Coordinator', 'Manager', 'HOD', 'Compliance Team']

DEFAULT_TRIGGERS = [
    {'triggerType': 'score_based', 'condition': 'Overall KPI Score', 'threshold': 85,
     'actions': ['None'], 'emailRecipients': ['FE', 'Manager', 'HOD']},
    {'triggerType': 'score_based', 'condition': 'Overall KPI Score', 'threshold': 70,
     'actions': ['Audit Call'], 'emailRecipients': ['Compliance Team', 'HOD']},
    {'triggerType': 'score_based', 'condition': 'Overall KPI Score', 'threshold': 50,
     'actions': ['Audit Call', 'Cross-check last 3 months data'], 'emailRecipients': ['Compliance Team', 'HOD']},
    {'triggerType': 'score_based', 'condition': 'Overall KPI Score', 'threshold': 40,
     'actions': ['Basic Training Module', 'Audit Call', 'Cross-check last 3 months data', 'Dummy Audit Case'],
     'emailRecipients': ALL_ROLES},
    {'triggerType': 'score_based', 'condition': 'Overall KPI Score', 'threshold': 0,
     'actions': ['Basic Training Module', 'Audit Call', 'Cross-check last 3 months data', 'Dummy Audit Case',
                 'Warning Letter'],
     'emailRecipients': ALL_ROLES},
    {'triggerType': 'condition_based', 'condition': 'Major Negativity > 0% AND General Negativity < 25%',
     'threshold': 0, 'actions': ['Negativity Handling Training Module', 'Audit Call'],
     'emailRecipients': ALL_ROLES},
    {'triggerType': 'condition_based', 'condition': 'Quality Concern > 1%', 'threshold': 1,
     'actions': ["Do's & Don'ts Training Module", 'Audit Call', 'RCA of complaints'],
     'emailRecipients': ALL_ROLES},
    {'triggerType': 'condition_based', 'condition': 'Cases Done on App < 80%', 'threshold': 80,
     'actions': ['Application Usage Training'], 'emailRecipients': ALL_ROLES},
    {'triggerType': 'condition_based', 'condition': 'Insufficiency > 2%', 'threshold': 2,
     'actions': ['Cross-verification of selected insuff cases by another FE'],
     'emailRecipients': ['Compliance Team', 'HOD']},
]


def seed_settings(overwrite=False):
    """Adds default settings; existing keys are left alone unless `overwrite`."""
    for key, data in DEFAULT_SETTINGS.items():
        setting = AppSetting.query.filter_by(key=key).first()
        if not setting:
            db.session.add(AppSetting(key=key, value=data[0], description=data[1], value_type=data[2]))
            logging.info(f'Seeding setting: {key}')
        elif overwrite:
            setting.value = data[0]


def seed_data():
    """Populates the database with default settings, metrics and triggers."""
    seed_settings()

    if MetricConfig.query.count() == 0:
        logging.info('Seeding default KPI metrics...')
        from fieldkpi.repository import SqlAlchemyRepository
        SqlAlchemyRepository().replace_metrics(DEFAULT_METRICS, updated_by='system')

    if TriggerConfig.query.count() == 0:
        logging.info('Seeding default KPI triggers...')
        from fieldkpi.repository import SqlAlchemyRepository
        SqlAlchemyRepository().replace_triggers(DEFAULT_TRIGGERS, updated_by='system')

    db.session.commit()
    logging.info('Seeding complete.')
