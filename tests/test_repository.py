# tests/test_repository.py

import json

import pytest

from fieldkpi.engine.errors import ConfigurationError


def test_identity_resolver_matches_id_then_email_then_name(seeded_app):
    from fieldkpi.models import Employee
    from fieldkpi.repository import SqlIdentityResolver

    resolver = SqlIdentityResolver()
    vikram = Employee.query.filter_by(employee_id='E2').first().id

    assert resolver.resolve(employee_id='E2') == vikram
    assert resolver.resolve(email='VIKRAM.SINGH@example.com') == vikram
    assert resolver.resolve(name='vikram singh') == vikram
    assert resolver.resolve(employee_id='missing', name='Vikram Singh') == vikram
    assert resolver.resolve(employee_id='missing', email='nobody@example.com', name='Nobody') is None


def test_load_config_reads_seeded_tables(seeded_app):
    from fieldkpi.repository import SqlAlchemyRepository

    config = SqlAlchemyRepository().load_config()
    assert config.warnings == ()
    assert [m.metric_key for m in config.active_metrics][:3] == ['tat', 'major_negativity', 'quality_concern']
    assert config.catalogue.classify('Cross-check last 3 months data') == 'audit'


def test_corrupt_stored_setting_is_a_configuration_error(seeded_app):
    from fieldkpi import db
    from fieldkpi.models import AppSetting
    from fieldkpi.repository import SqlAlchemyRepository

    AppSetting.query.filter_by(key='RATING_SCALE').first().value = '{not json'
    db.session.commit()

    with pytest.raises(ConfigurationError):
        SqlAlchemyRepository().load_config()


def test_transaction_rolls_back_on_error(seeded_app):
    from fieldkpi.models import UploadBatch
    from fieldkpi.repository import SqlAlchemyRepository

    repository = SqlAlchemyRepository()

    class Evaluation:
        period = 'Jan-25'
        results = []
        row_errors = []
        config_warnings = ()
        matched_count = 0
        unmatched_count = 0

    with pytest.raises(RuntimeError):
        with repository.transaction():
            repository.create_batch('jan.xlsx', Evaluation())
            raise RuntimeError('storage went away')

    assert UploadBatch.query.count() == 0


def test_replace_metrics_keeps_declared_order(seeded_app):
    from fieldkpi import db
    from fieldkpi.models import MetricConfig
    from fieldkpi.repository import SqlAlchemyRepository

    metrics = [
        {'metric': 'Insufficiency', 'weightage': 50, 'thresholds': [{'operator': '<', 'value': 1, 'score': 50}]},
        {'metric': 'TAT', 'weightage': 50, 'isActive': 'true',
         'thresholds': [{'operator': '>=', 'value': 90, 'score': 50}]},
    ]
    warnings = SqlAlchemyRepository().replace_metrics(metrics, updated_by='ops')
    db.session.commit()

    assert warnings == []
    stored = MetricConfig.query.order_by(MetricConfig.position).all()
    assert [m.metric for m in stored] == ['Insufficiency', 'TAT']
    assert json.loads(stored[0].thresholds_json)[0]['operator'] == '<'
    assert stored[1].updated_by == 'ops'
