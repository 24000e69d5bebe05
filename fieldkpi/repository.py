# ==============================================================================
# fieldkpi/repository.py
# ------------------------------------------------------------------------------
# Flask-SQLAlchemy implementations of the engine's persistence and identity
# resolution collaborators.
# ==============================================================================

import json
import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func

from fieldkpi import db
from fieldkpi.engine.definitions import (EngineConfig, as_flag, load_metric_definitions, load_rating_scale,
                                         load_trigger_rules)
from fieldkpi.engine.errors import ConfigurationError
from fieldkpi.models import (AppSetting, Assignment, Employee, EvaluationRecord, MetricConfig,
                             NotificationRecord, TriggerConfig, UploadBatch)

logger = logging.getLogger(__name__)


class SqlIdentityResolver:
    """Matches an uploaded row to an Employee: employee ID, then email, then name."""

    def resolve(self, employee_id=None, email=None, name=None):
        employee = None
        if employee_id:
            employee = Employee.query.filter_by(employee_id=str(employee_id).strip()).first()
        if employee is None and email:
            employee = Employee.query.filter(func.lower(Employee.email) == email.strip().lower()).first()
        if employee is None and name:
            employee = Employee.query.filter(func.lower(Employee.name) == name.strip().lower()).first()
        return employee.id if employee is not None else None


class SqlAlchemyRepository:
    """Reads configuration and writes batch results through `db.session`."""

    # --- Configuration ---

    def _settings(self):
        try:
            return {s.key: s.get_value() for s in AppSetting.query.all()}
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Stored application settings are unreadable: {e}") from e

    def raw_config(self):
        """Returns the stored configuration as JSON-ready dictionaries."""
        from fieldkpi.seed import DEFAULT_RATING_SCALE
        settings = self._settings()
        try:
            metrics = [m.to_config() for m in MetricConfig.query.order_by(MetricConfig.position).all()]
            triggers = [t.to_config() for t in TriggerConfig.query.order_by(TriggerConfig.position).all()]
        except ValueError as e:
            raise ConfigurationError(f"Stored KPI configuration is unreadable: {e}") from e
        return {
            'metrics': metrics,
            'triggers': triggers,
            'ratings': settings.get('RATING_SCALE') or DEFAULT_RATING_SCALE,
            'actionTypes': settings.get('ACTION_TYPES') or {},
            'trainingKeywords': settings.get('TRAINING_KEYWORDS'),
            'warningKeywords': settings.get('WARNING_KEYWORDS'),
            'sentinels': settings.get('METRIC_SENTINELS') or {},
        }

    def load_config(self):
        """Loads and validates a configuration snapshot for one batch."""
        raw = self.raw_config()
        config = EngineConfig.from_dicts(
            raw['metrics'], raw['triggers'], raw['ratings'], raw['actionTypes'],
            raw['trainingKeywords'], raw['warningKeywords'], raw['sentinels'],
        )
        logger.info(f"Loaded KPI configuration: {len(config.active_metrics)} active metrics, "
                    f"{len(config.score_rules)} score tiers, {len(config.condition_rules)} condition rules")
        return config

    def replace_metrics(self, raw_metrics, updated_by=None):
        """Validates and stores a full metric list. Returns the configuration warnings."""
        warnings = []
        load_metric_definitions(raw_metrics, warnings)
        MetricConfig.query.delete()
        now = datetime.utcnow()
        for position, raw in enumerate(raw_metrics):
            db.session.add(MetricConfig(
                position=position,
                metric=str(raw.get('metric') or raw.get('metricKey') or raw.get('metric_key')),
                weightage=float(raw.get('weightage', raw.get('weight'))),
                thresholds_json=json.dumps(raw.get('thresholds') or []),
                is_active=as_flag(raw.get('isActive', True)),
                updated_at=now, updated_by=updated_by,
            ))
        db.session.flush()
        return warnings

    def replace_triggers(self, raw_triggers, updated_by=None):
        """Validates and stores a full trigger list. Returns the configuration warnings."""
        warnings = []
        load_trigger_rules(raw_triggers, warnings)
        TriggerConfig.query.delete()
        now = datetime.utcnow()
        for position, raw in enumerate(raw_triggers):
            threshold = raw.get('threshold')
            db.session.add(TriggerConfig(
                position=position,
                trigger_type=str(raw.get('triggerType')).strip().lower(),
                condition_json=json.dumps(raw.get('condition')),
                threshold=None if threshold in (None, '') else float(threshold),
                actions_json=json.dumps(list(raw.get('actions') or [])),
                recipients_json=json.dumps(raw.get('emailRecipients') or []),
                is_active=as_flag(raw.get('isActive', True)),
                updated_at=now, updated_by=updated_by,
            ))
        db.session.flush()
        return warnings

    def replace_ratings(self, raw_ratings):
        """Validates and stores the rating scale. Returns the configuration warnings."""
        warnings = []
        load_rating_scale(raw_ratings, warnings)
        setting = AppSetting.query.filter_by(key='RATING_SCALE').first()
        if setting is None:
            setting = AppSetting(key='RATING_SCALE', value_type='json',
                                 description='Rating bands by minimum KPI score; must cover 0-100 (JSON)')
            db.session.add(setting)
        setting.value = json.dumps(raw_ratings)
        db.session.flush()
        return warnings

    def reset_defaults(self, updated_by=None):
        from fieldkpi.seed import DEFAULT_METRICS, DEFAULT_TRIGGERS, seed_settings
        self.replace_metrics(DEFAULT_METRICS, updated_by)
        self.replace_triggers(DEFAULT_TRIGGERS, updated_by)
        seed_settings(overwrite=True)
        db.session.flush()

    # --- Batch writes ---

    @contextmanager
    def transaction(self):
        """Commits everything done inside the block at once, or nothing."""
        try:
            yield self
            db.session.commit()
        except BaseException:
            db.session.rollback()
            logger.error("Transaction rolled back; no changes were written.")
            raise

    def create_batch(self, filename, evaluation):
        batch = UploadBatch(
            filename=filename, period=evaluation.period, upload_timestamp=datetime.utcnow(),
            total_records=len(evaluation.results) + len(evaluation.row_errors),
            matched_count=evaluation.matched_count, unmatched_count=evaluation.unmatched_count,
            row_errors_json=json.dumps([e.to_dict() for e in evaluation.row_errors]),
            config_warnings_json=json.dumps([w.to_dict() for w in evaluation.config_warnings]),
        )
        db.session.add(batch)
        db.session.flush()
        return batch.id

    def save_result(self, batch_id, result):
        data = result.to_dict()
        record = EvaluationRecord(
            batch_id=batch_id, row_index=result.row_index, employee_identifier=result.employee_identifier,
            employee_name=result.name, user_id=result.user_id, period=result.period, matched=result.matched,
            kpi_score=result.kpi_score, rating=result.rating,
            values_json=json.dumps(data['values']),
            breakdown_json=json.dumps(data['perMetricBreakdown']),
            triggers_json=json.dumps(data['triggers']),
            warnings_json=json.dumps(data['warnings']),
        )
        db.session.add(record)
        return record

    def find_assignment(self, user_id, period, action):
        existing = Assignment.query.filter_by(user_id=user_id, period=period, action=action).first()
        return existing.id if existing is not None else None

    def create_assignment(self, batch_id, result, trigger, due_date):
        assignment = Assignment(
            user_id=result.user_id, period=result.period, action=trigger.action, action_type=trigger.type,
            reason=(trigger.reason or '')[:512], due_date=due_date, batch_id=batch_id,
        )
        db.session.add(assignment)
        db.session.flush()
        return assignment.id

    def find_notification(self, user_id, period, role):
        existing = NotificationRecord.query.filter_by(user_id=user_id, period=period, recipient_role=role).first()
        return existing.id if existing is not None else None

    def create_notification(self, batch_id, result, request):
        record = NotificationRecord(
            user_id=result.user_id, period=result.period, recipient_role=request.recipient_role,
            template_key=request.template_key, variables_json=json.dumps(request.variables), batch_id=batch_id,
        )
        db.session.add(record)
        db.session.flush()
        return record.id

    # --- Reads ---

    def history_for_user(self, user_id):
        results = EvaluationRecord.query.filter_by(user_id=user_id) \
            .order_by(EvaluationRecord.created_at.desc(), EvaluationRecord.id.desc()).all()
        assignments = Assignment.query.filter_by(user_id=user_id) \
            .order_by(Assignment.created_at.desc(), Assignment.id.desc()).all()
        return {
            'results': [r.to_dict() for r in results],
            'assignments': [a.to_dict() for a in assignments],
        }
