# ==============================================================================
# fieldkpi/models.py
# ------------------------------------------------------------------------------
# Defines the database schema using SQLAlchemy ORM models.
# ==============================================================================

from datetime import datetime
import json

from fieldkpi import db


def _loads(text, default):
    return json.loads(text) if text else default


class Employee(db.Model):
    """
    Field executives and staff that uploaded KPI rows are matched against.
    Matching order is employee ID, then email, then name.
    """
    __tablename__ = 'employee'
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(64), unique=True, index=True)
    name = db.Column(db.String(128), index=True, nullable=False)
    email = db.Column(db.String(128), unique=True, index=True)
    department = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, default=True)

    def __repr__(self):
        return f'<Employee {self.id}: {self.name}>'


class MetricConfig(db.Model):
    """
    One weighted KPI metric with its ordered threshold bands.
    This table is managed via the admin configuration API.
    """
    __tablename__ = 'metric_config'
    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    metric = db.Column(db.String(64), nullable=False)
    weightage = db.Column(db.Float, nullable=False)
    # Ordered list of {operator, value, score, label}; order is significant.
    thresholds_json = db.Column(db.Text, nullable=False, default='[]')
    is_active = db.Column(db.Boolean, default=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_by = db.Column(db.String(64))

    def __repr__(self):
        return f'<MetricConfig {self.id}: {self.metric} ({self.weightage})>'

    def to_config(self):
        return {
            '_id': str(self.id),
            'metric': self.metric,
            'weightage': self.weightage,
            'thresholds': _loads(self.thresholds_json, []),
            'isActive': self.is_active,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            'updatedBy': self.updated_by,
        }


class TriggerConfig(db.Model):
    """
    A score-based tier or a condition-based rule.
    `condition_json` holds either a JSON string (free-text condition) or a JSON tree.
    """
    __tablename__ = 'trigger_config'
    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    trigger_type = db.Column(db.String(32), nullable=False, index=True)
    condition_json = db.Column(db.Text)
    threshold = db.Column(db.Float)
    actions_json = db.Column(db.Text, nullable=False, default='[]')
    recipients_json = db.Column(db.Text, nullable=False, default='[]')
    is_active = db.Column(db.Boolean, default=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_by = db.Column(db.String(64))

    def __repr__(self):
        return f'<TriggerConfig {self.id}: {self.trigger_type} {self.threshold}>'

    def to_config(self):
        return {
            '_id': str(self.id),
            'triggerType': self.trigger_type,
            'condition': _loads(self.condition_json, None),
            'threshold': self.threshold,
            'actions': _loads(self.actions_json, []),
            'emailRecipients': _loads(self.recipients_json, []),
            'isActive': self.is_active,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            'updatedBy': self.updated_by,
        }


class AppSetting(db.Model):
    """
    Key-value pairs for business settings (rating scale, action catalogue,
    metric sentinels), editable without a deployment.
    """
    __tablename__ = 'app_setting'
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)
    description = db.Column(db.String(512))
    value_type = db.Column(db.String(32), default='string')  # 'float', 'int', 'string', 'json'

    def __repr__(self):
        return f'<AppSetting {self.key}: {self.value}>'

    def get_value(self):
        """Casts the string value to its correct Python type."""
        if self.value_type == 'float':
            return float(self.value)
        if self.value_type == 'int':
            return int(self.value)
        if self.value_type == 'json':
            return json.loads(self.value)
        return self.value


class UploadBatch(db.Model):
    """
    Metadata for each committed upload. Each batch is a snapshot of an
    evaluation at a specific time; later configuration changes never alter it.
    """
    __tablename__ = 'upload_batch'
    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(128))
    period = db.Column(db.String(64), index=True)
    upload_timestamp = db.Column(db.DateTime, index=True, default=datetime.utcnow)
    total_records = db.Column(db.Integer, default=0)
    matched_count = db.Column(db.Integer, default=0)
    unmatched_count = db.Column(db.Integer, default=0)
    row_errors_json = db.Column(db.Text)
    config_warnings_json = db.Column(db.Text)

    results = db.relationship('EvaluationRecord', backref='batch', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<UploadBatch {self.id}: {self.filename} ({self.period})>'


class EvaluationRecord(db.Model):
    """A persisted EvaluationResult for one (employee, period) row of a batch."""
    __tablename__ = 'evaluation_record'
    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('upload_batch.id'), nullable=False)
    row_index = db.Column(db.Integer)
    employee_identifier = db.Column(db.String(128), index=True, nullable=False)
    employee_name = db.Column(db.String(128))
    user_id = db.Column(db.Integer, db.ForeignKey('employee.id'), index=True)
    period = db.Column(db.String(64), index=True, nullable=False)
    matched = db.Column(db.Boolean, default=False)
    kpi_score = db.Column(db.Float, nullable=False)
    rating = db.Column(db.String(64), nullable=False)
    values_json = db.Column(db.Text)
    breakdown_json = db.Column(db.Text)
    triggers_json = db.Column(db.Text)
    warnings_json = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<EvaluationRecord {self.id}: {self.employee_identifier} {self.period} {self.kpi_score}>'

    def to_dict(self):
        return {
            'id': self.id,
            'batchId': self.batch_id,
            'employeeIdentifier': self.employee_identifier,
            'name': self.employee_name,
            'userId': self.user_id,
            'period': self.period,
            'matched': self.matched,
            'kpiScore': self.kpi_score,
            'rating': self.rating,
            'values': _loads(self.values_json, {}),
            'perMetricBreakdown': _loads(self.breakdown_json, []),
            'triggers': _loads(self.triggers_json, []),
            'warnings': _loads(self.warnings_json, []),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Assignment(db.Model):
    """
    Training, audit or warning-letter assignment created by a committed trigger.
    At most one per (user, period, action): re-committing a batch never duplicates.
    """
    __tablename__ = 'assignment'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('employee.id'), nullable=False, index=True)
    period = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(128), nullable=False)
    action_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(32), default='assigned')
    reason = db.Column(db.String(512))
    due_date = db.Column(db.DateTime)
    batch_id = db.Column(db.Integer, db.ForeignKey('upload_batch.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('user_id', 'period', 'action', name='_user_period_action_uc'),)

    def __repr__(self):
        return f'<Assignment {self.id}: {self.action} for {self.user_id} ({self.period})>'

    def to_dict(self):
        return {
            'id': self.id, 'userId': self.user_id, 'period': self.period, 'action': self.action,
            'type': self.action_type, 'status': self.status, 'reason': self.reason,
            'dueDate': self.due_date.isoformat() if self.due_date else None, 'batchId': self.batch_id,
        }


class NotificationRecord(db.Model):
    """A notification request handed to the external dispatcher; one per (user, period, role)."""
    __tablename__ = 'notification_record'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('employee.id'), nullable=False, index=True)
    period = db.Column(db.String(64), nullable=False)
    recipient_role = db.Column(db.String(64), nullable=False)
    template_key = db.Column(db.String(64), nullable=False)
    variables_json = db.Column(db.Text)
    status = db.Column(db.String(32), default='queued')
    batch_id = db.Column(db.Integer, db.ForeignKey('upload_batch.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('user_id', 'period', 'recipient_role', name='_user_period_role_uc'),)

    def __repr__(self):
        return f'<NotificationRecord {self.id}: {self.template_key} -> {self.recipient_role}>'
