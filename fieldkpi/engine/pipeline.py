# ==============================================================================
# fieldkpi/engine/pipeline.py
# ------------------------------------------------------------------------------
# Batch orchestration: Normalizer -> Scoring -> Trigger Engine, in two modes.
#
#   preview_upload  - read-only; returns the full result set, writes nothing.
#   commit_upload   - reloads configuration, re-runs the pipeline and persists
#                     everything inside ONE repository transaction. Assignments
#                     and notifications are idempotent per (user, period, key).
#
# The repository passed in must provide:
#   load_config() -> EngineConfig
#   transaction()  context manager; commits on success, rolls back on error
#   create_batch(filename, batch) -> batch id
#   save_result(batch_id, result)
#   find_assignment(user_id, period, action) -> id | None
#   create_assignment(batch_id, result, trigger, due_date) -> id
#   find_notification(user_id, period, role) -> id | None
#   create_notification(batch_id, result, request) -> id
# The dispatcher must provide dispatch(recipient_role, template_key, variables).
# ==============================================================================

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from . import scoring, triggers
from .definitions import AUDIT, TRAINING, WARNING
from .errors import BatchCancelled, CommitConflict
from .normalizer import normalize_rows

logger = logging.getLogger(__name__)

# Most severe first; decides which template a role receives.
TEMPLATE_PRIORITY = (WARNING, AUDIT, TRAINING)
KPI_SCORE_TEMPLATE = 'kpi_score'
DEFAULT_DUE_DAYS = {TRAINING: 14, AUDIT: 7, WARNING: 3}


@dataclass(frozen=True)
class NotificationRequest:
    recipient_role: str
    template_key: str
    variables: dict

    def to_dict(self):
        return {'recipientRole': self.recipient_role, 'templateKey': self.template_key, 'variables': self.variables}


@dataclass(frozen=True)
class EvaluationResult:
    row_index: int
    employee_identifier: str
    period: str
    name: str
    user_id: object
    kpi_score: float
    rating: str
    breakdown: tuple
    triggers: tuple
    recipients: tuple
    notifications: tuple
    values: dict
    warnings: tuple = ()

    @property
    def matched(self):
        return self.user_id is not None

    def to_dict(self):
        return {
            'row': self.row_index,
            'employeeIdentifier': self.employee_identifier,
            'name': self.name,
            'period': self.period,
            'matched': self.matched,
            'userId': self.user_id,
            'kpiScore': self.kpi_score,
            'rating': self.rating,
            'perMetricBreakdown': [item.to_dict() for item in self.breakdown],
            'triggers': [t.to_dict() for t in self.triggers],
            'recipients': list(self.recipients),
            'notifications': [n.to_dict() for n in self.notifications],
            'values': dict(self.values),
            'warnings': list(self.warnings),
        }


@dataclass
class BatchEvaluation:
    period: str
    results: list
    row_errors: list
    config_warnings: tuple

    @property
    def matched_count(self):
        return sum(1 for r in self.results if r.matched)

    @property
    def unmatched_count(self):
        return sum(1 for r in self.results if not r.matched)

    def to_dict(self):
        return {
            'period': self.period,
            'totalRecords': len(self.results) + len(self.row_errors),
            'evaluatedRecords': len(self.results),
            'matchedUsers': self.matched_count,
            'unmatchedUsers': self.unmatched_count,
            'rowErrors': [e.to_dict() for e in self.row_errors],
            'configurationWarnings': [w.to_dict() for w in self.config_warnings],
            'previewResults': [r.to_dict() for r in self.results],
        }


@dataclass
class CommitReport:
    batch_id: object = None
    evaluation: BatchEvaluation = None
    results_saved: int = 0
    assignments_created: int = 0
    notifications_queued: int = 0
    notifications_dispatched: int = 0
    notifications_failed: int = 0
    skipped_unmatched: int = 0
    conflicts: list = field(default_factory=list)

    def to_dict(self):
        data = self.evaluation.to_dict() if self.evaluation else {}
        data.update({
            'batchId': self.batch_id,
            'resultsSaved': self.results_saved,
            'assignmentsCreated': self.assignments_created,
            'alreadyApplied': [c.to_dict() for c in self.conflicts],
            'notificationsQueued': self.notifications_queued,
            'notificationsDispatched': self.notifications_dispatched,
            'notificationsFailed': self.notifications_failed,
            'skippedUnmatched': self.skipped_unmatched,
        })
        return data


# --- Helper Functions ---

def _check_cancelled(cancel_event):
    if cancel_event is not None and cancel_event.is_set():
        raise BatchCancelled('Batch evaluation was cancelled')


def plan_notifications(record, card, outcome):
    """One notification per recipient role, using the most severe template that applies to it."""
    requests = []
    for role in outcome.recipients:
        role_triggers = [t for t in outcome.triggers if role in t.recipients]
        template = KPI_SCORE_TEMPLATE
        for action_type in TEMPLATE_PRIORITY:
            if any(t.type == action_type for t in role_triggers):
                template = action_type
                break
        requests.append(NotificationRequest(role, template, {
            'employeeName': record.name,
            'employeeId': record.employee_id,
            'period': record.period,
            'kpiScore': card.aggregate_score,
            'rating': card.rating,
            'actions': [t.action for t in role_triggers],
        }))
    return tuple(requests)


def evaluate_record(record, config):
    """Scores one normalized record and resolves its triggers. Pure."""
    card = scoring.score(record, config.metrics, config.rating_scale)
    outcome = triggers.evaluate(record, card.aggregate_score, config)
    notifications = plan_notifications(record, card, outcome) if record.matched else ()
    return EvaluationResult(
        row_index=record.row_index, employee_identifier=record.employee_identifier, period=record.period,
        name=record.name, user_id=record.user_id, kpi_score=card.aggregate_score, rating=card.rating,
        breakdown=card.breakdown, triggers=outcome.triggers, recipients=outcome.recipients,
        notifications=notifications, values=dict(record.values),
        warnings=record.warnings + card.warnings + outcome.warnings,
    )


def evaluate_batch(rows, config, resolver=None, period=None, cancel_event=None):
    """
    Runs the full pipeline over parsed rows against one configuration snapshot.

    Returns:
        BatchEvaluation: results, row errors and the batch's configuration warnings.
    """
    records, row_errors, batch_period = normalize_rows(rows, resolver, period, config.sentinels)
    results = []
    for record in records:
        _check_cancelled(cancel_event)
        results.append(evaluate_record(record, config))
    logger.info(f"Evaluated {len(results)} records for period '{batch_period}' "
                f"({len(row_errors)} rejected, {len(config.warnings)} configuration warnings)")
    return BatchEvaluation(batch_period, results, row_errors, config.warnings)


# --- Main Entry Points ---

def preview_upload(rows, repository, resolver=None, period=None, cancel_event=None):
    """Read-only evaluation: configuration is read, nothing is written or sent."""
    logging.info("=" * 30 + " KPI UPLOAD PREVIEW " + "=" * 30)
    config = repository.load_config()
    return evaluate_batch(rows, config, resolver, period, cancel_event)


def commit_upload(rows, repository, resolver=None, dispatcher=None, period=None, filename=None,
                  cancel_event=None, due_days=None, now=None):
    """
    Persisting evaluation. The configuration is reloaded rather than reusing a
    preview, so a change made between preview and commit is honoured.

    All writes happen inside a single repository transaction; cancellation or
    any storage error rolls the whole batch back. Notifications are handed to
    the dispatcher only after the transaction has committed.

    Returns:
        CommitReport: Counts of what was written and what was already applied.
    """
    logging.info("=" * 30 + " KPI UPLOAD COMMIT " + "=" * 30)
    config = repository.load_config()
    evaluation = evaluate_batch(rows, config, resolver, period, cancel_event)
    due_days = {**DEFAULT_DUE_DAYS, **(due_days or {})}
    now = now or datetime.utcnow()

    report = CommitReport(evaluation=evaluation)
    outbox = []
    with repository.transaction():
        report.batch_id = repository.create_batch(filename, evaluation)
        for result in evaluation.results:
            _check_cancelled(cancel_event)
            repository.save_result(report.batch_id, result)
            report.results_saved += 1
            if not result.matched:
                report.skipped_unmatched += 1
                continue

            for trigger in result.triggers:
                existing = repository.find_assignment(result.user_id, result.period, trigger.action)
                if existing is not None:
                    logger.info(f"Assignment '{trigger.action}' for user {result.user_id} "
                                f"({result.period}) already applied; skipping")
                    report.conflicts.append(CommitConflict(result.user_id, result.period, trigger.action, existing))
                    continue
                due_date = now + timedelta(days=due_days.get(trigger.type, DEFAULT_DUE_DAYS[AUDIT]))
                repository.create_assignment(report.batch_id, result, trigger, due_date)
                report.assignments_created += 1

            for request in result.notifications:
                if repository.find_notification(result.user_id, result.period, request.recipient_role) is not None:
                    continue
                repository.create_notification(report.batch_id, result, request)
                outbox.append(request)
        report.notifications_queued = len(outbox)

    logger.info(f"Committed batch {report.batch_id}: {report.results_saved} results, "
                f"{report.assignments_created} assignments, {len(report.conflicts)} already applied")

    if dispatcher is not None:
        for request in outbox:
            try:
                dispatcher.dispatch(request.recipient_role, request.template_key, request.variables)
                report.notifications_dispatched += 1
            except Exception as e:
                report.notifications_failed += 1
                logger.error(f"Dispatch of '{request.template_key}' to '{request.recipient_role}' failed: {e}",
                             exc_info=True)
    return report
