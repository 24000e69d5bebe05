# ==============================================================================
# run.py
# ------------------------------------------------------------------------------
# The main entry point to launch the Flask application.
# ==============================================================================

from fieldkpi import create_app, db
from fieldkpi.models import (AppSetting, Assignment, Employee, EvaluationRecord, MetricConfig,
                             NotificationRecord, TriggerConfig, UploadBatch)

# Create the Flask application instance using the factory function
app = create_app()

@app.shell_context_processor
def make_shell_context():
    """Provides a shell context for the `flask shell` command."""
    return {
        'db': db,
        'AppSetting': AppSetting,
        'Employee': Employee,
        'MetricConfig': MetricConfig,
        'TriggerConfig': TriggerConfig,
        'UploadBatch': UploadBatch,
        'EvaluationRecord': EvaluationRecord,
        'Assignment': Assignment,
        'NotificationRecord': NotificationRecord,
    }

if __name__ == '__main__':
    app.run(debug=True)
