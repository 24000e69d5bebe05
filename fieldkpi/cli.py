# ==============================================================================
# fieldkpi/cli.py
# ------------------------------------------------------------------------------
# Flask CLI commands: `flask seed` and `flask evaluate FILE`.
# ==============================================================================

import json

import click

from fieldkpi import db
from fieldkpi.engine import ConfigurationError, commit_upload, preview_upload
from fieldkpi.engine.definitions import AUDIT, TRAINING, WARNING
from fieldkpi.engine.validator import read_upload


def due_days_from_config(config):
    return {
        TRAINING: config['TRAINING_DUE_DAYS'],
        AUDIT: config['AUDIT_DUE_DAYS'],
        WARNING: config['WARNING_DUE_DAYS'],
    }


def register_commands(app):
    """Attaches the KPI commands to the app's CLI group."""

    @app.cli.command('seed')
    def seed_command():
        """Creates tables and seeds default metrics, triggers and settings."""
        from fieldkpi.seed import seed_data
        db.create_all()
        seed_data()
        click.echo('Default KPI configuration seeded.')

    @app.cli.command('evaluate')
    @click.argument('file', type=click.Path(exists=True, dir_okay=False))
    @click.option('--period', default=None, help='Evaluation period, e.g. Jan-25. Defaults to the Month column.')
    @click.option('--commit', is_flag=True, help='Persist results and create assignments and notifications.')
    def evaluate_command(file, period, commit):
        """Scores an uploaded KPI sheet and prints the results as JSON."""
        from fieldkpi.notifications import LoggingDispatcher
        from fieldkpi.repository import SqlAlchemyRepository, SqlIdentityResolver

        rows, errors = read_upload(file)
        if errors:
            raise click.ClickException('; '.join(errors))

        repository = SqlAlchemyRepository()
        resolver = SqlIdentityResolver()
        try:
            if commit:
                outcome = commit_upload(rows, repository, resolver, LoggingDispatcher(), period=period,
                                        filename=file, due_days=due_days_from_config(app.config))
            else:
                outcome = preview_upload(rows, repository, resolver, period=period)
        except ConfigurationError as e:
            raise click.ClickException(f'KPI configuration is invalid: {e}')

        click.echo(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False, default=str))
