# ==============================================================================
# fieldkpi/__init__.py
# ------------------------------------------------------------------------------
# Extensions and the create_app() factory for the KPI service.
# ==============================================================================

import os
import logging
from flask import Flask
from config import Config
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

def create_app(config_class=Config):
    """
    Builds the KPI service: database, migrations, JSON API blueprint and the
    `flask seed` / `flask evaluate` commands.

    Args:
        config_class (class): Config or TestConfig.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    logging.basicConfig(level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # The instance folder holds the SQLite database and uploads
    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)

    from fieldkpi.main import bp as main_bp
    app.register_blueprint(main_bp)

    from fieldkpi.cli import register_commands
    register_commands(app)

    app.logger.info('Field KPI service startup complete')

    return app
