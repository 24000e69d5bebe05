# ==============================================================================
# config.py
# ------------------------------------------------------------------------------
# Configuration settings for the KPI service.
# Uses environment variables for deployment-specific values, loaded from .env.
# ==============================================================================

import os
import tempfile
from dotenv import load_dotenv

# Project root; the .env file and instance/ folder live here
basedir = os.path.abspath(os.path.dirname(__file__))

load_dotenv(os.path.join(basedir, '.env'))

class Config:
    """Defaults for every deployment. Each value can be overridden through .env."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-only-fieldkpi-secret'

    # --- Database Configuration ---
    # SQLite file in the 'instance' folder unless DATABASE_URL is set.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance/kpi.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Upload Configuration ---
    UPLOAD_FOLDER = os.path.join(basedir, 'instance/uploads')
    ALLOWED_EXTENSIONS = {'.xlsx', '.csv'}
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    # The JSON API is consumed by the dashboard, not by rendered forms.
    WTF_CSRF_ENABLED = False

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # --- Assignment due dates (days after commit) ---
    TRAINING_DUE_DAYS = int(os.environ.get('TRAINING_DUE_DAYS') or 14)
    AUDIT_DUE_DAYS = int(os.environ.get('AUDIT_DUE_DAYS') or 7)
    WARNING_DUE_DAYS = int(os.environ.get('WARNING_DUE_DAYS') or 3)


class TestConfig(Config):
    """Configuration used by the test-suite: in-memory database."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), 'fieldkpi-test-uploads')
