# ==============================================================================
# fieldkpi/main/forms.py
# ------------------------------------------------------------------------------
# Defines web forms using Flask-WTF for user input and validation.
# ==============================================================================

from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileRequired
from wtforms import StringField
from wtforms.validators import Length, Optional


class KPIUploadForm(FlaskForm):
    """Multipart upload for the preview and commit endpoints."""
    # Extension is checked against ALLOWED_EXTENSIONS by allowed_file().
    excelFile = FileField('KPI sheet', validators=[FileRequired(message='No file uploaded')])
    period = StringField('Period', validators=[Optional(), Length(max=64)])
