# ==============================================================================
# fieldkpi/engine/__init__.py
# ------------------------------------------------------------------------------
# The KPI scoring and trigger engine. Nothing in this package imports Flask or
# the database layer; all I/O is injected at the batch boundary.
# ==============================================================================

from .definitions import EngineConfig
from .errors import BatchCancelled, ConfigurationError
from .pipeline import commit_upload, evaluate_batch, preview_upload

__all__ = ['EngineConfig', 'BatchCancelled', 'ConfigurationError',
           'commit_upload', 'evaluate_batch', 'preview_upload']
