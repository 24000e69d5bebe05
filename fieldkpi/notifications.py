# ==============================================================================
# fieldkpi/notifications.py
# ------------------------------------------------------------------------------
# Default notification dispatcher. Delivery (email, chat) is owned by another
# service; this one records what would be sent.
# ==============================================================================

import logging

logger = logging.getLogger(__name__)


class LoggingDispatcher:
    """Logs every notification request and keeps the ones it has sent."""

    def __init__(self):
        self.sent = []

    def dispatch(self, recipient_role, template_key, variables):
        logger.info(f"Notification '{template_key}' -> {recipient_role}: "
                    f"{variables.get('employeeName')} ({variables.get('period')}), "
                    f"score {variables.get('kpiScore')}")
        self.sent.append((recipient_role, template_key, variables))
