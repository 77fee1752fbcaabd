"""API routes"""

from reportsync.api import integrations, reports, webhooks

__all__ = ["integrations", "reports", "webhooks"]
