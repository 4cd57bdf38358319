"""
AgriAdvisor Core Module
Exports the server-side building blocks
"""

from .models import (
    Base,
    SyncType,
    OutbreakSeverity,
    OutbreakStatus,
    AlertType,
    derive_severity,
    build_cluster_key
)
from .reconcilers import ReconcilerRegistry, ReconciliationError, create_default_registry
from .sync_service import SyncService, SyncItem
from .outbreaks import OutbreakService, OutbreakNotFoundError
from .notification_engine import (
    NotificationEngine,
    NotificationChannel,
    LogChannel,
    WebhookChannel,
    Notification,
    OutbreakAlertDispatcher
)

__all__ = [
    'Base',
    'SyncType',
    'OutbreakSeverity',
    'OutbreakStatus',
    'AlertType',
    'derive_severity',
    'build_cluster_key',
    'ReconcilerRegistry',
    'ReconciliationError',
    'create_default_registry',
    'SyncService',
    'SyncItem',
    'OutbreakService',
    'OutbreakNotFoundError',
    'NotificationEngine',
    'NotificationChannel',
    'LogChannel',
    'WebhookChannel',
    'Notification',
    'OutbreakAlertDispatcher'
]
