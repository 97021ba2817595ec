"""
Best-effort activity logging.

Audit failures never block card processing: every exception raised by the
repository is caught here and logged as a warning.
"""

import logging
from typing import Any, Dict, List, Optional

from .models import ActivityLogEntry, AuditAction, EntityType, RequestContext
from .repository import ActivityLogRepository

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Append-only audit sink wrapping ActivityLogRepository."""

    def __init__(self, repository: ActivityLogRepository):
        self.repository = repository

    def log(
        self,
        user_id: str,
        action: AuditAction,
        entity_type: EntityType = EntityType.SYSTEM,
        entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None
    ) -> bool:
        """
        Record one activity. Returns False when the write failed.

        Args:
            context: Client address and user agent when an HTTP request
                triggered the event; background events pass None
        """
        try:
            context = context or RequestContext()
            entry = ActivityLogEntry(
                user_id=user_id,
                action=AuditAction(action),
                entity_type=EntityType(entity_type),
                entity_id=entity_id,
                metadata=metadata or {},
                ip_address=context.ip_address,
                user_agent=context.user_agent
            )
            self.repository.append(entry)
            return True
        except Exception as e:
            logger.warning(f"Activity logging failed for {action}: {e}")
            return False

    def recent_activities(
        self,
        action: Optional[AuditAction] = None,
        user_id: Optional[str] = None,
        limit: int = 50
    ) -> List[ActivityLogEntry]:
        try:
            return self.repository.recent(action=action, user_id=user_id, limit=limit)
        except Exception as e:
            logger.warning(f"Failed to fetch activities: {e}")
            return []
