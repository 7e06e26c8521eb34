"""
Audit Logging Service
Provides an audit trail for asset and period operations
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List, Dict
import json
import logging

from assetledger.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    # Assets
    ASSET_CREATED = "ASSET_CREATED"
    ASSET_DISPOSED = "ASSET_DISPOSED"
    DEPRECIATION_POSTED = "DEPRECIATION_POSTED"

    # Periods
    PERIOD_LOCKED = "PERIOD_LOCKED"
    PERIOD_UNLOCKED = "PERIOD_UNLOCKED"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict] = None,
        new_values: Optional[Dict] = None,
        username: Optional[str] = None,
        tenant_id: Optional[int] = None,
        status: str = "success"
    ) -> AuditLog:
        """
        Add an audit log entry to the current transaction.

        The entry commits or rolls back together with the operation it
        describes, so a rolled-back posting leaves no audit record behind.

        Args:
            action: The action being performed (use AuditAction constants)
            resource_type: Type of resource being affected (e.g., 'FixedAsset')
            resource_id: ID of the affected resource
            description: Human-readable description of the action
            old_values: Dictionary of values before the change
            new_values: Dictionary of values after the change
            username: Actor performing the action
            tenant_id: Tenant context
            status: 'success' or 'failure'

        Returns:
            The pending AuditLog instance
        """
        audit_log = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            old_values=json.dumps(old_values, default=str) if old_values else None,
            new_values=json.dumps(new_values, default=str) if new_values else None,
            username=username,
            tenant_id=tenant_id,
            status=status
        )
        self.db.add(audit_log)

        logger.info(
            f"Audit: {action} {resource_type}(id={resource_id}) by user={username} "
            f"tenant={tenant_id} status={status}"
        )

        return audit_log

    def get_by_resource(
        self,
        resource_type: str,
        resource_id: int,
        tenant_id: int,
        limit: int = 50
    ) -> List[AuditLog]:
        """Get audit history for a specific resource"""
        return self.db.query(AuditLog).filter(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id,
            AuditLog.tenant_id == tenant_id
        ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).all()
