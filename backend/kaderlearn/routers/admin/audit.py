"""
Audit trail helper shared by the admin routers.
"""

from typing import Any, Dict, Optional
from fastapi import Request
from sqlalchemy.orm import Session

from kaderlearn.models import AdminLog, Profile


def record_admin_action(
    db: Session,
    request: Request,
    admin: Profile,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> AdminLog:
    """
    Add an AdminLog row to the session. The caller commits it together with
    the change it describes.
    """
    admin_log = AdminLog.log_action(
        user_id=admin.id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    db.add(admin_log)
    return admin_log


def apply_changes(entity, update_data: Dict[str, Any]) -> Dict[str, Any]:
    """Set changed fields on ``entity`` and return {field: {old, new}}."""
    changes = {}
    for field, value in update_data.items():
        if hasattr(entity, field) and getattr(entity, field) != value:
            changes[field] = {
                "old": getattr(entity, field),
                "new": value
            }
            setattr(entity, field, value)
    return changes
