import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models.audit_logs import AuditLog

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    action: str,
    table: str,
    record_id: Any,
    user: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """감사 로그 추가 (커밋은 호출한 쪽 트랜잭션과 함께)"""
    user = user or {}
    db.add(AuditLog(
        action=action,
        table_name=table,
        record_id=str(record_id) if record_id is not None else None,
        user_id=user.get("sub"),
        details=details,
        ip_address=user.get("ip"),
        user_agent=user.get("user_agent"),
    ))
    logger.info(f"{action} {table}#{record_id} by {user.get('sub')}")
