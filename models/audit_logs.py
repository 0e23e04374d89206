from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, JSON
from database.db import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"  # 변경 이력

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(50), nullable=False)          # 예: RESULT_UPDATED
    table_name = Column(String(50), nullable=False)      # 대상 테이블
    record_id = Column(String(50))                       # 대상 레코드 ID
    user_id = Column(String(100))                        # 작업자 (토큰 sub)
    details = Column(JSON)                               # 변경 내용
    ip_address = Column(String(45))
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
