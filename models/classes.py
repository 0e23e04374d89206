from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from database.db import Base

class Stream(Base):
    __tablename__ = "streams"  # 계열(스트림) 테이블

    id = Column(Integer, primary_key=True, index=True)      # 스트림 고유 ID (PK)
    name = Column(String(100), nullable=False)              # 스트림 이름 (예: Sciences)

    classes = relationship("GradelevelClass", back_populates="stream")


class GradelevelClass(Base):
    __tablename__ = "gradelevel_classes"

    id = Column(Integer, primary_key=True, index=True)      # 학급 고유 ID (PK)
    name = Column(String(100), nullable=False)              # 학급 이름 (예: Form 1A)

    # ==========================================================
    # [관계 설정]
    # ==========================================================

    # ✅ 소속 스트림 ID (FK, 없을 수 있음)
    #    - 스트림 순위는 같은 stream_id를 가진 모든 학급을 합쳐 계산
    stream_id = Column(Integer, ForeignKey("streams.id"), nullable=True)

    stream = relationship("Stream", back_populates="classes")
