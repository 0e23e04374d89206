from sqlalchemy import Column, Integer, Float, String, Boolean
from database.db import Base

class GradingCriterion(Base):
    __tablename__ = "grading_criteria"  # 등급 기준 테이블

    id = Column(Integer, primary_key=True, index=True)     # 기준 고유 ID (Primary Key)
    grade = Column(String(10), nullable=False)             # 등급 (예: A, B, C)
    min_mark = Column(Float, nullable=False)               # 최소 점수 (포함)
    max_mark = Column(Float, nullable=False)               # 최대 점수 (포함)
    points = Column(Integer, nullable=False, default=0)    # 등급 점수 (GPA 방식 집계용)
    description = Column(String(255))                      # 설명 (예: Distinction)
    is_active = Column(Boolean, nullable=False, default=True)  # 비활성 기준은 이력 보존용
