from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database.db import Base

class SubjectResult(Base):
    __tablename__ = "results"  # 과목별 성적 테이블
    __table_args__ = (
        UniqueConstraint(
            "reg_number", "subject_class_id", "gradelevel_class_id", "academic_year", "term",
            name="uq_results_student_subject_period",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)                 # 성적 고유 ID (Primary Key)
    reg_number = Column(String(50), ForeignKey("students.reg_number"), nullable=False, index=True)
    subject_class_id = Column(Integer, ForeignKey("subject_classes.id"), nullable=False)
    gradelevel_class_id = Column(Integer, ForeignKey("gradelevel_classes.id"), nullable=False, index=True)
    academic_year = Column(Integer, nullable=False)                    # 학년도 (예: 2025)
    term = Column(Integer, nullable=False)                             # 학기 (1~3)
    coursework_mark = Column(Float, nullable=True)                     # 수행평가 점수 (표시용, 합산 제외)

    # 아래 세 값은 파생 값: 조회 시 항상 paper_marks 로부터 다시 계산
    total_mark = Column(Float, nullable=False, default=0)
    grade = Column(String(10))
    points = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    paper_marks = relationship(
        "PaperMark",
        back_populates="result",
        cascade="all, delete-orphan",
        order_by="PaperMark.id",
    )


class PaperMark(Base):
    __tablename__ = "paper_marks"  # 시험지(Paper)별 점수

    id = Column(Integer, primary_key=True, index=True)
    result_id = Column(Integer, ForeignKey("results.id", ondelete="CASCADE"), nullable=False, index=True)
    paper_name = Column(String(100), nullable=False)                   # 예: Paper 1
    mark = Column(Float, nullable=False)                               # 0~100

    result = relationship("SubjectResult", back_populates="paper_marks")
