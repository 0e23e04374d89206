from sqlalchemy import Column, Integer, Boolean, DateTime, UniqueConstraint
from database.db import Base

class PublishedResult(Base):
    __tablename__ = "published_results"  # 학기별 성적 게시 여부
    __table_args__ = (UniqueConstraint("academic_year", "term", name="uq_published_period"),)

    id = Column(Integer, primary_key=True, index=True)
    academic_year = Column(Integer, nullable=False)      # 학년도
    term = Column(Integer, nullable=False)               # 학기
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime)                      # 마지막 게시 시각
