from sqlalchemy import Column, Integer, String, ForeignKey
from database.db import Base

class Subject(Base):
    __tablename__ = "subjects"  # 과목 정보 테이블

    id = Column(Integer, primary_key=True, index=True)         # 과목 고유 ID (Primary Key)
    name = Column(String(100), nullable=False)                 # 과목 이름 (예: Mathematics)
    code = Column(String(20))                                  # 과목 코드


class SubjectClass(Base):
    __tablename__ = "subject_classes"  # 학급별 개설 과목

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    gradelevel_class_id = Column(Integer, ForeignKey("gradelevel_classes.id"), nullable=False)
