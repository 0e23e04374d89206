from sqlalchemy import Column, Integer, String, ForeignKey
from database.db import Base

class Student(Base):
    __tablename__ = "students"  # 학생 기본 정보 테이블

    reg_number = Column(String(50), primary_key=True, index=True)   # 학번 (Primary Key, 예: R0001234)
    name = Column(String(100), nullable=False)                      # 이름
    surname = Column(String(100), nullable=False)                   # 성
    gradelevel_class_id = Column(Integer, ForeignKey("gradelevel_classes.id"))  # 현재 소속 반
