from sqlalchemy import Column, Numeric, String
from database.db import Base

class StudentBalance(Base):
    __tablename__ = "student_balances"  # 학생 수납 잔액 (billing 소유, 여기서는 읽기 전용)

    student_reg_number = Column(String(50), primary_key=True)    # 학번
    current_balance = Column(Numeric(12, 2), nullable=False, default=0)  # 음수 = 미납(DR)
