import os

# 설정 객체가 만들어지기 전에 테스트용 환경변수 지정
os.environ["SQLALCHEMY_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENV"] = "test"
os.environ["BILLING_API_BASE_URL"] = ""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from database.db import Base, SessionLocal, engine
from dependencies.security import create_access_token
from main import app
from models.balances import StudentBalance
from models.classes import GradelevelClass, Stream
from models.grading_criteria import GradingCriterion
from models.students import Student
from models.subjects import Subject, SubjectClass


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def staff_headers():
    token = create_access_token("teacher01", "staff")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers():
    def make(reg_number):
        token = create_access_token(f"student-{reg_number}", "student", reg_number=reg_number)
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest.fixture
def school(db):
    """
    Form 1A(1), Form 1B(2) 는 Sciences 스트림, Form 2A(3) 는 스트림 없음
    등급 기준: A 80-100 (12), B 60-79 (10), C 40-59 (5)
    """
    db.add(Stream(id=1, name="Sciences"))
    db.add_all([
        GradelevelClass(id=1, name="Form 1A", stream_id=1),
        GradelevelClass(id=2, name="Form 1B", stream_id=1),
        GradelevelClass(id=3, name="Form 2A", stream_id=None),
    ])
    db.add_all([Subject(id=1, name="Mathematics", code="MAT"), Subject(id=2, name="English", code="ENG")])
    db.add_all([
        SubjectClass(id=1, subject_id=1, gradelevel_class_id=1),
        SubjectClass(id=2, subject_id=2, gradelevel_class_id=1),
        SubjectClass(id=3, subject_id=1, gradelevel_class_id=2),
        SubjectClass(id=4, subject_id=1, gradelevel_class_id=3),
    ])
    db.add_all([
        Student(reg_number="S100", name="Tariro", surname="Moyo", gradelevel_class_id=1),
        Student(reg_number="S101", name="Farai", surname="Banda", gradelevel_class_id=1),
        Student(reg_number="S102", name="Nyasha", surname="Dube", gradelevel_class_id=1),
        Student(reg_number="S200", name="Rudo", surname="Ncube", gradelevel_class_id=2),
    ])
    db.add_all([
        GradingCriterion(grade="A", min_mark=80, max_mark=100, points=12, is_active=True),
        GradingCriterion(grade="B", min_mark=60, max_mark=79, points=10, is_active=True),
        GradingCriterion(grade="C", min_mark=40, max_mark=59, points=5, is_active=True),
    ])
    db.commit()
    return db


@pytest.fixture
def set_balance(db):
    def set_(reg_number, amount):
        row = db.get(StudentBalance, reg_number)
        if row is None:
            row = StudentBalance(student_reg_number=reg_number)
            db.add(row)
        row.current_balance = Decimal(str(amount))
        db.commit()
    return set_


@pytest.fixture
def put_result(client, staff_headers):
    """PUT /v1/results/ 호출 도우미"""
    def put(reg_number, subject_class_id, gradelevel_class_id, papers=None, coursework=None,
            term=1, academic_year=2025):
        body = {
            "reg_number": reg_number,
            "subject_class_id": subject_class_id,
            "gradelevel_class_id": gradelevel_class_id,
            "term": term,
            "academic_year": academic_year,
        }
        if coursework is not None:
            body["coursework_mark"] = coursework
        if papers is not None:
            body["paper_marks"] = [
                {"paper_name": f"Paper {i}", "mark": m} for i, m in enumerate(papers, start=1)
            ]
        return client.put("/v1/results/", json=body, headers=staff_headers)
    return put


@pytest.fixture
def no_publication_gate(monkeypatch):
    monkeypatch.setattr(settings, "RESULTS_REQUIRE_PUBLISHED", False)
