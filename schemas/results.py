"""
schemas/results.py

- 성적 입력/조회 스키마
- term 은 1~3 정수로 통일 ("Term 1" 형식도 허용)
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, ConfigDict, field_validator

TERMS = (1, 2, 3)


def parse_term(value: Union[str, int]) -> int:
    """ "Term 1" / "1" / 1 → 1 """
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("term"):
            text = text[4:].strip()
        if not text.isdigit():
            raise ValueError(f"invalid term: {value!r}")
        value = int(text)
    if value not in TERMS:
        raise ValueError(f"term must be one of {TERMS}")
    return value


class PaperMarkIn(BaseModel):
    paper_name: str = Field(..., min_length=1, max_length=100)   # 예: Paper 1
    mark: float = Field(..., ge=0, le=100)


class SubjectResultUpsert(BaseModel):
    reg_number: str = Field(..., min_length=1, max_length=50)
    subject_class_id: int
    gradelevel_class_id: int
    term: int
    academic_year: int = Field(..., ge=1900, le=2100)
    coursework_mark: Optional[float] = Field(default=None, ge=0, le=100)
    # None 이면 기존 시험지 점수 유지, 리스트면 통째로 교체
    paper_marks: Optional[List[PaperMarkIn]] = None

    @field_validator("term", mode="before")
    @classmethod
    def _term(cls, v):
        return parse_term(v)

    @field_validator("paper_marks")
    @classmethod
    def _unique_papers(cls, v):
        if v is None:
            return v
        names = [p.paper_name.strip().lower() for p in v]
        if len(names) != len(set(names)):
            raise ValueError("paper names must be unique within a result")
        return v


class PaperMarkRecord(BaseModel):
    result_id: int
    paper_name: str = Field(..., min_length=1, max_length=100)
    mark: float = Field(..., ge=0, le=100)


class PublishRequest(BaseModel):
    academic_year: int = Field(..., ge=1900, le=2100)
    term: int
    is_published: bool = True

    @field_validator("term", mode="before")
    @classmethod
    def _term(cls, v):
        return parse_term(v)


# ==========================================================
# 출력용
# ==========================================================

class PaperMarkOut(BaseModel):
    id: Optional[int] = None
    paper_name: str
    mark: float

    model_config = ConfigDict(from_attributes=True)


class SubjectResultView(BaseModel):
    id: int
    reg_number: str
    subject_class_id: int
    subject_name: Optional[str] = None
    gradelevel_class_id: int
    academic_year: int
    term: int
    coursework_mark: Optional[float] = None
    paper_marks: List[PaperMarkOut] = []
    total_mark: float
    grade: str
    points: int
    updated_at: Optional[datetime] = None


class StudentResults(BaseModel):
    student_reg_number: str
    academic_year: int
    term: int
    results: List[SubjectResultView]
    class_position: Optional[int] = None
    stream_position: Optional[int] = None
    total_subjects: int
    current_balance: Optional[float] = None


class CohortStudent(BaseModel):
    reg_number: str
    name: Optional[str] = None
    gradelevel_class_id: Optional[int] = None
    average_mark: float
    grade: str
    points: int
    position: int
    subjects: int


class CohortResults(BaseModel):
    cohort: str                       # "class" | "stream"
    cohort_id: int
    academic_year: int
    term: int
    per_student: List[CohortStudent]
    total_students: int


# ==========================================================
# 분석용 (성적 분포 / 상·하위 학생)
# ==========================================================

class GradeDistributionEntry(BaseModel):
    grade: str
    points: int
    count: int
    percentage: float


class GradeDistribution(BaseModel):
    total_results: int
    grade_distribution: List[GradeDistributionEntry]


class PerformerEntry(BaseModel):
    reg_number: str
    name: Optional[str] = None
    gradelevel_class_id: Optional[int] = None
    average_mark: float
    result_count: int
    highest_mark: float


class PerformersReport(BaseModel):
    top_performers: List[PerformerEntry]
    bottom_performers: List[PerformerEntry]
