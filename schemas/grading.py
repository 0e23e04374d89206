from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional

# ✅ 입력용 (POST/PUT)
class GradingCriterionCreate(BaseModel):
    grade: str = Field(..., min_length=1, max_length=10)      # 등급 (예: A)
    min_mark: float = Field(..., ge=0, le=100)                # 최소 점수 (포함)
    max_mark: float = Field(..., ge=0, le=100)                # 최대 점수 (포함)
    points: int = Field(..., ge=0)                            # 등급 점수
    description: Optional[str] = Field(default=None, max_length=255)
    is_active: bool = True

    @field_validator("grade")
    @classmethod
    def _strip_grade(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("grade must not be blank")
        return v

# ✅ 출력용 (GET)
class GradingCriterion(GradingCriterionCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


# ✅ 등급 계산 요청
class MarkRequest(BaseModel):
    mark: float

class BulkMarkRequest(BaseModel):
    marks: List[float]

# ✅ 등급 계산 결과
class GradeOut(BaseModel):
    mark: Optional[float] = None
    grade: str
    points: int
