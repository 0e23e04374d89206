"""
services/grading.py

- 점수 집계(Mark Aggregator)와 등급 산출(Grade Resolver)
- DB 접근 없음: 라우터/서비스에서 조회한 값을 받아 계산만 수행
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from models.grading_criteria import GradingCriterion

NO_GRADE = "N/A"


@dataclass(frozen=True)
class MarkAggregate:
    total_mark: float


@dataclass(frozen=True)
class GradeResult:
    grade: str
    points: int


def round_mark(value: float) -> float:
    """소수 둘째 자리 반올림 (half-up)"""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def aggregate(coursework_mark: Optional[float], paper_marks: Iterable[Optional[float]]) -> MarkAggregate:
    """
    과목 총점 계산
    - 0 또는 비어 있는 시험지 점수는 평균에서 제외 (0점 처리 아님)
    - 수행평가(coursework_mark)는 별도로 보관/표시만 하고 총점에는 반영하지 않음
    """
    valid = [float(m) for m in paper_marks if m is not None and float(m) > 0]
    if not valid:
        return MarkAggregate(total_mark=0.0)
    return MarkAggregate(total_mark=round_mark(sum(valid) / len(valid)))


def matching_criterion(total_mark: float, criteria: Iterable[GradingCriterion]) -> Optional[GradingCriterion]:
    # 활성 기준 중 저장 순서상 첫 번째로 범위에 들어가는 기준
    for criterion in criteria:
        if not criterion.is_active:
            continue
        if criterion.min_mark <= total_mark <= criterion.max_mark:
            return criterion
    return None


def resolve_grade(total_mark: float, criteria: Iterable[GradingCriterion]) -> GradeResult:
    criterion = matching_criterion(total_mark, criteria)
    if criterion is None:
        return GradeResult(grade=NO_GRADE, points=0)
    return GradeResult(grade=criterion.grade, points=int(criterion.points))


def ranges_overlap(min_a: float, max_a: float, min_b: float, max_b: float) -> bool:
    return min_a <= max_b and min_b <= max_a
