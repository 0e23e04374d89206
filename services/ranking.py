"""
services/ranking.py

- 반/스트림 내 석차 계산 (Position Ranker)
- 동점자는 같은 석차, 다음 학생은 바로 다음 석차 (dense: 95, 95, 88 → 1, 1, 2)
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from services.grading import round_mark


@dataclass(frozen=True)
class CohortEntry:
    reg_number: str
    average_mark: Optional[float]


@dataclass(frozen=True)
class CohortPosition:
    reg_number: str
    position: int
    average_mark: float


def rank(entries: Iterable[CohortEntry]) -> List[CohortPosition]:
    # 성적이 없는 학생은 순위에서 제외
    scored = [e for e in entries if e.average_mark is not None]
    # 평균 내림차순, 동점이면 학번 순으로 출력 순서만 고정
    scored.sort(key=lambda e: (-e.average_mark, e.reg_number))

    positions: List[CohortPosition] = []
    position = 0
    previous: Optional[float] = None
    for entry in scored:
        if entry.average_mark != previous:
            position += 1
            previous = entry.average_mark
        positions.append(CohortPosition(entry.reg_number, position, entry.average_mark))
    return positions


def cohort_averages(subject_totals: Iterable[Tuple[str, float]]) -> List[CohortEntry]:
    """(학번, 과목 총점) 목록 → 학생별 평균 1건씩"""
    by_student: Dict[str, List[float]] = defaultdict(list)
    for reg_number, total in subject_totals:
        by_student[reg_number].append(total)
    return [
        CohortEntry(reg_number, round_mark(sum(totals) / len(totals)))
        for reg_number, totals in by_student.items()
    ]


def position_of(positions: Iterable[CohortPosition], reg_number: str) -> Optional[int]:
    for p in positions:
        if p.reg_number == reg_number:
            return p.position
    return None
