"""
services/results_service.py

- 성적 조회/입력의 단일 진입점 (라우터는 이 모듈만 호출)
- 조회 시 저장된 total_mark/grade/points 는 신뢰하지 않고 항상 시험지 점수와 현재 등급 기준으로 다시 계산
- 학생 포털 경로: 잔액 확인 → 게시 여부 확인 → 조회/계산 → 석차
- 교직원 경로: 잔액 확인 없이 조회/계산 → 석차
"""

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from config.settings import settings
from models.classes import GradelevelClass
from models.grading_criteria import GradingCriterion
from models.published_results import PublishedResult
from models.results import PaperMark, SubjectResult
from models.students import Student
from models.subjects import Subject, SubjectClass
from schemas.grading import GradingCriterionCreate
from schemas.results import (
    CohortResults,
    CohortStudent,
    GradeDistribution,
    GradeDistributionEntry,
    PaperMarkOut,
    PerformerEntry,
    PerformersReport,
    StudentResults,
    SubjectResultUpsert,
    SubjectResultView,
)
from services.audit import log_action
from services.balance_gate import BalanceStatus, ensure_can_view_results
from services.billing_client import BalanceProvider, BillingResponseError
from services.exceptions import (
    CriterionNotFound,
    PersistenceFailure,
    ResultNotFound,
    ResultsNotPublished,
    ResultsValidationError,
    StudentNotFound,
)
from services.grading import GradeResult, aggregate, matching_criterion, ranges_overlap, resolve_grade, round_mark
from services.ranking import CohortPosition, cohort_averages, position_of, rank

logger = logging.getLogger(__name__)

User = Optional[Dict[str, Any]]


def persistence_guard(operation: str):
    """SQLAlchemy 오류 → 롤백 후 PersistenceFailure 로 변환 (재시도 없음)"""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(db: Session, *args, **kwargs):
            try:
                return fn(db, *args, **kwargs)
            except SQLAlchemyError:
                db.rollback()
                logger.exception(f"DB 오류: {operation}")
                raise PersistenceFailure(operation)
        return wrapper
    return decorator


# ==========================================================
# [내부] 조회/계산 도우미
# ==========================================================

def _active_criteria(db: Session) -> List[GradingCriterion]:
    return (
        db.query(GradingCriterion)
        .filter(GradingCriterion.is_active.is_(True))
        .order_by(GradingCriterion.id)
        .all()
    )


def _results_query(db: Session):
    return (
        db.query(SubjectResult, Subject.name)
        .outerjoin(SubjectClass, SubjectClass.id == SubjectResult.subject_class_id)
        .outerjoin(Subject, Subject.id == SubjectClass.subject_id)
        .options(selectinload(SubjectResult.paper_marks))
    )


def _to_view(result: SubjectResult, subject_name: Optional[str], criteria: List[GradingCriterion]) -> SubjectResultView:
    total = aggregate(result.coursework_mark, [pm.mark for pm in result.paper_marks]).total_mark
    graded = resolve_grade(total, criteria)
    return SubjectResultView(
        id=result.id,
        reg_number=result.reg_number,
        subject_class_id=result.subject_class_id,
        subject_name=subject_name,
        gradelevel_class_id=result.gradelevel_class_id,
        academic_year=result.academic_year,
        term=result.term,
        coursework_mark=result.coursework_mark,
        paper_marks=[PaperMarkOut.model_validate(pm) for pm in result.paper_marks],
        total_mark=total,
        grade=graded.grade,
        points=graded.points,
        updated_at=result.updated_at,
    )


def _views(rows: Iterable[Tuple[SubjectResult, Optional[str]]], criteria: List[GradingCriterion]) -> List[SubjectResultView]:
    return [_to_view(result, subject_name, criteria) for result, subject_name in rows]


def _recompute_stored(result: SubjectResult, criteria: List[GradingCriterion]) -> None:
    # 저장 컬럼도 갱신하지만 조회는 이 값을 쓰지 않음
    total = aggregate(result.coursework_mark, [pm.mark for pm in result.paper_marks]).total_mark
    graded = resolve_grade(total, criteria)
    result.total_mark = total
    result.grade = graded.grade
    result.points = graded.points


def _rank_views(views: List[SubjectResultView]) -> List[CohortPosition]:
    return rank(cohort_averages((v.reg_number, v.total_mark) for v in views))


def _cohort_views(db: Session, class_ids: List[int], term: int, academic_year: int,
                  criteria: List[GradingCriterion]) -> List[SubjectResultView]:
    if not class_ids:
        return []
    rows = (
        _results_query(db)
        .filter(
            SubjectResult.gradelevel_class_id.in_(class_ids),
            SubjectResult.term == term,
            SubjectResult.academic_year == academic_year,
        )
        .all()
    )
    return _views(rows, criteria)


def _stream_class_ids(db: Session, stream_id: int) -> List[int]:
    rows = db.query(GradelevelClass.id).filter(GradelevelClass.stream_id == stream_id).all()
    return [r[0] for r in rows]


def _cohort_students(db: Session, views: List[SubjectResultView], criteria: List[GradingCriterion]) -> List[CohortStudent]:
    positions = _rank_views(views)
    reg_numbers = [p.reg_number for p in positions]
    students = {}
    if reg_numbers:
        students = {
            s.reg_number: s
            for s in db.query(Student).filter(Student.reg_number.in_(reg_numbers)).all()
        }
    subject_counts: Dict[str, int] = {}
    class_of: Dict[str, int] = {}
    for v in views:
        subject_counts[v.reg_number] = subject_counts.get(v.reg_number, 0) + 1
        class_of.setdefault(v.reg_number, v.gradelevel_class_id)

    per_student = []
    for p in positions:
        graded = resolve_grade(p.average_mark, criteria)
        student = students.get(p.reg_number)
        per_student.append(CohortStudent(
            reg_number=p.reg_number,
            name=f"{student.name} {student.surname}" if student else None,
            gradelevel_class_id=class_of.get(p.reg_number),
            average_mark=p.average_mark,
            grade=graded.grade,
            points=graded.points,
            position=p.position,
            subjects=subject_counts.get(p.reg_number, 0),
        ))
    return per_student


# ==========================================================
# [조회] 학생/반/스트림 성적
# ==========================================================

def is_published(db: Session, academic_year: int, term: int) -> bool:
    row = (
        db.query(PublishedResult)
        .filter(PublishedResult.academic_year == academic_year, PublishedResult.term == term)
        .first()
    )
    return bool(row and row.is_published)


@persistence_guard("check balance status")
def get_balance_status(db: Session, reg_number: str, balance_provider: BalanceProvider) -> BalanceStatus:
    try:
        return balance_provider.get_balance_status(reg_number)
    except (httpx.HTTPError, BillingResponseError):
        logger.exception(f"billing 잔액 조회 실패: reg_number={reg_number}")
        raise PersistenceFailure("check balance status")


def _check_portal_access(db: Session, reg_number: str, academic_year: int, term: int,
                         balance_provider: BalanceProvider) -> BalanceStatus:
    balance = get_balance_status(db, reg_number, balance_provider)
    ensure_can_view_results(balance)
    if settings.RESULTS_REQUIRE_PUBLISHED and not is_published(db, academic_year, term):
        logger.info(f"미게시 성적 조회 시도: reg_number={reg_number}, {academic_year}/{term}")
        raise ResultsNotPublished(academic_year, term)
    return balance


@persistence_guard("load student results")
def get_student_results(
    db: Session,
    reg_number: str,
    term: int,
    academic_year: int,
    gradelevel_class_id: Optional[int] = None,
    *,
    portal: bool = False,
    balance_provider: Optional[BalanceProvider] = None,
) -> StudentResults:
    current_balance = None
    if portal:
        if balance_provider is None:
            raise ValueError("portal access requires a balance provider")
        current_balance = float(_check_portal_access(db, reg_number, academic_year, term, balance_provider).current_balance)

    criteria = _active_criteria(db)
    query = _results_query(db).filter(
        SubjectResult.reg_number == reg_number,
        SubjectResult.term == term,
        SubjectResult.academic_year == academic_year,
    )
    if gradelevel_class_id is not None:
        query = query.filter(SubjectResult.gradelevel_class_id == gradelevel_class_id)
    views = _views(query.order_by(Subject.name).all(), criteria)

    empty = StudentResults(
        student_reg_number=reg_number,
        academic_year=academic_year,
        term=term,
        results=[],
        total_subjects=0,
        current_balance=current_balance,
    )
    if not views:
        return empty

    class_id = gradelevel_class_id if gradelevel_class_id is not None else views[0].gradelevel_class_id
    class_position = position_of(
        _rank_views(_cohort_views(db, [class_id], term, academic_year, criteria)), reg_number
    )

    stream_position = None
    gradelevel_class = db.query(GradelevelClass).filter(GradelevelClass.id == class_id).first()
    if gradelevel_class and gradelevel_class.stream_id:
        stream_ids = _stream_class_ids(db, gradelevel_class.stream_id)
        stream_position = position_of(
            _rank_views(_cohort_views(db, stream_ids, term, academic_year, criteria)), reg_number
        )

    return empty.model_copy(update={
        "results": views,
        "class_position": class_position,
        "stream_position": stream_position,
        "total_subjects": len(views),
    })


@persistence_guard("load class results")
def get_class_results(db: Session, gradelevel_class_id: int, term: int, academic_year: int) -> CohortResults:
    criteria = _active_criteria(db)
    views = _cohort_views(db, [gradelevel_class_id], term, academic_year, criteria)
    per_student = _cohort_students(db, views, criteria)
    return CohortResults(
        cohort="class",
        cohort_id=gradelevel_class_id,
        academic_year=academic_year,
        term=term,
        per_student=per_student,
        total_students=len(per_student),
    )


@persistence_guard("load stream results")
def get_stream_results(db: Session, stream_id: int, term: int, academic_year: int) -> CohortResults:
    criteria = _active_criteria(db)
    views = _cohort_views(db, _stream_class_ids(db, stream_id), term, academic_year, criteria)
    per_student = _cohort_students(db, views, criteria)
    return CohortResults(
        cohort="stream",
        cohort_id=stream_id,
        academic_year=academic_year,
        term=term,
        per_student=per_student,
        total_students=len(per_student),
    )


@persistence_guard("load results")
def list_results(
    db: Session,
    gradelevel_class_id: int,
    term: int,
    academic_year: int,
    subject_class_id: Optional[int] = None,
    page: int = 1,
    size: int = 20,
) -> Tuple[int, List[SubjectResultView]]:
    filters = [
        SubjectResult.gradelevel_class_id == gradelevel_class_id,
        SubjectResult.term == term,
        SubjectResult.academic_year == academic_year,
    ]
    if subject_class_id is not None:
        filters.append(SubjectResult.subject_class_id == subject_class_id)
    total = db.query(func.count(SubjectResult.id)).filter(*filters).scalar() or 0
    rows = (
        _results_query(db)
        .filter(*filters)
        .outerjoin(Student, Student.reg_number == SubjectResult.reg_number)
        .order_by(Student.surname, Student.name, SubjectResult.id)
        .offset((page - 1) * size)
        .limit(size)
        .all()
    )
    return total, _views(rows, _active_criteria(db))


@persistence_guard("load available periods")
def available_periods(db: Session, reg_number: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(
            SubjectResult.academic_year,
            SubjectResult.term,
            func.count(SubjectResult.id).label("result_count"),
            PublishedResult.published_at,
        )
        .join(
            PublishedResult,
            and_(
                PublishedResult.academic_year == SubjectResult.academic_year,
                PublishedResult.term == SubjectResult.term,
            ),
        )
        .filter(SubjectResult.reg_number == reg_number, PublishedResult.is_published.is_(True))
        .group_by(SubjectResult.academic_year, SubjectResult.term, PublishedResult.published_at)
        .order_by(SubjectResult.academic_year.desc(), SubjectResult.term.desc())
        .all()
    )
    return [
        {
            "academic_year": r.academic_year,
            "term": r.term,
            "term_label": f"Term {r.term}",
            "result_count": r.result_count,
            "published_at": r.published_at,
        }
        for r in rows
    ]


# ==========================================================
# [분석] 등급 분포 / 상·하위 학생
# - 저장된 grade 컬럼이 아니라 다시 계산한 값으로 집계
# ==========================================================

def _filtered_views(
    db: Session,
    academic_year: Optional[int],
    term: Optional[int],
    gradelevel_class_id: Optional[int],
    subject_class_id: Optional[int],
) -> List[SubjectResultView]:
    query = _results_query(db)
    if academic_year is not None:
        query = query.filter(SubjectResult.academic_year == academic_year)
    if term is not None:
        query = query.filter(SubjectResult.term == term)
    if gradelevel_class_id is not None:
        query = query.filter(SubjectResult.gradelevel_class_id == gradelevel_class_id)
    if subject_class_id is not None:
        query = query.filter(SubjectResult.subject_class_id == subject_class_id)
    return _views(query.all(), _active_criteria(db))


@persistence_guard("load grade distribution")
def grade_distribution(
    db: Session,
    academic_year: Optional[int] = None,
    term: Optional[int] = None,
    gradelevel_class_id: Optional[int] = None,
    subject_class_id: Optional[int] = None,
) -> GradeDistribution:
    """
    등급별 성적 건수와 비율(%)
    - 점수(points) 높은 등급부터, 같은 점수면 등급명 순
    """
    views = _filtered_views(db, academic_year, term, gradelevel_class_id, subject_class_id)
    counts: Dict[Tuple[str, int], int] = {}
    for v in views:
        key = (v.grade, v.points)
        counts[key] = counts.get(key, 0) + 1

    total = len(views)
    entries = [
        GradeDistributionEntry(
            grade=grade,
            points=points,
            count=count,
            percentage=round_mark(count * 100 / total),
        )
        for (grade, points), count in sorted(counts.items(), key=lambda item: (-item[0][1], item[0][0]))
    ]
    return GradeDistribution(total_results=total, grade_distribution=entries)


@persistence_guard("load top and bottom performers")
def top_bottom_performers(
    db: Session,
    academic_year: Optional[int] = None,
    term: Optional[int] = None,
    gradelevel_class_id: Optional[int] = None,
    subject_class_id: Optional[int] = None,
    page: int = 1,
    size: int = 10,
) -> Tuple[int, PerformersReport]:
    """
    학생별 평균 점수 기준 상위/하위 목록 (같은 페이지 번호로 양쪽을 함께 페이지네이션)
    - 반환값: (학생 수, 보고서)
    """
    views = _filtered_views(db, academic_year, term, gradelevel_class_id, subject_class_id)
    marks: Dict[str, List[float]] = {}
    class_of: Dict[str, int] = {}
    for v in views:
        marks.setdefault(v.reg_number, []).append(v.total_mark)
        class_of.setdefault(v.reg_number, v.gradelevel_class_id)

    students = {}
    if marks:
        students = {
            s.reg_number: s
            for s in db.query(Student).filter(Student.reg_number.in_(list(marks))).all()
        }

    summaries = []
    for reg_number, totals in marks.items():
        student = students.get(reg_number)
        summaries.append(PerformerEntry(
            reg_number=reg_number,
            name=f"{student.name} {student.surname}" if student else None,
            gradelevel_class_id=class_of.get(reg_number),
            average_mark=round_mark(sum(totals) / len(totals)),
            result_count=len(totals),
            highest_mark=max(totals),
        ))

    start = (page - 1) * size
    top = sorted(summaries, key=lambda s: (-s.average_mark, s.reg_number))
    bottom = sorted(summaries, key=lambda s: (s.average_mark, s.reg_number))
    report = PerformersReport(
        top_performers=top[start:start + size],
        bottom_performers=bottom[start:start + size],
    )
    return len(summaries), report


# ==========================================================
# [등급 기준] 조회/추가/수정/삭제
# ==========================================================

@persistence_guard("load grading criteria")
def list_grading_criteria(db: Session) -> List[GradingCriterion]:
    return (
        db.query(GradingCriterion)
        .filter(GradingCriterion.is_active.is_(True))
        .order_by(GradingCriterion.min_mark.desc())
        .all()
    )


@persistence_guard("load grading criteria")
def get_grading_criterion(db: Session, criterion_id: int) -> GradingCriterion:
    criterion = db.query(GradingCriterion).filter(GradingCriterion.id == criterion_id).first()
    if criterion is None:
        raise CriterionNotFound(criterion_id)
    return criterion


def _validate_criterion(db: Session, payload: GradingCriterionCreate, exclude_id: Optional[int]) -> None:
    if payload.min_mark > payload.max_mark:
        raise ResultsValidationError("Min mark cannot be greater than max mark", field="min_mark")
    if not payload.is_active:
        return

    others = db.query(GradingCriterion).filter(GradingCriterion.is_active.is_(True))
    if exclude_id is not None:
        others = others.filter(GradingCriterion.id != exclude_id)
    for other in others.all():
        if other.grade == payload.grade:
            raise ResultsValidationError("Grade already exists", field="grade")
        if ranges_overlap(payload.min_mark, payload.max_mark, other.min_mark, other.max_mark):
            raise ResultsValidationError(
                f"Mark range overlaps with existing grading criteria ({other.grade})", field="min_mark"
            )


@persistence_guard("save grading criteria")
def upsert_grading_criterion(
    db: Session,
    payload: GradingCriterionCreate,
    criterion_id: Optional[int] = None,
    user: User = None,
) -> GradingCriterion:
    if criterion_id is not None:
        criterion = db.query(GradingCriterion).filter(GradingCriterion.id == criterion_id).first()
        if criterion is None:
            raise CriterionNotFound(criterion_id)
        action = "GRADING_CRITERIA_UPDATED"
    else:
        criterion = None
        action = "GRADING_CRITERIA_CREATED"

    _validate_criterion(db, payload, criterion_id)

    if criterion is None:
        criterion = GradingCriterion()
        db.add(criterion)
    for key, value in payload.model_dump().items():
        setattr(criterion, key, value)
    db.flush()
    log_action(db, action, "grading_criteria", criterion.id, user, payload.model_dump())
    db.commit()
    db.refresh(criterion)
    return criterion


def _criterion_in_use(db: Session, criterion: GradingCriterion) -> bool:
    # 저장된 grade 컬럼이 아니라 현재 기준으로 다시 계산한 결과로 판단
    criteria = _active_criteria(db)
    results = db.query(SubjectResult).options(selectinload(SubjectResult.paper_marks)).all()
    for result in results:
        total = aggregate(result.coursework_mark, [pm.mark for pm in result.paper_marks]).total_mark
        matched = matching_criterion(total, criteria)
        if matched is not None and matched.id == criterion.id:
            return True
    return False


@persistence_guard("delete grading criteria")
def delete_grading_criterion(db: Session, criterion_id: int, user: User = None) -> str:
    """
    성적에서 이미 사용 중인 등급이면 비활성화(이력 보존), 아니면 실제 삭제
    - 반환값: "deactivated" | "deleted"
    """
    criterion = db.query(GradingCriterion).filter(GradingCriterion.id == criterion_id).first()
    if criterion is None:
        raise CriterionNotFound(criterion_id)

    if _criterion_in_use(db, criterion):
        criterion.is_active = False
        mode = "deactivated"
    else:
        db.delete(criterion)
        mode = "deleted"

    log_action(db, "GRADING_CRITERIA_DELETED", "grading_criteria", criterion_id, user, {"mode": mode})
    db.commit()
    return mode


@persistence_guard("calculate grade")
def calculate_grades(db: Session, marks: List[float]) -> List[GradeResult]:
    criteria = _active_criteria(db)
    return [resolve_grade(mark, criteria) for mark in marks]


def calculate_grade(db: Session, mark: float) -> GradeResult:
    return calculate_grades(db, [mark])[0]


# ==========================================================
# [성적 입력] 추가/수정/삭제
# ==========================================================

def _load_result(db: Session, result_id: int) -> SubjectResult:
    result = db.query(SubjectResult).filter(SubjectResult.id == result_id).first()
    if result is None:
        raise ResultNotFound(result_id)
    return result


def _result_view(db: Session, result_id: int) -> SubjectResultView:
    row = _results_query(db).filter(SubjectResult.id == result_id).first()
    return _to_view(row[0], row[1], _active_criteria(db))


@persistence_guard("save result")
def upsert_subject_result(db: Session, payload: SubjectResultUpsert, user: User = None) -> SubjectResultView:
    student = db.query(Student).filter(Student.reg_number == payload.reg_number).first()
    if student is None:
        raise StudentNotFound(payload.reg_number)

    result = (
        db.query(SubjectResult)
        .filter(
            SubjectResult.reg_number == payload.reg_number,
            SubjectResult.subject_class_id == payload.subject_class_id,
            SubjectResult.gradelevel_class_id == payload.gradelevel_class_id,
            SubjectResult.academic_year == payload.academic_year,
            SubjectResult.term == payload.term,
        )
        .first()
    )
    created = result is None
    if created:
        result = SubjectResult(
            reg_number=payload.reg_number,
            subject_class_id=payload.subject_class_id,
            gradelevel_class_id=payload.gradelevel_class_id,
            academic_year=payload.academic_year,
            term=payload.term,
        )
        db.add(result)

    if "coursework_mark" in payload.model_fields_set:
        result.coursework_mark = payload.coursework_mark
    if payload.paper_marks is not None:
        result.paper_marks = [
            PaperMark(paper_name=p.paper_name.strip(), mark=p.mark) for p in payload.paper_marks
        ]

    _recompute_stored(result, _active_criteria(db))
    db.flush()
    log_action(
        db,
        "RESULT_CREATED" if created else "RESULT_UPDATED",
        "results",
        result.id,
        user,
        payload.model_dump(),
    )
    db.commit()
    logger.info(f"성적 저장: reg_number={payload.reg_number}, result_id={result.id}, total={result.total_mark}")
    return _result_view(db, result.id)


@persistence_guard("save paper mark")
def record_paper_mark(db: Session, result_id: int, paper_name: str, mark: float, user: User = None) -> SubjectResultView:
    result = _load_result(db, result_id)
    paper_name = paper_name.strip()
    existing = next(
        (pm for pm in result.paper_marks if pm.paper_name.lower() == paper_name.lower()), None
    )
    if existing is not None:
        existing.mark = mark
    else:
        result.paper_marks.append(PaperMark(paper_name=paper_name, mark=mark))

    _recompute_stored(result, _active_criteria(db))
    log_action(db, "PAPER_MARK_SAVED", "paper_marks", result_id, user, {"paper_name": paper_name, "mark": mark})
    db.commit()
    return _result_view(db, result_id)


@persistence_guard("delete result")
def delete_subject_result(db: Session, result_id: int, user: User = None) -> None:
    result = _load_result(db, result_id)
    # paper_marks 는 cascade 로 함께 삭제
    db.delete(result)
    log_action(db, "RESULT_DELETED", "results", result_id, user, {"result_id": result_id})
    db.commit()


@persistence_guard("update publication")
def set_publication(db: Session, academic_year: int, term: int, is_published: bool, user: User = None) -> PublishedResult:
    row = (
        db.query(PublishedResult)
        .filter(PublishedResult.academic_year == academic_year, PublishedResult.term == term)
        .first()
    )
    if row is None:
        row = PublishedResult(academic_year=academic_year, term=term)
        db.add(row)
    row.is_published = is_published
    if is_published:
        row.published_at = datetime.now(timezone.utc)
    db.flush()
    log_action(
        db,
        "RESULTS_PUBLISHED" if is_published else "RESULTS_UNPUBLISHED",
        "published_results",
        row.id,
        user,
        {"academic_year": academic_year, "term": term},
    )
    db.commit()
    db.refresh(row)
    return row
