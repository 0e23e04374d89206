from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_staff
from schemas.common import make_meta
from schemas.results import PaperMarkRecord, PublishRequest, SubjectResultUpsert, parse_term
from services import results_service
from services.exceptions import ResultNotFound, ResultsValidationError, StudentNotFound

router = APIRouter(prefix="/results", tags=["results"], dependencies=[Depends(require_staff)])


def query_term(term: str) -> int:
    try:
        return parse_term(term)
    except ValueError as e:
        raise ResultsValidationError(str(e), field="term")


def _not_found(message: str):
    return JSONResponse(
        status_code=404,
        content={"success": False, "error": {"code": 404, "message": message}},
    )

# ==========================================================
# [1단계] 정적 분석/석차 라우터
# ==========================================================

# ✅ [LIST] 반/학기 성적 목록 (과목 필터, 페이지네이션)
# - 시험지 점수 포함, 총점/등급은 조회 시점에 다시 계산
@router.get("/")
def read_results(
    gradelevel_class_id: int,
    term: str,
    academic_year: int,
    subject_class_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    total, items = results_service.list_results(
        db, gradelevel_class_id, query_term(term), academic_year,
        subject_class_id=subject_class_id, page=page, size=size,
    )
    return {
        "success": True,
        "data": [item.model_dump(mode="json") for item in items],
        "meta": make_meta(total, page, size).model_dump(),
    }

# ✅ [RANKING] 반 내 평균 점수 기준 석차
# - 동점자는 같은 석차 (95, 95, 88 → 1, 1, 2)
@router.get("/class")
def get_class_results(
    gradelevel_class_id: int,
    term: str,
    academic_year: int,
    db: Session = Depends(get_db),
):
    data = results_service.get_class_results(db, gradelevel_class_id, query_term(term), academic_year)
    return {"success": True, "data": data.model_dump()}

# ✅ [RANKING] 스트림(같은 계열 학급 전체) 석차
@router.get("/stream")
def get_stream_results(
    stream_id: int,
    term: str,
    academic_year: int,
    db: Session = Depends(get_db),
):
    data = results_service.get_stream_results(db, stream_id, query_term(term), academic_year)
    return {"success": True, "data": data.model_dump()}

# ✅ [READ] 특정 학생 성적 (교직원용: 잔액 확인 없음)
@router.get("/student/{reg_number}")
def get_student_results(
    reg_number: str,
    term: str,
    academic_year: int,
    gradelevel_class_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    data = results_service.get_student_results(
        db, reg_number, query_term(term), academic_year, gradelevel_class_id, portal=False,
    )
    return {"success": True, "data": data.model_dump(mode="json")}

# ✅ [ANALYTICS] 등급 분포 (건수/비율)
# - 학년도/학기/반/과목 필터는 모두 선택
@router.get("/analytics/grade-distribution")
def get_grade_distribution(
    academic_year: Optional[int] = None,
    term: Optional[str] = None,
    gradelevel_class_id: Optional[int] = None,
    subject_class_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    data = results_service.grade_distribution(
        db,
        academic_year=academic_year,
        term=query_term(term) if term is not None else None,
        gradelevel_class_id=gradelevel_class_id,
        subject_class_id=subject_class_id,
    )
    return {"success": True, "data": data.model_dump()}

# ✅ [ANALYTICS] 평균 점수 상위/하위 학생
@router.get("/analytics/performers")
def get_top_bottom_performers(
    academic_year: Optional[int] = None,
    term: Optional[str] = None,
    gradelevel_class_id: Optional[int] = None,
    subject_class_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    total, report = results_service.top_bottom_performers(
        db,
        academic_year=academic_year,
        term=query_term(term) if term is not None else None,
        gradelevel_class_id=gradelevel_class_id,
        subject_class_id=subject_class_id,
        page=page,
        size=size,
    )
    return {
        "success": True,
        "data": report.model_dump(),
        "meta": make_meta(total, page, size).model_dump(),
    }

# ==========================================================
# [2단계] 성적 입력/게시
# ==========================================================

# ✅ [UPSERT] 과목 성적 저장
# - 수행평가/시험지 점수를 받아 총점, 등급, 점수를 다시 계산해 저장
@router.put("/")
def upsert_result(
    body: SubjectResultUpsert,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    try:
        view = results_service.upsert_subject_result(db, body, user=user)
    except StudentNotFound as e:
        return _not_found(e.message)
    return {"success": True, "data": view.model_dump(mode="json"), "message": "Result saved successfully"}

# ✅ [CREATE/UPDATE] 시험지 점수 1건 추가/수정
@router.post("/paper-mark")
def record_paper_mark(
    body: PaperMarkRecord,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    try:
        view = results_service.record_paper_mark(db, body.result_id, body.paper_name, body.mark, user=user)
    except ResultNotFound as e:
        return _not_found(e.message)
    return {"success": True, "data": view.model_dump(mode="json"), "message": "Paper mark saved successfully"}

# ✅ [PUBLISH] 학기 성적 게시/게시 취소
@router.post("/publish")
def publish_results(
    body: PublishRequest,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    row = results_service.set_publication(db, body.academic_year, body.term, body.is_published, user=user)
    return {
        "success": True,
        "data": {
            "academic_year": row.academic_year,
            "term": row.term,
            "is_published": row.is_published,
            "published_at": row.published_at.isoformat() if row.published_at else None,
        },
        "message": "Results published" if row.is_published else "Results unpublished",
    }

# ==========================================================
# [3단계] 완전 동적 라우터
# ==========================================================

# ✅ [DELETE] 성적 삭제 (시험지 점수 함께 삭제)
@router.delete("/{result_id}")
def delete_result(
    result_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    try:
        results_service.delete_subject_result(db, result_id, user=user)
    except ResultNotFound as e:
        return _not_found(e.message)
    return {"success": True, "data": {"result_id": result_id}, "message": "Result deleted successfully"}
