from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_staff
from schemas.grading import (
    BulkMarkRequest,
    GradeOut,
    GradingCriterion as GradingCriterionSchema,
    GradingCriterionCreate,
    MarkRequest,
)
from services import results_service
from services.exceptions import CriterionNotFound

router = APIRouter(prefix="/grading", tags=["grading"], dependencies=[Depends(require_staff)])


def _not_found(message: str = "Grading criteria not found"):
    return JSONResponse(
        status_code=404,
        content={"success": False, "error": {"code": 404, "message": message}},
    )


def _criterion_data(criterion) -> dict:
    return GradingCriterionSchema.model_validate(criterion).model_dump()

# ==========================================================
# [1단계] 정적 라우터 (등급 계산)
# ==========================================================

# ✅ [CALCULATE] 점수 → 등급/점수
# - 일치하는 기준이 없으면 N/A, 0점
@router.post("/calculate")
def calculate_grade(body: MarkRequest, db: Session = Depends(get_db)):
    graded = results_service.calculate_grade(db, body.mark)
    return {
        "success": True,
        "data": GradeOut(mark=body.mark, grade=graded.grade, points=graded.points).model_dump(),
    }

# ✅ [CALCULATE] 여러 점수 일괄 계산
@router.post("/calculate/bulk")
def calculate_grades(body: BulkMarkRequest, db: Session = Depends(get_db)):
    graded = results_service.calculate_grades(db, body.marks)
    return {
        "success": True,
        "data": [
            GradeOut(mark=mark, grade=g.grade, points=g.points).model_dump()
            for mark, g in zip(body.marks, graded)
        ],
    }

# ==========================================================
# [2단계] CRUD 기본 라우터
# ==========================================================

# ✅ [READ] 활성 등급 기준 전체 조회 (최소 점수 내림차순)
@router.get("/")
def read_grading_criteria(db: Session = Depends(get_db)):
    records = results_service.list_grading_criteria(db)
    return {"success": True, "data": [_criterion_data(r) for r in records]}

# ✅ [CREATE] 등급 기준 추가
@router.post("/", status_code=201)
def create_grading_criterion(
    criterion: GradingCriterionCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    created = results_service.upsert_grading_criterion(db, criterion, user=user)
    return {
        "success": True,
        "data": _criterion_data(created),
        "message": "Grading criteria created successfully",
    }

# ==========================================================
# [3단계] 완전 동적 라우터
# ==========================================================

# ✅ [READ] 특정 등급 기준 조회
@router.get("/{criterion_id}")
def read_grading_criterion(criterion_id: int, db: Session = Depends(get_db)):
    try:
        criterion = results_service.get_grading_criterion(db, criterion_id)
    except CriterionNotFound:
        return _not_found()
    return {"success": True, "data": _criterion_data(criterion)}

# ✅ [UPDATE] 등급 기준 수정
@router.put("/{criterion_id}")
def update_grading_criterion(
    criterion_id: int,
    updated: GradingCriterionCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    try:
        criterion = results_service.upsert_grading_criterion(db, updated, criterion_id=criterion_id, user=user)
    except CriterionNotFound:
        return _not_found()
    return {
        "success": True,
        "data": _criterion_data(criterion),
        "message": "Grading criteria updated successfully",
    }

# ✅ [DELETE] 등급 기준 삭제
# - 성적에서 사용 중이면 비활성화만 (이력 보존)
@router.delete("/{criterion_id}")
def delete_grading_criterion(
    criterion_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_staff),
):
    try:
        mode = results_service.delete_grading_criterion(db, criterion_id, user=user)
    except CriterionNotFound:
        return _not_found()
    return {
        "success": True,
        "data": {"criterion_id": criterion_id, "mode": mode},
        "message": "Grading criteria deleted successfully",
    }
