from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_student
from routers.results import query_term
from services import results_service
from services.billing_client import get_balance_provider

router = APIRouter(prefix="/student", tags=["student portal"])

# ==========================================================
# [학생 포털] 본인 성적/잔액 조회
# - 학번은 토큰에서만 가져옴 (다른 학생 조회 불가)
# ==========================================================

# ✅ [READ] 학기 성적 조회
# - 미납 잔액이 있으면 403 access_denied (성적 없음과 구분)
# - 게시되지 않은 학기도 403
@router.get("/results")
def get_my_results(
    academic_year: int,
    term: str,
    gradelevel_class_id: Optional[int] = None,
    db: Session = Depends(get_db),
    student: dict = Depends(require_student),
):
    data = results_service.get_student_results(
        db,
        student["reg_number"],
        query_term(term),
        academic_year,
        gradelevel_class_id,
        portal=True,
        balance_provider=get_balance_provider(db),
    )
    return {"success": True, "data": data.model_dump(mode="json")}

# ✅ [READ] 조회 가능한 학년도/학기 목록 (게시된 것만)
@router.get("/results/periods")
def get_my_periods(db: Session = Depends(get_db), student: dict = Depends(require_student)):
    periods = results_service.available_periods(db, student["reg_number"])
    return {
        "success": True,
        "data": [
            {**p, "published_at": p["published_at"].isoformat() if p["published_at"] else None}
            for p in periods
        ],
    }

# ✅ [READ] 잔액 상태
@router.get("/balance")
def get_my_balance(db: Session = Depends(get_db), student: dict = Depends(require_student)):
    status = results_service.get_balance_status(db, student["reg_number"], get_balance_provider(db))
    return {
        "success": True,
        "data": {
            "current_balance": float(status.current_balance),
            "can_view_results": status.can_view_results,
            "balance_status": status.balance_status,
        },
    }
