import csv
import sys

from pydantic import ValidationError
from sqlalchemy.orm import Session

from database.db import SessionLocal
from schemas.grading import GradingCriterionCreate
from services import results_service
from services.exceptions import ResultsValidationError

CSV_PATH = "data/grading_criteria.csv"  # ✅ 파일 경로 (grade,min_mark,max_mark,points,description)

SCRIPT_USER = {"sub": "import_grading_criteria", "role": "admin"}


def import_grading_criteria(db: Session, csv_path: str = CSV_PATH):
    """CSV → 등급 기준. 규칙 위반 행은 건너뛰고 (행 번호, 사유) 목록으로 반환"""
    imported, skipped = 0, []
    with open(csv_path, newline="", encoding="utf-8-sig") as csvfile:
        reader = csv.DictReader(csvfile)
        for line_no, row in enumerate(reader, start=2):
            try:
                payload = GradingCriterionCreate(
                    grade=row["grade"],                            # 등급 (예: A)
                    min_mark=row["min_mark"],                      # 최소 점수
                    max_mark=row["max_mark"],                      # 최대 점수
                    points=row["points"],                          # 등급 점수
                    description=row.get("description") or None,
                )
                results_service.upsert_grading_criterion(db, payload, user=SCRIPT_USER)
                imported += 1
            except (ValidationError, ResultsValidationError) as e:
                skipped.append((line_no, str(e)))
    return imported, skipped


if __name__ == "__main__":
    db = SessionLocal()
    try:
        imported, skipped = import_grading_criteria(db, sys.argv[1] if len(sys.argv) > 1 else CSV_PATH)
    finally:
        db.close()
    for line_no, reason in skipped:
        print(f"⚠️ {line_no}행 건너뜀: {reason}")
    print(f"✅ 등급 기준 CSV → DB 마이그레이션 완료 ({imported}건)")
