import csv
import sys
from collections import OrderedDict

from pydantic import ValidationError
from sqlalchemy.orm import Session

from database.db import SessionLocal
from schemas.results import PaperMarkIn, SubjectResultUpsert
from services import results_service
from services.exceptions import NotFoundError, ResultsValidationError

CSV_PATH = "data/results.csv"  # ✅ 파일 경로

# 헤더: reg_number,subject_class_id,gradelevel_class_id,academic_year,term,coursework_mark,paper_name,mark
# - 시험지 1개당 1행, 같은 학생/과목/학기 행은 하나의 성적으로 묶음

SCRIPT_USER = {"sub": "import_results", "role": "admin"}

KEY_FIELDS = ("reg_number", "subject_class_id", "gradelevel_class_id", "academic_year", "term")


def _group_rows(reader):
    grouped = OrderedDict()
    for line_no, row in enumerate(reader, start=2):
        key = tuple(row[k].strip() for k in KEY_FIELDS)
        entry = grouped.setdefault(key, {"line_no": line_no, "coursework_mark": None, "papers": []})
        if row.get("coursework_mark"):
            entry["coursework_mark"] = row["coursework_mark"]
        if row.get("paper_name"):
            entry["papers"].append({"paper_name": row["paper_name"], "mark": row.get("mark") or 0})
    return grouped


def import_results(db: Session, csv_path: str = CSV_PATH):
    imported, skipped = 0, []
    with open(csv_path, newline="", encoding="utf-8-sig") as csvfile:
        grouped = _group_rows(csv.DictReader(csvfile))

    for key, entry in grouped.items():
        fields = dict(zip(KEY_FIELDS, key))
        # 수행평가 값이 없는 행은 기존 값 유지
        if entry["coursework_mark"] is not None:
            fields["coursework_mark"] = entry["coursework_mark"]
        try:
            payload = SubjectResultUpsert(
                **fields,
                paper_marks=[PaperMarkIn(**p) for p in entry["papers"]] or None,
            )
            results_service.upsert_subject_result(db, payload, user=SCRIPT_USER)
            imported += 1
        except (ValidationError, ResultsValidationError, NotFoundError) as e:
            skipped.append((entry["line_no"], str(e)))
    return imported, skipped


if __name__ == "__main__":
    db = SessionLocal()
    try:
        imported, skipped = import_results(db, sys.argv[1] if len(sys.argv) > 1 else CSV_PATH)
    finally:
        db.close()
    for line_no, reason in skipped:
        print(f"⚠️ {line_no}행 건너뜀: {reason}")
    print(f"✅ 성적 CSV → DB 마이그레이션 완료 ({imported}건)")
