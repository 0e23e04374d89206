import warnings
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from models.audit_logs import AuditLog
from models.results import PaperMark, SubjectResult
from schemas.results import SubjectResultUpsert
from services import results_service


def test_upsert_scenario_s100_math(school, put_result):
    resp = put_result("S100", 1, 1, papers=[70, 90], coursework=60)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_mark"] == 80
    assert data["grade"] == "A"
    assert data["points"] == 12
    assert data["coursework_mark"] == 60
    assert data["subject_name"] == "Mathematics"
    assert sorted(p["mark"] for p in data["paper_marks"]) == [70, 90]


def test_upsert_updates_same_result_and_replaces_papers(school, put_result, db):
    first = put_result("S100", 1, 1, papers=[70, 90]).json()["data"]
    second = put_result("S100", 1, 1, papers=[50]).json()["data"]
    assert second["id"] == first["id"]
    assert second["total_mark"] == 50
    assert second["grade"] == "C"
    assert db.query(PaperMark).count() == 1


def test_coursework_only_update_keeps_papers(school, put_result):
    put_result("S100", 1, 1, papers=[70, 90])
    data = put_result("S100", 1, 1, coursework=40).json()["data"]
    assert data["coursework_mark"] == 40
    assert data["total_mark"] == 80


def test_zero_paper_is_excluded_from_total(school, put_result):
    data = put_result("S100", 1, 1, papers=[0, 80], coursework=50).json()["data"]
    assert data["total_mark"] == 80


def test_mark_out_of_range_is_rejected_without_write(school, put_result, db):
    resp = put_result("S100", 1, 1, papers=[70, 101])
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert any("paper_marks" in f["field"] for f in body["fields"])
    assert db.query(SubjectResult).count() == 0


def test_non_numeric_mark_is_rejected(school, client, staff_headers):
    body = {
        "reg_number": "S100", "subject_class_id": 1, "gradelevel_class_id": 1,
        "term": 1, "academic_year": 2025, "coursework_mark": "abc",
    }
    resp = client.put("/v1/results/", json=body, headers=staff_headers)
    assert resp.status_code == 422


def test_duplicate_paper_names_are_rejected(school, client, staff_headers):
    body = {
        "reg_number": "S100", "subject_class_id": 1, "gradelevel_class_id": 1,
        "term": 1, "academic_year": 2025,
        "paper_marks": [{"paper_name": "Paper 1", "mark": 50}, {"paper_name": "paper 1", "mark": 60}],
    }
    assert client.put("/v1/results/", json=body, headers=staff_headers).status_code == 422


def test_term_label_is_accepted(school, client, staff_headers):
    body = {
        "reg_number": "S100", "subject_class_id": 1, "gradelevel_class_id": 1,
        "term": "Term 2", "academic_year": 2025, "paper_marks": [{"paper_name": "Paper 1", "mark": 65}],
    }
    resp = client.put("/v1/results/", json=body, headers=staff_headers)
    assert resp.json()["data"]["term"] == 2


def test_unknown_student_is_not_found(school, put_result):
    resp = put_result("S999", 1, 1, papers=[70])
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_paper_mark_add_and_replace(school, put_result, client, staff_headers):
    result_id = put_result("S100", 1, 1, papers=[70]).json()["data"]["id"]

    resp = client.post(
        "/v1/results/paper-mark",
        json={"result_id": result_id, "paper_name": "Paper 2", "mark": 90},
        headers=staff_headers,
    )
    assert resp.json()["data"]["total_mark"] == 80

    resp = client.post(
        "/v1/results/paper-mark",
        json={"result_id": result_id, "paper_name": "paper 2", "mark": 50},
        headers=staff_headers,
    )
    data = resp.json()["data"]
    assert len(data["paper_marks"]) == 2
    assert data["total_mark"] == 60
    assert data["grade"] == "B"


def test_paper_mark_for_missing_result(school, client, staff_headers):
    resp = client.post(
        "/v1/results/paper-mark",
        json={"result_id": 999, "paper_name": "Paper 1", "mark": 50},
        headers=staff_headers,
    )
    assert resp.status_code == 404


def test_delete_result_cascades_paper_marks(school, put_result, client, staff_headers, db):
    result_id = put_result("S100", 1, 1, papers=[70, 90]).json()["data"]["id"]
    resp = client.delete(f"/v1/results/{result_id}", headers=staff_headers)
    assert resp.json()["success"] is True
    db.expire_all()
    assert db.query(SubjectResult).count() == 0
    assert db.query(PaperMark).count() == 0
    assert client.delete(f"/v1/results/{result_id}", headers=staff_headers).status_code == 404


def test_writes_are_audited(school, put_result, db):
    put_result("S100", 1, 1, papers=[70])
    put_result("S100", 1, 1, papers=[75])
    actions = [a.action for a in db.query(AuditLog).order_by(AuditLog.id).all()]
    assert actions == ["RESULT_CREATED", "RESULT_UPDATED"]


def test_class_positions_dense_with_ties(school, put_result, client, staff_headers):
    put_result("S100", 1, 1, papers=[95])
    put_result("S101", 1, 1, papers=[95])
    put_result("S102", 1, 1, papers=[88])

    resp = client.get(
        "/v1/results/class",
        params={"gradelevel_class_id": 1, "term": 1, "academic_year": 2025},
        headers=staff_headers,
    )
    data = resp.json()["data"]
    assert data["total_students"] == 3
    assert [s["position"] for s in data["per_student"]] == [1, 1, 2]
    assert data["per_student"][-1]["reg_number"] == "S102"
    assert data["per_student"][0]["grade"] == "A"


def test_class_average_spans_subjects(school, put_result, client, staff_headers):
    put_result("S100", 1, 1, papers=[90])
    put_result("S100", 2, 1, papers=[70])
    put_result("S101", 1, 1, papers=[85])

    data = client.get(
        "/v1/results/class",
        params={"gradelevel_class_id": 1, "term": 1, "academic_year": 2025},
        headers=staff_headers,
    ).json()["data"]
    first = data["per_student"][0]
    assert first["reg_number"] == "S101"
    assert data["per_student"][1]["average_mark"] == 80
    assert data["per_student"][1]["subjects"] == 2


def test_missing_class_gives_empty_result(school, client, staff_headers):
    resp = client.get(
        "/v1/results/class",
        params={"gradelevel_class_id": 42, "term": 1, "academic_year": 2025},
        headers=staff_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["per_student"] == []
    assert resp.json()["data"]["total_students"] == 0


def test_stream_positions_cover_all_classes(school, put_result, client, staff_headers):
    put_result("S100", 1, 1, papers=[70])
    put_result("S200", 3, 2, papers=[85])

    data = client.get(
        "/v1/results/stream",
        params={"stream_id": 1, "term": 1, "academic_year": 2025},
        headers=staff_headers,
    ).json()["data"]
    assert [(s["reg_number"], s["position"]) for s in data["per_student"]] == [("S200", 1), ("S100", 2)]
    assert data["per_student"][0]["gradelevel_class_id"] == 2


def test_staff_student_view_ignores_balance(school, put_result, set_balance, client, staff_headers):
    set_balance("S100", -500)
    put_result("S100", 1, 1, papers=[70, 90])
    put_result("S200", 3, 2, papers=[95])

    resp = client.get(
        "/v1/results/student/S100",
        params={"term": 1, "academic_year": 2025},
        headers=staff_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_subjects"] == 1
    assert data["class_position"] == 1
    assert data["stream_position"] == 2
    assert data["current_balance"] is None


def test_read_recomputes_stale_totals(school, put_result, client, staff_headers, db):
    result_id = put_result("S100", 1, 1, papers=[70, 90]).json()["data"]["id"]
    row = db.get(SubjectResult, result_id)
    row.total_mark, row.grade, row.points = 5, "F", 0
    db.commit()

    data = client.get(
        "/v1/results/student/S100",
        params={"term": 1, "academic_year": 2025},
        headers=staff_headers,
    ).json()["data"]
    assert data["results"][0]["total_mark"] == 80
    assert data["results"][0]["grade"] == "A"


def test_list_results_paginates(school, put_result, client, staff_headers):
    put_result("S100", 1, 1, papers=[70])
    put_result("S101", 1, 1, papers=[80])
    put_result("S102", 2, 1, papers=[60])

    resp = client.get(
        "/v1/results/",
        params={"gradelevel_class_id": 1, "term": "Term 1", "academic_year": 2025, "page": 1, "size": 2},
        headers=staff_headers,
    )
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["meta"] == {"total": 3, "page": 1, "size": 2, "pages": 2}

    filtered = client.get(
        "/v1/results/",
        params={"gradelevel_class_id": 1, "term": 1, "academic_year": 2025, "subject_class_id": 2},
        headers=staff_headers,
    ).json()
    assert [r["reg_number"] for r in filtered["data"]] == ["S102"]


def test_invalid_term_query(school, client, staff_headers):
    resp = client.get(
        "/v1/results/class",
        params={"gradelevel_class_id": 1, "term": "Term 9", "academic_year": 2025},
        headers=staff_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["fields"][0]["field"] == "term"


def test_missing_selector_is_rejected(school, client, staff_headers):
    resp = client.get("/v1/results/class", params={"term": 1}, headers=staff_headers)
    assert resp.status_code == 422


def test_staff_routes_require_token(school, client, student_headers):
    assert client.get("/v1/results/class", params={"gradelevel_class_id": 1, "term": 1, "academic_year": 2025}).status_code == 401
    resp = client.get(
        "/v1/results/class",
        params={"gradelevel_class_id": 1, "term": 1, "academic_year": 2025},
        headers=student_headers("S100"),
    )
    assert resp.status_code == 403


def test_storage_failure_is_generic_server_error(school, client, staff_headers, monkeypatch):
    def broken(db):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    monkeypatch.setattr(results_service, "_active_criteria", broken)
    resp = client.get(
        "/v1/results/class",
        params={"gradelevel_class_id": 1, "term": 1, "academic_year": 2025},
        headers=staff_headers,
    )
    assert resp.status_code == 500
    assert resp.json()["error"] == {"code": "PERSISTENCE_FAILURE", "message": "Failed to load class results"}


def test_publish_and_unpublish(school, client, staff_headers):
    resp = client.post(
        "/v1/results/publish", json={"academic_year": 2025, "term": "Term 1"}, headers=staff_headers
    )
    data = resp.json()["data"]
    assert data["is_published"] is True
    assert data["published_at"] is not None

    resp = client.post(
        "/v1/results/publish",
        json={"academic_year": 2025, "term": 1, "is_published": False},
        headers=staff_headers,
    )
    assert resp.json()["data"]["is_published"] is False


def test_timestamps_come_from_aware_utc_clock(school, db):
    payload = SubjectResultUpsert(
        reg_number="S100", subject_class_id=1, gradelevel_class_id=1, term=1, academic_year=2025,
        paper_marks=[{"paper_name": "Paper 1", "mark": 70}],
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        view = results_service.upsert_subject_result(db, payload)
        row = results_service.set_publication(db, 2025, 1, True)
    assert not [w for w in caught if "utcnow" in str(w.message)]

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    stored = db.get(SubjectResult, view.id)
    for stamp in (stored.created_at, stored.updated_at, row.published_at):
        assert abs(now - stamp.replace(tzinfo=None)) < timedelta(minutes=1)
    assert db.query(AuditLog).first().created_at is not None
