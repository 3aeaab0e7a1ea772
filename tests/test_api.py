"""
HTTP surface tests. The database, the paper extractor and the prediction
generator are swapped through FastAPI dependency overrides.
"""
import pytest
from fastapi.testclient import TestClient

from database.database import get_db
from pyq_api import app
from routers.exams import get_paper_extractor
from routers.predictions import get_prediction_generator


PREDICTIONS = {
    "predictions": [
        {"text": "Explain event delegation.", "probability": 0.8, "topic": "Event Handling",
         "questionType": "SHORT", "difficulty": "MEDIUM", "marks": 5,
         "reasoning": ["Asked in Midterm 1"]},
        {"text": "Write a closure counter.", "probability": 0.6, "topic": "Closures",
         "questionType": "LONG", "difficulty": "HARD", "marks": 10},
    ]
}


@pytest.fixture
def generator_calls():
    return []


@pytest.fixture
def client(session_factory, fake_extractor, generator_calls):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    async def fake_generator(prompt, exam_type, count):
        generator_calls.append((exam_type, count))
        return PREDICTIONS

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_paper_extractor] = lambda: fake_extractor
    app.dependency_overrides[get_prediction_generator] = lambda: fake_generator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ids(subject, semester, syllabus):
    return {"subject_id": subject.id, "semester_id": semester.id}


def _upload(client, ids, data=b"%PDF-1.4 midterm paper", filename="mid1.pdf", **form):
    fields = {
        "subject_id": str(ids["subject_id"]),
        "semester_id": str(ids["semester_id"]),
        "academic_year": "2024-2025",
        "exam_type": "midterm_1",
    }
    fields.update(form)
    return client.post(
        "/pyq/upload",
        files={"file": (filename, data, "application/pdf")},
        data=fields,
    )


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "pyq-predictor-api"}


class TestSubjects:

    def test_create_and_fetch(self, client):
        response = client.post("/subjects/", json={"name": "Operating Systems", "code": "BCA401"})
        assert response.status_code == 201
        subject_id = response.json()["id"]

        assert client.get(f"/subjects/{subject_id}").json()["code"] == "BCA401"
        assert any(s["id"] == subject_id for s in client.get("/subjects/").json())

    def test_duplicate_subject(self, client, subject):
        response = client.post("/subjects/", json={"name": "Web Technologies", "code": "OTHER"})
        assert response.status_code == 400

    def test_unknown_subject(self, client):
        assert client.get("/subjects/999").status_code == 404

    def test_syllabus_round_trip(self, client, subject):
        payload = {"version": "2025", "modules": [
            {"number": 1, "name": "Basics", "topics": [{"name": "Intro"}, {"name": "History"}]},
        ]}
        response = client.put(f"/subjects/{subject.id}/syllabus", json=payload)
        assert response.status_code == 200

        syllabus = client.get(f"/subjects/{subject.id}/syllabus").json()
        assert syllabus["version"] == "2025"
        assert [t["name"] for t in syllabus["modules"][0]["topics"]] == ["Intro", "History"]

    def test_duplicate_module_numbers(self, client, subject):
        payload = {"modules": [{"number": 1, "name": "A"}, {"number": 1, "name": "B"}]}
        assert client.put(f"/subjects/{subject.id}/syllabus", json=payload).status_code == 400

    def test_syllabus_scope(self, client, ids):
        scope = client.get(f"/subjects/{ids['subject_id']}/syllabus-scope").json()
        assert [m["moduleNumber"] for m in scope] == [1, 2, 3]
        assert all(m["included"] for m in scope)

    def test_missing_syllabus(self, client, subject):
        assert client.get(f"/subjects/{subject.id}/syllabus").status_code == 404
        assert client.get(f"/subjects/{subject.id}/syllabus-scope").status_code == 404


class TestSemesters:

    def test_create_and_list(self, client):
        response = client.post("/semesters/", json={"number": 5})
        assert response.status_code == 201
        assert [s["number"] for s in client.get("/semesters/").json()] == [5]


class TestUpload:

    def test_upload_stores_exam(self, client, ids, fake_extractor):
        response = _upload(client, ids)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["questions_count"] == 4
        assert body["alternative_count"] == 1
        assert len(body["fingerprint"]) == 64
        assert fake_extractor.calls == [b"%PDF-1.4 midterm paper"]

    def test_duplicate_returns_conflict(self, client, ids):
        first = _upload(client, ids).json()
        response = _upload(client, ids)
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["existing_exam_id"] == first["exam_id"]
        assert detail["kind"] == "duplicate_by_fingerprint"

    def test_force_replace(self, client, ids):
        first = _upload(client, ids).json()
        response = _upload(client, ids, data=b"%PDF-1.4 rescanned", force_replace="true")
        assert response.status_code == 200
        assert response.json()["replaced_exam_id"] == first["exam_id"]

    def test_non_pdf_rejected(self, client, ids, fake_extractor):
        response = _upload(client, ids, filename="paper.docx")
        assert response.status_code == 400
        assert fake_extractor.calls == []

    def test_unknown_exam_type_rejected(self, client, ids, fake_extractor):
        first = _upload(client, ids).json()
        response = _upload(client, ids, data=b"%PDF-1.4 end term", exam_type="endterm exam", force_replace="true")
        assert response.status_code == 400
        assert "endterm exam" in response.json()["detail"]
        assert len(fake_extractor.calls) == 1
        assert [e["id"] for e in client.get("/pyq/exams").json()] == [first["exam_id"]]

    def test_empty_file_rejected(self, client, ids):
        assert _upload(client, ids, data=b"").status_code == 400

    def test_unknown_subject(self, client, ids):
        response = _upload(client, {**ids, "subject_id": 999})
        assert response.status_code == 404

    def test_extraction_failure(self, client, ids):
        async def broken(data):
            raise ValueError("Could not extract text from uploaded PDF.")

        app.dependency_overrides[get_paper_extractor] = lambda: broken
        assert _upload(client, ids).status_code == 502


class TestExams:

    def test_list_get_delete(self, client, ids):
        exam_id = _upload(client, ids).json()["exam_id"]

        exams = client.get("/pyq/exams", params={"subject_id": ids["subject_id"]}).json()
        assert [e["id"] for e in exams] == [exam_id]
        assert exams[0]["exam_type"] == "midterm_1"

        exam = client.get(f"/pyq/exams/{exam_id}").json()
        numbers = {q["question_number"] for q in exam["questions"]}
        assert numbers == {"1", "1 (OR)", "2", "3"}

        assert client.delete(f"/pyq/exams/{exam_id}").status_code == 204
        assert client.get(f"/pyq/exams/{exam_id}").status_code == 404
        assert client.delete(f"/pyq/exams/{exam_id}").status_code == 404

    def test_list_unknown_subject(self, client):
        assert client.get("/pyq/exams", params={"subject_id": 999}).status_code == 404


class TestAnalysis:

    def test_report(self, client, ids):
        _upload(client, ids)
        response = client.get(f"/analysis/{ids['subject_id']}", params={"target_exam_type": "end_term"})
        assert response.status_code == 200
        report = response.json()
        assert report["total_questions"] == 4
        assert report["topic_frequency"]["CSS Selectors"] == 2
        assert report["ranking"][0]["topic"] == "CSS Selectors"

    def test_invalid_exam_type(self, client, ids):
        response = client.get(f"/analysis/{ids['subject_id']}", params={"target_exam_type": "quiz"})
        assert response.status_code == 422

    def test_unknown_subject(self, client):
        response = client.get("/analysis/999", params={"target_exam_type": "end_term"})
        assert response.status_code == 404


class TestPredictions:

    def test_generate_list_validate(self, client, ids, generator_calls):
        response = client.post("/predictions/generate", json={
            "subject_id": ids["subject_id"],
            "target_exam_type": "end_term",
            "question_count": 2,
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["predictions"]) == 2
        assert body["metadata"]["confidence"] == pytest.approx(0.7)
        assert generator_calls == [("end_term", 2)]

        history = client.get("/predictions", params={"subject_id": ids["subject_id"]}).json()
        assert [p["id"] for p in history] == [body["prediction_id"]]
        assert history[0]["is_validated"] is False

        validated = client.patch(f"/predictions/{body['prediction_id']}/validate", json={"is_validated": True})
        assert validated.status_code == 200
        assert validated.json()["is_validated"] is True

    def test_empty_scope(self, client, ids, generator_calls):
        response = client.post("/predictions/generate", json={
            "subject_id": ids["subject_id"],
            "target_exam_type": "midterm_2",
            "syllabus_scope": [{"moduleNumber": 1, "included": False}],
        })
        assert response.status_code == 400
        assert generator_calls == []

    def test_unknown_subject(self, client):
        response = client.post("/predictions/generate", json={
            "subject_id": 999, "target_exam_type": "end_term",
        })
        assert response.status_code == 404

    def test_malformed_generator_output(self, client, ids):
        async def chatty(prompt, exam_type, count):
            return "Here are some questions you might see!"

        app.dependency_overrides[get_prediction_generator] = lambda: chatty
        response = client.post("/predictions/generate", json={
            "subject_id": ids["subject_id"], "target_exam_type": "end_term",
        })
        assert response.status_code == 502

    def test_validate_unknown_prediction(self, client):
        assert client.patch("/predictions/999/validate", json={}).status_code == 404
