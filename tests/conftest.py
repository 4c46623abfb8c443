import os

# must be set before shared.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_ACCESS_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

from shared.database import make_engine, make_session_factory
from shared.security import create_access_token
from test_service.main import create_app

ADMIN_ID = 1
STUDENT_ID = 42


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def app(engine):
    return create_app(engine)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db(app, engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token({'id': ADMIN_ID, 'role': 'admin'})}"}


@pytest.fixture
def student_headers():
    return {"Authorization": f"Bearer {create_access_token({'id': STUDENT_ID, 'role': 'student'})}"}


def question_payload(n: int, correct_index: int = 0, n_options: int = 4) -> dict:
    return {
        "question_english": f"Question {n}?",
        "question_tamil": f"கேள்வி {n}?",
        "options": [
            {
                "option_english": f"Option {n}.{i}",
                "option_tamil": f"விருப்பம் {n}.{i}",
                "is_correct": i == correct_index,
            }
            for i in range(n_options)
        ],
    }


@pytest.fixture
def make_folder(client, admin_headers):
    def _make(name: str, parent_id=None) -> int:
        r = client.post("/api/admin/test/folders", json={"name": name, "parent_id": parent_id}, headers=admin_headers)
        assert r.status_code == 200, r.text
        return r.json()["id"]

    return _make


@pytest.fixture
def make_test(client, admin_headers):
    """
    Create a test through the admin API with `n_questions` four-option
    questions. Returns {"id", "questions": [{"id", "correct", "wrong"}]}.
    """
    def _make(
        folder_id=None,
        title="Sample test",
        n_questions=3,
        passing_score=70,
        publish=False,
        is_free=False,
        shuffle=False,
    ) -> dict:
        r = client.post(
            "/api/admin/test/",
            json={
                "folder_id": folder_id,
                "title": title,
                "description": f"{title} description",
                "category": "general",
                "passing_score": passing_score,
                "duration_hours": 0,
                "duration_minutes": 30,
                "instructions": "Answer everything.",
            },
            headers=admin_headers,
        )
        assert r.status_code == 200, r.text
        test_id = r.json()["id"]

        questions = []
        for n in range(n_questions):
            qr = client.post(f"/api/admin/test/{test_id}/questions", json=question_payload(n, correct_index=n % 4), headers=admin_headers)
            assert qr.status_code == 200, qr.text
            q = qr.json()["question"]
            correct = [o["option_id"] for o in q["options"] if o["is_correct"]]
            wrong = [o["option_id"] for o in q["options"] if not o["is_correct"]]
            questions.append({"id": q["question_id"], "correct": correct[0], "wrong": wrong[0]})

        if publish or is_free or shuffle:
            sr = client.put(
                f"/api/admin/test/{test_id}/settings",
                json={
                    "title": title,
                    "passing_score": passing_score,
                    "duration_minutes": 30,
                    "status": "published" if publish else "draft",
                    "is_free": is_free,
                    "shuffle_questions": shuffle,
                },
                headers=admin_headers,
            )
            assert sr.status_code == 200, sr.text

        return {"id": test_id, "questions": questions}

    return _make
