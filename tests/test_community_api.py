from __future__ import annotations

from datetime import datetime, timezone


AUTH = ("admin", "secret")


def _seed_questions(app_store):
    app_store.seed(
        "questions",
        {
            "qa": {"content": "Can I settle early?", "userName": "Asha", "timestamp": 1700000003000, "commentsCount": 2},
            "qb": {"content": "Is CIBIL affected?", "userName": "Bala", "timestamp": 1700000002000},
            "qc": {"content": "What documents?", "userName": "Chitra", "timestamp": 1700000001000},
        },
    )
    app_store.seed(
        "questions/qa/comments",
        {
            "c2": {"content": "Same question", "commentedBy": "Dev", "timestamp": 1700000005000},
            "c1": {"content": "Yes you can", "commentedBy": "Advocate", "timestamp": 1700000004000},
        },
    )


def test_questions_are_paged_newest_first(client, app_store):
    _seed_questions(app_store)

    first = client.get("/api/v1/ama-questions?limit=2", auth=AUTH).json()
    assert [question["id"] for question in first["questions"]] == ["qa", "qb"]
    assert first["total"] == 3
    assert first["hasMore"] is True
    assert first["questions"][0]["commentsCount"] == 2
    assert first["questions"][1]["commentsCount"] == 0

    rest = client.get("/api/v1/ama-questions?limit=2&lastTimestamp=1700000002000&lastId=qb", auth=AUTH).json()
    assert [question["id"] for question in rest["questions"]] == ["qc"]
    assert rest["hasMore"] is False


def test_answer_and_delete_question(client, app_store):
    _seed_questions(app_store)

    answered = client.patch("/api/v1/ama-questions", auth=AUTH, json={"id": "qb", "answer": "Only temporarily."})
    assert answered.json() == {"success": True}
    assert app_store.get("questions/qb").data["answer"] == "Only temporarily."

    missing = client.patch("/api/v1/ama-questions", auth=AUTH, json={"id": "qb"})
    assert missing.status_code == 400
    assert missing.json()["error"]["message"] == "Missing id or answer"

    deleted = client.delete("/api/v1/ama-questions/qc", auth=AUTH)
    assert deleted.json() == {"success": True}
    assert app_store.get("questions/qc") is None


def test_question_comments_are_oldest_first(client, app_store):
    _seed_questions(app_store)

    response = client.get("/api/v1/ama-questions/qa/comments", auth=AUTH)
    assert response.status_code == 200
    comments = response.json()["comments"]
    assert [comment["id"] for comment in comments] == ["c1", "c2"]
    assert comments[0]["commentedBy"] == "Advocate"

    assert client.get("/api/v1/ama-questions/qb/comments", auth=AUTH).json() == {"comments": []}


def test_feedback_accepts_numeric_and_timestamp_cursors(client, app_store):
    app_store.seed(
        "feedback",
        {
            "f1": {"feedback": "Great support", "rate": 5, "submittedAt": datetime(2025, 3, 3, 10, 0, tzinfo=timezone.utc)},
            "f2": {"feedback": "Slow replies", "rate": 2, "submittedAt": datetime(2025, 3, 2, 10, 0, tzinfo=timezone.utc)},
            "f3": {"feedback": "Okay", "rate": 3, "submittedAt": datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)},
        },
    )

    first = client.get("/api/v1/feedback?limit=1", auth=AUTH).json()
    assert [item["id"] for item in first["feedbacks"]] == ["f1"]
    assert first["feedbacks"][0]["submittedAt"] == "2025-03-03T10:00:00.000Z"
    assert first["total"] == 3

    rest = client.get(
        "/api/v1/feedback?lastSubmittedAt=2025-03-03T10:00:00.000Z&lastId=f1",
        auth=AUTH,
    ).json()
    assert [item["id"] for item in rest["feedbacks"]] == ["f2", "f3"]
    assert rest["hasMore"] is False

    app_store.seed("feedback", {"f0": {"feedback": "Legacy", "rate": 4, "submittedAt": 1700000000}})
    numeric = client.get("/api/v1/feedback?lastSubmittedAt=1800000000&lastId=zz", auth=AUTH).json()
    assert [item["id"] for item in numeric["feedbacks"]] == ["f0"]
