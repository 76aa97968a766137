from __future__ import annotations

import re
from datetime import datetime, timezone

from amaops.core.documents import collection


AUTH = ("admin", "secret")
DISPLAY_DATE = re.compile(r"^\d{2}-\d{2}-\d{4}, \d{1,2}:\d{2}:\d{2} (AM|PM)$")


def _seed_app_leads(app_store):
    app_store.seed(
        "leads",
        {
            "l1": {"name": "Asha", "phone": "9876500001", "status": "Interested", "created_at": 300},
            "l2": {"name": "Bala", "phone": "9123400002", "status": "Callback", "created_at": 200},
            "l3": {"name": "Ashok", "phone": "9876500003", "status": "", "created_at": 100},
        },
    )


def test_app_leads_keyset_pagination(client, app_store):
    _seed_app_leads(app_store)

    first = client.get("/api/v1/app-leads?limit=2", auth=AUTH)
    assert first.status_code == 200
    assert first.headers["cache-control"] == "no-store, max-age=0"
    payload = first.json()
    assert [lead["id"] for lead in payload["leads"]] == ["l1", "l2"]
    assert payload["total"] == 3
    assert payload["hasMore"] is True
    assert payload["leads"][0]["remarks"] == ""

    second = client.get("/api/v1/app-leads?limit=2&lastCreatedAt=200&lastId=l2", auth=AUTH).json()
    assert [lead["id"] for lead in second["leads"]] == ["l3"]
    assert second["leads"][0]["status"] == "No Status"
    assert second["hasMore"] is False


def test_app_leads_status_and_search(client, app_store):
    _seed_app_leads(app_store)

    no_status = client.get("/api/v1/app-leads?status=No%20Status", auth=AUTH).json()
    assert [lead["id"] for lead in no_status["leads"]] == ["l3"]

    by_name = client.get("/api/v1/app-leads?search=Ash", auth=AUTH).json()
    assert {lead["id"] for lead in by_name["leads"]} == {"l1", "l3"}
    assert by_name["total"] == 2

    by_phone = client.get("/api/v1/app-leads?search=98765", auth=AUTH).json()
    assert {lead["id"] for lead in by_phone["leads"]} == {"l1", "l3"}


def test_app_lead_remarks_are_recorded_in_history(client, app_store):
    _seed_app_leads(app_store)

    response = client.patch(
        "/api/v1/app-leads",
        auth=AUTH,
        json={"id": "l2", "status": "Interested", "remarks": "Asked for a call", "user": {"name": "Ops", "uid": "u-9"}},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
    lead = app_store.get("leads/l2").data
    assert lead["status"] == "Interested"
    assert lead["remarks"] == "Asked for a call"
    assert "user" not in lead

    history = client.get("/api/v1/app-leads/l2/history", auth=AUTH).json()
    assert len(history) == 1
    assert history[0]["content"] == "Asked for a call"
    assert history[0]["createdBy"] == "Ops"
    assert history[0]["createdById"] == "u-9"
    assert history[0]["createdAt"] == "2025-03-10T06:30:00.000Z"
    assert DISPLAY_DATE.match(history[0]["displayDate"])


def test_app_lead_update_without_user_uses_unknown_actor(client, app_store):
    _seed_app_leads(app_store)

    client.patch("/api/v1/app-leads", auth=AUTH, json={"id": "l1", "remarks": "No answer"})
    entry = app_store.stream(collection("leads/l1/history"))[0].data
    assert entry["createdBy"] == "Unknown User"
    assert entry["createdById"] == ""
    assert entry["createdAt"] == datetime(2025, 3, 10, 6, 30, tzinfo=timezone.utc)

    missing_id = client.patch("/api/v1/app-leads", auth=AUTH, json={"status": "Interested"})
    assert missing_id.status_code == 400


def test_app_lead_update_for_unknown_lead_writes_no_history(client, app_store):
    _seed_app_leads(app_store)

    response = client.patch("/api/v1/app-leads", auth=AUTH, json={"id": "ghost", "remarks": "hello"})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
    assert app_store.stream(collection("leads/ghost/history")) == []


def _seed_queries(app_store):
    app_store.seed(
        "allQueries",
        {
            "q1": {"query": "How do I pay?", "phone": "9000000001", "status": "pending", "submitted_at": 30},
            "q2": {"query": "Where is my file?", "status": "pending", "submitted_at": 20, "resolved_at": 25},
            "q3": {"query": "How long?", "status": "resolved", "submitted_at": 10},
        },
    )


def test_app_queries_listing(client, app_store):
    _seed_queries(app_store)

    payload = client.get("/api/v1/app-queries", auth=AUTH).json()
    assert [query["id"] for query in payload["queries"]] == ["q1", "q2", "q3"]
    assert payload["total"] == 3
    assert payload["queries"][1]["status"] == "resolved"

    pending = client.get("/api/v1/app-queries?status=pending&limit=1", auth=AUTH).json()
    assert [query["id"] for query in pending["queries"]] == ["q1"]
    assert pending["hasMore"] is True
    next_page = client.get(
        "/api/v1/app-queries?status=pending&limit=1&lastSubmittedAt=30&lastId=q1", auth=AUTH
    ).json()
    assert [query["id"] for query in next_page["queries"]] == ["q2"]

    search = client.get("/api/v1/app-queries?search=How", auth=AUTH).json()
    assert {query["id"] for query in search["queries"]} == {"q1", "q3"}


def test_resolving_a_query_stamps_resolution_time(client, app_store):
    _seed_queries(app_store)

    response = client.patch(
        "/api/v1/app-queries",
        auth=AUTH,
        json={"id": "q1", "status": "resolved", "remarks": "Shared payment link", "resolved_by": "Ops"},
    )
    assert response.status_code == 200
    updated = response.json()["updatedFields"]
    assert updated["status"] == "resolved"
    assert isinstance(updated["resolved_at"], int)
    stored = app_store.get("allQueries/q1").data
    assert stored["resolved_by"] == "Ops"
    assert stored["remarks"] == "Shared payment link"

    reassigned = client.patch("/api/v1/app-queries", auth=AUTH, json={"id": "q3", "resolved_by": "Ops"}).json()
    assert "resolved_at" not in reassigned["updatedFields"]

    empty = client.patch("/api/v1/app-queries", auth=AUTH, json={"id": "q1"})
    assert empty.status_code == 400


def _seed_disputes(app_store):
    app_store.seed(
        "file_disputes",
        {
            "user_1": {
                "disputes": [
                    {"name": "Asha Verma", "phone": "9876500001", "submittedAt": 100, "status": "open"},
                    {"name": "Bala", "phone": "9123400002", "submittedAt": 300},
                ]
            },
            "user_2": {"disputes": [{"name": "Chitra", "submittedAt": 200, "status": "closed"}]},
            "user_3": {"disputes": "not-a-list"},
        },
    )


def test_disputes_are_flattened_sorted_and_paged(client, app_store):
    _seed_disputes(app_store)

    payload = client.get("/api/v1/disputes?limit=2", auth=AUTH).json()
    assert [item["id"] for item in payload["disputes"]] == ["user_1_1", "user_2_0"]
    assert payload["total"] == 3
    assert payload["hasMore"] is True
    assert payload["disputes"][0]["parentDocId"] == "user_1"
    assert payload["disputes"][0]["arrayIndex"] == 1
    assert payload["disputes"][0]["status"] == "No Status"
    assert "_sort" not in payload["disputes"][0]

    rest = client.get("/api/v1/disputes?limit=2&lastSubmittedAt=200&lastId=user_2_0", auth=AUTH).json()
    assert [item["id"] for item in rest["disputes"]] == ["user_1_0"]
    assert rest["hasMore"] is False

    searched = client.get("/api/v1/disputes?search=asha", auth=AUTH).json()
    assert [item["id"] for item in searched["disputes"]] == ["user_1_0"]

    by_phone = client.get("/api/v1/disputes?search=91234", auth=AUTH).json()
    assert [item["id"] for item in by_phone["disputes"]] == ["user_1_1"]

    unset = client.get("/api/v1/disputes?status=No%20Status", auth=AUTH).json()
    assert [item["id"] for item in unset["disputes"]] == ["user_1_1"]


def test_dispute_update_rewrites_array_item_and_logs_history(client, app_store):
    _seed_disputes(app_store)

    response = client.patch(
        "/api/v1/disputes",
        auth=AUTH,
        json={"id": "user_1_0", "status": "resolved", "remarks": "Refund issued", "user": {"name": "Ops", "uid": "u-9"}},
    )
    assert response.status_code == 200
    disputes = app_store.get("file_disputes/user_1").data["disputes"]
    assert disputes[0]["status"] == "resolved"
    assert disputes[0]["remarks"] == "Refund issued"
    assert disputes[0]["name"] == "Asha Verma"
    assert "status" not in disputes[1]

    history = client.get("/api/v1/disputes/user_1_0/history", auth=AUTH).json()
    assert len(history) == 1
    assert history[0]["disputeId"] == "user_1_0"
    assert history[0]["submittedAt"] == 100
    assert history[0]["createdBy"] == "Ops"

    assert client.get("/api/v1/disputes/user_1_1/history", auth=AUTH).json() == []


def test_dispute_update_errors(client, app_store):
    _seed_disputes(app_store)

    missing_parent = client.patch("/api/v1/disputes", auth=AUTH, json={"id": "ghost_0", "status": "x"})
    assert missing_parent.status_code == 404
    assert missing_parent.json()["error"]["message"] == "Parent document not found"

    missing_item = client.patch("/api/v1/disputes", auth=AUTH, json={"id": "user_2_5", "status": "x"})
    assert missing_item.status_code == 404

    malformed = client.patch("/api/v1/disputes", auth=AUTH, json={"id": "user", "status": "x"})
    assert malformed.status_code == 400

    missing_id = client.patch("/api/v1/disputes", auth=AUTH, json={"status": "x"})
    assert missing_id.status_code == 400


def test_app_user_update_only_writes_known_fields(client, app_store):
    app_store.seed("login_users", {"lu1": {"name": "Old", "role": "client"}})

    response = client.patch(
        "/api/v1/app-users",
        auth=AUTH,
        json={"id": "lu1", "name": "New Name", "topic": "client", "password": "hunter2"},
    )
    assert response.status_code == 200
    updated = response.json()["updatedFields"]
    assert updated["name"] == "New Name"
    assert updated["topic"] == "client"
    assert isinstance(updated["updated_at"], int)
    assert "password" not in updated

    stored = app_store.get("login_users/lu1").data
    assert stored["name"] == "New Name"
    assert "password" not in stored

    nothing = client.patch("/api/v1/app-users", auth=AUTH, json={"id": "lu1", "password": "x"})
    assert nothing.status_code == 400
    assert nothing.json()["error"]["message"] == "No valid fields to update"

    ghost = client.patch("/api/v1/app-users", auth=AUTH, json={"id": "ghost", "name": "x"})
    assert ghost.status_code == 404
