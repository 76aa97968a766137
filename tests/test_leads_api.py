from __future__ import annotations

from datetime import datetime, timedelta, timezone

from amaops.core.documents import collection
from amaops.core.timeutils import month_doc_id, now_utc


AUTH = ("admin", "secret")


def _seed_leads(crm_store):
    base = datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc)
    crm_store.seed(
        "ama_leads",
        {
            "lead-a": {
                "name": "Asha Verma",
                "mobile": 9876543210,
                "status": "Interested",
                "source": "ama",
                "assigned_to": "Ravi Kumar",
                "assignedToId": "user-ravi",
                "synced_at": base,
            },
            "lead-b": {
                "name": "Bharat Singh",
                "mobile": "9123456789",
                "status": "–",
                "source": "ama",
                "assigned_to": "–",
                "synced_at": base + timedelta(days=1),
            },
            "lead-c": {
                "name": "Chitra Nair",
                "phone": "8178300001",
                "status": "Callback",
                "source": "settleloans",
                "assigned_to": "Ravi Kumar",
                "synced_at": base + timedelta(days=2),
            },
            "lead-d": {
                "name": "Asif Khan",
                "mobile": 8178312345,
                "status": "Converted",
                "source": "credsettle",
                "assigned_to": "Meera Shah",
                "assigned_to_id": "user-meera",
                "synced_at": base + timedelta(days=3),
            },
        },
    )


def test_list_leads_sorts_paginates_and_serialises(client, crm_store):
    _seed_leads(crm_store)

    response = client.get("/api/v1/leads?limit=2", auth=AUTH)
    assert response.status_code == 200, response.text
    assert response.headers["cache-control"].startswith("no-store")
    payload = response.json()
    assert payload["meta"] == {"total": 4, "page": 1, "limit": 2, "totalPages": 2}
    assert [lead["id"] for lead in payload["leads"]] == ["lead-d", "lead-c"]
    assert payload["leads"][0]["mobile"] == "8178312345"
    assert payload["leads"][0]["synced_at"] == "2025-03-04T06:00:00.000Z"
    assert payload["leads"][0]["assignedToId"] == "user-meera"

    second = client.get("/api/v1/leads?limit=2&page=2&order=desc", auth=AUTH).json()
    assert [lead["id"] for lead in second["leads"]] == ["lead-b", "lead-a"]


def test_list_leads_filters_no_status_and_unassigned(client, crm_store):
    _seed_leads(crm_store)

    no_status = client.get("/api/v1/leads?status=No%20Status", auth=AUTH).json()
    assert [lead["id"] for lead in no_status["leads"]] == ["lead-b"]

    unassigned = client.get("/api/v1/leads?salespersonId=unassigned", auth=AUTH).json()
    assert [lead["id"] for lead in unassigned["leads"]] == ["lead-b"]

    by_source = client.get("/api/v1/leads?source=ama&sort=synced_at&order=asc", auth=AUTH).json()
    assert [lead["id"] for lead in by_source["leads"]] == ["lead-a", "lead-b"]


def test_list_leads_date_range_uses_ist_day_bounds(client, crm_store):
    _seed_leads(crm_store)
    crm_store.seed(
        "ama_leads",
        {"late-night": {"name": "Late", "synced_at": datetime(2025, 3, 1, 19, 0, tzinfo=timezone.utc)}},
    )

    # 19:00 UTC on the 1st is already 2 March in IST.
    response = client.get("/api/v1/leads?startDate=2025-03-02&endDate=2025-03-02", auth=AUTH)
    ids = {lead["id"] for lead in response.json()["leads"]}
    assert ids == {"late-night", "lead-b"}

    bad = client.get("/api/v1/leads?startDate=03/02/2025", auth=AUTH)
    assert bad.status_code == 400


def test_phone_search_merges_numeric_and_string_matches(client, crm_store):
    _seed_leads(crm_store)

    response = client.get("/api/v1/leads?search=81783", auth=AUTH)
    assert response.status_code == 200
    payload = response.json()
    assert {lead["id"] for lead in payload["leads"]} == {"lead-c", "lead-d"}
    assert payload["meta"]["total"] == 2

    exact = client.get("/api/v1/leads?search=98765-43210", auth=AUTH).json()
    assert [lead["id"] for lead in exact["leads"]] == ["lead-a"]


def test_name_search_is_a_prefix_match(client, crm_store):
    _seed_leads(crm_store)

    response = client.get("/api/v1/leads?search=As", auth=AUTH)
    assert {lead["id"] for lead in response.json()["leads"]} == {"lead-a", "lead-d"}


def test_callback_tab_fills_latest_callback_info(client, crm_store):
    _seed_leads(crm_store)
    crm_store.seed(
        "ama_leads/lead-c/callback_info",
        {
            "old": {"scheduled_dt": datetime(2025, 3, 3, 5, 0, tzinfo=timezone.utc), "scheduled_by": "Ravi"},
            "new": {"scheduled_dt": datetime(2025, 3, 5, 5, 0, tzinfo=timezone.utc), "scheduled_by": "Ravi"},
        },
    )

    response = client.get("/api/v1/leads?tab=callback", auth=AUTH).json()
    assert [lead["id"] for lead in response["leads"]] == ["lead-c"]
    assert response["leads"][0]["callbackInfo"]["scheduled_dt"] == "2025-03-05T05:00:00.000Z"


def test_lead_stats_counts_callbacks_and_today(client, crm_store):
    _seed_leads(crm_store)
    crm_store.seed("ama_leads", {"fresh": {"name": "Fresh", "status": "Interested", "synced_at": now_utc()}})

    response = client.get("/api/v1/leads/stats?status=Interested", auth=AUTH)
    assert response.status_code == 200
    assert response.json() == {"total": 2, "callback": 1, "today": 1}


def test_assign_and_unassign_actions(client, crm_store):
    _seed_leads(crm_store)

    assign = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={
            "action": "assign",
            "leadIds": ["lead-b"],
            "payload": {"assignedTo": "Meera Shah", "assignedToId": "user-meera"},
        },
    )
    assert assign.status_code == 200
    assert assign.json() == {"success": True, "count": 1}
    lead = crm_store.get("ama_leads/lead-b").data
    assert lead["assigned_to"] == "Meera Shah"
    assert lead["assignedToId"] == "user-meera"
    assert "assignedAt" in lead

    unassign = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "unassign", "leadIds": ["lead-b"]},
    )
    assert unassign.status_code == 200
    lead = crm_store.get("ama_leads/lead-b").data
    assert "assigned_to" not in lead
    assert "assignedToId" not in lead


def test_action_validation_errors(client, crm_store):
    _seed_leads(crm_store)

    missing_assignee = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "assign", "leadIds": ["lead-a"], "payload": {"assignedTo": "Ravi"}},
    )
    assert missing_assignee.status_code == 400

    unknown = client.post("/api/v1/leads/actions", auth=AUTH, json={"action": "archive", "leadIds": ["lead-a"]})
    assert unknown.status_code == 400

    missing_status = client.post(
        "/api/v1/leads/actions", auth=AUTH, json={"action": "update_status", "leadIds": ["lead-a"]}
    )
    assert missing_status.status_code == 400

    empty_notes = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "update_notes", "leadIds": ["lead-a"], "payload": {"salesNotes": ""}},
    )
    assert empty_notes.status_code == 200
    assert crm_store.get("ama_leads/lead-a").data["salesNotes"] == ""


def test_batch_is_atomic_when_a_lead_is_missing(client, crm_store):
    _seed_leads(crm_store)

    response = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "update_notes", "leadIds": ["lead-a", "ghost"], "payload": {"salesNotes": "call back"}},
    )
    assert response.status_code == 404
    assert "salesNotes" not in crm_store.get("ama_leads/lead-a").data


def test_null_sales_notes_clear_the_notes(client, crm_store):
    _seed_leads(crm_store)
    crm_store.update("ama_leads/lead-a", {"salesNotes": "old note"})

    response = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "update_notes", "leadIds": ["lead-a"], "payload": {"salesNotes": None}},
    )
    assert response.status_code == 200
    assert crm_store.get("ama_leads/lead-a").data["salesNotes"] is None

    missing = client.post(
        "/api/v1/leads/actions", auth=AUTH, json={"action": "update_notes", "leadIds": ["lead-a"], "payload": {}}
    )
    assert missing.status_code == 400


def test_conversion_updates_status_history_and_targets(client, crm_store):
    _seed_leads(crm_store)
    crm_store.seed(
        "ama_leads",
        {"lead-a": {**crm_store.get("ama_leads/lead-a").data, "statusHistory": [{"status": "x"}] * 5}},
    )

    response = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "update_status", "leadIds": ["lead-a"], "payload": {"status": "Converted"}},
    )
    assert response.status_code == 200
    lead = crm_store.get("ama_leads/lead-a").data
    assert lead["status"] == "Converted"
    assert lead["convertedToClient"] is True
    assert len(lead["statusHistory"]) == 5
    assert lead["statusHistory"][-1]["status"] == "Converted"
    assert lead["statusHistory"][-1]["updatedBy"] == "api"

    rows_path = f"targets/{month_doc_id()}/sales_targets"
    rows = crm_store.stream(collection(rows_path))
    assert len(rows) == 1
    assert rows[0].data["userId"] == "user-ravi"
    assert rows[0].data["convertedLeads"] == 1

    revert = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "update_status", "leadIds": ["lead-a"], "payload": {"status": "Interested"}},
    )
    assert revert.status_code == 200
    lead = crm_store.get("ama_leads/lead-a").data
    assert "convertedAt" not in lead
    assert "convertedToClient" not in lead
    assert crm_store.stream(collection(rows_path))[0].data["convertedLeads"] == 0


def test_language_barrier_records_language(client, crm_store):
    _seed_leads(crm_store)

    client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={
            "action": "update_status",
            "leadIds": ["lead-b"],
            "payload": {"status": "Language Barrier", "language": "Tamil", "updatedBy": "Ravi"},
        },
    )
    lead = crm_store.get("ama_leads/lead-b").data
    assert lead["language"] == "Tamil"
    assert lead["statusHistory"][-1]["updatedBy"] == "Ravi"


def test_lead_history_is_newest_first_with_display_dates(client, crm_store):
    _seed_leads(crm_store)
    crm_store.seed(
        "ama_leads/lead-a/history",
        {
            "h1": {
                "content": "First call",
                "createdAt": datetime(2025, 3, 1, 4, 30, tzinfo=timezone.utc),
                "displayDate": "3/1/2025, 10:00:00 AM",
            },
            "h2": {"content": "Follow up", "createdAt": datetime(2025, 3, 2, 8, 0, tzinfo=timezone.utc)},
        },
    )

    response = client.get("/api/v1/leads/lead-a/history", auth=AUTH)
    assert response.status_code == 200
    history = response.json()
    assert [entry["id"] for entry in history] == ["h2", "h1"]
    assert history[0]["createdAt"] == "2025-03-02T08:00:00.000Z"
    assert history[0]["displayDate"] == "02-03-2025, 1:30:00 PM"
    assert history[1]["displayDate"] == "01-03-2025, 10:00:00 AM"


def test_salespersons_lists_active_sales_users(client, crm_store):
    crm_store.seed(
        "users",
        {
            "u1": {"firstName": "Ravi", "lastName": "Kumar", "role": "sales", "status": "Active"},
            "u2": {"name": "Meera", "role": "salesperson", "status": "active"},
            "u3": {"firstName": "Old", "role": "sales", "status": "inactive"},
            "u4": {"firstName": "Anil", "role": "advocate", "status": "active"},
        },
    )

    response = client.get("/api/v1/users/salespersons", auth=AUTH)
    assert response.status_code == 200
    names = sorted(person["name"] for person in response.json())
    assert names == ["Meera", "Ravi Kumar"]


def test_lead_action_rejects_more_leads_than_one_batch_holds(client, crm_store):
    _seed_leads(crm_store)

    lead_ids = [f"lead-{index}" for index in range(501)]
    response = client.post(
        "/api/v1/leads/actions",
        auth=AUTH,
        json={"action": "update_notes", "leadIds": lead_ids, "payload": {"salesNotes": "bulk"}},
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "At most 500 leads can be updated at once"
