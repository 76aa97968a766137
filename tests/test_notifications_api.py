from __future__ import annotations

from datetime import datetime, timedelta, timezone

from amaops.core.documents import collection
from amaops.push.base import APNS_TOPIC, PushMessage
from amaops.push.fcm import build_message


AUTH = ("admin", "secret")


def test_weekly_notification_is_stored_for_clients(client, app_store, push_gateway):
    response = client.post(
        "/api/v1/app-notifications",
        auth=AUTH,
        json={
            "user_id": "admin-1",
            "topic": ["all_clients", "client_42"],
            "n_title": "Weekly update",
            "n_body": "Your file moved to review.",
            "send_weekly": True,
        },
    )
    assert response.status_code == 200, response.text
    assert response.json()["success"] is True
    assert [message.topic for message in push_gateway.sent] == ["all_clients", "client_42"]

    messages = app_store.stream(collection("notifications/client/messages"))
    assert len(messages) == 1
    assert messages[0].data["week_notification"] is True
    assert messages[0].data["topics"] == ["all_clients", "client_42"]

    history = app_store.stream(collection("notification_history/admin-1/messages"))
    assert len(history) == 1
    assert history[0].data["week_notification"] is True
    assert history[0].data["send_weekly"] is True


def test_weekly_notification_fails_when_any_topic_fails(client, app_store, push_gateway):
    push_gateway.failing_topics = {"client_42"}

    response = client.post(
        "/api/v1/app-notifications",
        auth=AUTH,
        json={
            "user_id": "admin-1",
            "topic": ["all_clients", "client_42"],
            "n_title": "Weekly update",
            "n_body": "Body",
            "send_weekly": True,
        },
    )
    assert response.status_code == 500
    assert response.json()["success"] is False
    assert app_store.stream(collection("notifications/client/messages")) == []
    assert app_store.stream(collection("notification_history/admin-1/messages")) == []


def test_broadcast_tolerates_partial_failure(client, app_store, push_gateway):
    push_gateway.failing_topics = {"broken"}

    response = client.post(
        "/api/v1/app-notifications",
        auth=AUTH,
        json={
            "user_id": "admin-1",
            "topic": ["all_clients", "all_advocates", "broken"],
            "n_title": "Holiday",
            "n_body": "Office closed on Friday.",
        },
    )
    assert response.status_code == 200
    assert len(push_gateway.sent) == 2
    assert len(app_store.stream(collection("notifications/client/messages"))) == 1
    assert len(app_store.stream(collection("notifications/advocate/messages"))) == 1
    assert app_store.stream(collection("notifications/user/messages")) == []

    history = app_store.stream(collection("notification_history/admin-1/messages"))[0].data
    assert history["send_weekly"] is False
    assert "week_notification" not in history


def test_single_topic_send(client, app_store, push_gateway):
    response = client.post(
        "/api/v1/app-notifications",
        auth=AUTH,
        json={"user_id": "admin-1", "topic": "client_42", "n_title": "Hi", "n_body": "Hello"},
    )
    assert response.json() == {"success": True, "message": "Notification sent to topic(s): client_42"}
    assert push_gateway.sent[0].data == {"click_action": "FLUTTER_NOTIFICATION_CLICK"}


def test_all_failed_notification_returns_error_body(client, push_gateway):
    push_gateway.failing_topics = {"client_42"}

    response = client.post(
        "/api/v1/app-notifications",
        auth=AUTH,
        json={"user_id": "admin-1", "topic": "client_42", "n_title": "Hi", "n_body": "Hello"},
    )
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "message": "Failed to send notification",
        "error": "All notifications failed. First error: Delivery to topic client_42 failed",
    }


def test_missing_fields_are_rejected(client, push_gateway):
    response = client.post(
        "/api/v1/app-notifications",
        auth=AUTH,
        json={"user_id": "admin-1", "topic": "client_42", "n_title": "Hi"},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert push_gateway.sent == []


def test_fcm_message_carries_android_and_apns_settings():
    message = build_message(PushMessage(topic="all_users", title="Title", body="Body"))
    assert message.topic == "all_users"
    assert message.notification.title == "Title"
    assert message.android.priority == "high"
    assert message.android.notification.sound == "default"
    assert message.apns.headers["apns-topic"] == APNS_TOPIC
    assert message.apns.payload.aps.badge == 1
    assert message.apns.payload.aps.content_available is True


def _seed_emails(crm_store):
    base = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
    crm_store.seed(
        "emailHistory",
        {
            "e1": {"subject": "Agreement", "emailType": "agreement", "sentAt": base},
            "e2": {
                "subject": "Payment reminder",
                "recipients": [{"email": "ravi@example.com", "name": "Ravi Kumar"}],
                "sentAt": base - timedelta(hours=1),
            },
            "e3": {"subject": "Welcome", "leadName": "Asha", "sentAt": base - timedelta(hours=2)},
            "e4": {"subject": "Documents needed", "leadEmail": "bala@example.com", "sentAt": base - timedelta(hours=3)},
        },
    )


def test_email_history_skips_agreements_and_pages(client, crm_store):
    _seed_emails(crm_store)

    first = client.get("/api/v1/email-history?pageSize=2", auth=AUTH)
    assert first.status_code == 200
    payload = first.json()
    assert [row["id"] for row in payload["data"]] == ["e2"]
    assert payload["data"][0]["sentAt"] == "2025-03-10T08:00:00.000Z"
    assert payload["pagination"] == {"currentPage": 1, "pageSize": 2, "hasMore": True, "totalRecords": 1}

    second = client.get("/api/v1/email-history?pageSize=2&page=2", auth=AUTH).json()
    assert [row["id"] for row in second["data"]] == ["e3", "e4"]
    assert second["pagination"]["hasMore"] is False


def test_email_history_search_matches_recipients_and_lead_fields(client, crm_store):
    _seed_emails(crm_store)

    by_recipient = client.get("/api/v1/email-history?search=RAVI", auth=AUTH).json()
    assert [row["id"] for row in by_recipient["data"]] == ["e2"]

    by_lead = client.get("/api/v1/email-history?search=bala@", auth=AUTH).json()
    assert [row["id"] for row in by_lead["data"]] == ["e4"]
