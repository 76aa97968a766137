from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from amaops.admin.app import app
from amaops.admin.report_service import ReportCache, get_report_cache
from amaops.core.database import get_app_store, get_crm_store
from amaops.core.memory_store import MemoryDocumentStore
from amaops.push.factory import get_push_gateway
from amaops.push.recording import RecordingPushGateway


FROZEN_NOW = datetime(2025, 3, 10, 6, 30, tzinfo=timezone.utc)


@pytest.fixture
def crm_store():
    return MemoryDocumentStore(name="crm")


@pytest.fixture
def app_store():
    return MemoryDocumentStore(name="ama_app", clock=lambda: FROZEN_NOW)


@pytest.fixture
def push_gateway():
    return RecordingPushGateway()


@pytest.fixture
def report_cache():
    return ReportCache(ttl_seconds=120)


@pytest.fixture
def client(crm_store, app_store, push_gateway, report_cache, monkeypatch):
    monkeypatch.setenv("ADMIN_USERNAME", "admin")
    monkeypatch.setenv("ADMIN_PASSWORD", "secret")

    app.dependency_overrides[get_crm_store] = lambda: crm_store
    app.dependency_overrides[get_app_store] = lambda: app_store
    app.dependency_overrides[get_push_gateway] = lambda: push_gateway
    app.dependency_overrides[get_report_cache] = lambda: report_cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
