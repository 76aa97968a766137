from __future__ import annotations

from threading import Lock
from typing import Any, Dict

import firebase_admin
from firebase_admin import credentials, firestore, storage

from ..config import Config
from .documents import DocumentStore
from .firestore_store import FirestoreDocumentStore
from .logging import get_logger
from .memory_store import MemoryDocumentStore


logger = get_logger(__name__)

CRM_APP_NAME = "crm"
AMA_APP_NAME = "ama_app"

_lock = Lock()
_stores: Dict[str, DocumentStore] = {}


def _credential(creds: Dict[str, Any]):
    if creds.get("project_id") and creds.get("client_email") and creds.get("private_key"):
        return credentials.Certificate(
            {
                "type": "service_account",
                "project_id": creds["project_id"],
                "client_email": creds["client_email"],
                "private_key": creds["private_key"],
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )
    # Falls back to the runtime's service account (Cloud Run, GCE, gcloud auth).
    return credentials.ApplicationDefault()


def get_firebase_app(name: str) -> firebase_admin.App:
    try:
        return firebase_admin.get_app(name)
    except ValueError:
        pass

    if name == CRM_APP_NAME:
        creds = Config.crm_credentials()
        options = {"projectId": creds["project_id"]} if creds["project_id"] else {}
        if Config.FIREBASE_STORAGE_BUCKET:
            options["storageBucket"] = Config.FIREBASE_STORAGE_BUCKET
    elif name == AMA_APP_NAME:
        creds = Config.app_credentials()
        options = {"projectId": creds["project_id"]} if creds["project_id"] else {}
    else:
        raise ValueError(f"Unknown Firebase app: {name}")

    app = firebase_admin.initialize_app(_credential(creds), options, name=name)
    logger.info("Firebase app initialised.", extra={"app": name, "project_id": creds.get("project_id")})
    return app


def _store(name: str) -> DocumentStore:
    with _lock:
        store = _stores.get(name)
        if store is None:
            if Config.use_firestore():
                store = FirestoreDocumentStore(firestore.client(app=get_firebase_app(name)), name=name)
            else:
                store = MemoryDocumentStore(name=name)
            _stores[name] = store
        return store


def get_crm_store() -> DocumentStore:
    return _store(CRM_APP_NAME)


def get_app_store() -> DocumentStore:
    return _store(AMA_APP_NAME)


def get_storage_bucket():
    return storage.bucket(app=get_firebase_app(CRM_APP_NAME))


def reset_stores() -> None:
    with _lock:
        _stores.clear()
