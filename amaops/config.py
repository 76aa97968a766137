import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _private_key(raw):
    # Keys pasted into .env files keep their newlines escaped.
    if not raw:
        return None
    return raw.replace("\\n", "\n")


class Config:
    # Storage Settings
    STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").lower() # Options: "firestore", "memory"

    # CRM project (leads, clients, payments, targets)
    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
    FIREBASE_CLIENT_EMAIL = os.getenv("FIREBASE_CLIENT_EMAIL")
    FIREBASE_PRIVATE_KEY = _private_key(os.getenv("FIREBASE_PRIVATE_KEY"))
    FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET")

    # Mobile app project (app leads, queries, disputes, push topics)
    AMA_APP_FIREBASE_PROJECT_ID = os.getenv("AMA_APP_FIREBASE_PROJECT_ID")
    AMA_APP_FIREBASE_CLIENT_EMAIL = os.getenv("AMA_APP_FIREBASE_CLIENT_EMAIL")
    AMA_APP_FIREBASE_PRIVATE_KEY = _private_key(os.getenv("AMA_APP_FIREBASE_PRIVATE_KEY"))

    # Documents
    SEC21_TEMPLATE_PATH = os.getenv("SEC21_TEMPLATE_PATH", "templates/sec21_notice_template.docx")
    SEC21_TEMPLATE_DIR = os.getenv("SEC21_TEMPLATE_DIR", "templates")

    # Reports
    REPORT_CACHE_TTL_SECONDS = int(os.getenv("REPORT_CACHE_TTL_SECONDS", "120"))

    @classmethod
    def crm_credentials(cls):
        return {
            "project_id": cls.FIREBASE_PROJECT_ID,
            "client_email": cls.FIREBASE_CLIENT_EMAIL,
            "private_key": cls.FIREBASE_PRIVATE_KEY,
        }

    @classmethod
    def app_credentials(cls):
        return {
            "project_id": cls.AMA_APP_FIREBASE_PROJECT_ID,
            "client_email": cls.AMA_APP_FIREBASE_CLIENT_EMAIL,
            "private_key": cls.AMA_APP_FIREBASE_PRIVATE_KEY,
        }

    @classmethod
    def use_firestore(cls):
        if cls.STORE_BACKEND == "firestore":
            return True
        if cls.STORE_BACKEND != "memory":
            print(f"[Config] Unknown store backend '{cls.STORE_BACKEND}', defaulting to memory")
        return False
