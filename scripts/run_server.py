import argparse
import json

import uvicorn
from dotenv import load_dotenv

from amaops.config import Config
from amaops.core.database import get_app_store, get_crm_store
from amaops.core.logging import configure_logging, get_logger
from amaops.core.memory_store import MemoryDocumentStore


logger = get_logger(__name__)


def seed_memory_stores(path: str) -> None:
    """
    Load fixture documents into the in-memory stores.

    The file maps a store name (``crm`` or ``app``) to collection paths, and
    each collection path to ``{document_id: data}``.
    """
    with open(path, "r", encoding="utf-8") as handle:
        fixtures = json.load(handle)

    stores = {"crm": get_crm_store(), "app": get_app_store()}
    for store_name, collections in fixtures.items():
        store = stores.get(store_name)
        if not isinstance(store, MemoryDocumentStore):
            logger.warning("Skipping seed for store.", extra={"store": store_name})
            continue
        for collection_path, documents in collections.items():
            store.seed(collection_path, documents)
            logger.info(
                "Seeded collection.",
                extra={"store": store_name, "collection": collection_path, "documents": len(documents)},
            )


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(description="Run the AMA Ops Desk API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8001)
    parser.add_argument("--seed", help="JSON fixture file for the memory backend")
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    configure_logging()
    if args.seed:
        if Config.use_firestore():
            parser.error("--seed only applies to the memory backend")
        seed_memory_stores(args.seed)
        # Seeded stores live in this process, so the app must too.
        from amaops.admin.app import app

        uvicorn.run(app, host=args.host, port=args.port)
        return

    uvicorn.run("amaops.admin.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
