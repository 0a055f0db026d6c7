import logging
from dataclasses import dataclass

from flask import current_app

from storage.base import UserRepository, SwapRequestRepository

logger = logging.getLogger(__name__)

EXTENSION_KEY = "skillswap.storage"


@dataclass
class Storage:
    backend: str
    users: UserRepository
    requests: SwapRequestRepository


def build_storage(app) -> Storage:
    backend = (app.config.get("STORAGE_BACKEND") or "json").lower()

    if backend == "json":
        from storage.json_store import JsonUserRepository, JsonSwapRequestRepository

        data_dir = app.config["DATA_DIR"]
        return Storage(backend, JsonUserRepository(data_dir), JsonSwapRequestRepository(data_dir))

    if backend == "sql":
        from storage.sql_store import SqlUserRepository, SqlSwapRequestRepository

        return Storage(backend, SqlUserRepository(), SqlSwapRequestRepository())

    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r}")


def init_storage(app) -> Storage:
    storage = build_storage(app)
    app.extensions[EXTENSION_KEY] = storage
    logger.info("Using %s storage backend", storage.backend)
    return storage


def get_storage() -> Storage:
    return current_app.extensions[EXTENSION_KEY]
