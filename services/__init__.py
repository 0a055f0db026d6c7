from flask import current_app

from services.auth_service import AuthService
from services.swap_service import SwapService

AUTH_KEY = "skillswap.auth"
SWAPS_KEY = "skillswap.swaps"


def init_services(app, storage):
    app.extensions[AUTH_KEY] = AuthService(storage.users, app.config)
    app.extensions[SWAPS_KEY] = SwapService(storage.users, storage.requests)


def get_auth_service() -> AuthService:
    return current_app.extensions[AUTH_KEY]


def get_swap_service() -> SwapService:
    return current_app.extensions[SWAPS_KEY]
