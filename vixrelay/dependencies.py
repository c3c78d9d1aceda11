"""FastAPI dependencies for the addon routes."""
from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from vixrelay.config import EffectiveSettings
from vixrelay.state import AppState

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


def get_app_state(request: Request) -> AppState:
    """Resolve the shared application state from the FastAPI request."""
    return request.app.state.app_state


def get_effective_settings(app_state: AppState = Depends(get_app_state)) -> EffectiveSettings:
    """Settings snapshot for the duration of one request."""
    return app_state.effective_settings()
