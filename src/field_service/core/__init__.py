"""Core infrastructure components."""

from field_service.core.exceptions import ServiceError
from field_service.core.state import AppState, get_app_state, init_app_state

__all__ = ["AppState", "ServiceError", "get_app_state", "init_app_state"]
