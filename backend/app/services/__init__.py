"""Services package."""
from .session_service import session_service
from .round_store import round_store
from .observer_context import observer_context
from .catalog import catalog_service
from .audit import audit_log
from .background import background

__all__ = [
    "session_service",
    "round_store",
    "observer_context",
    "catalog_service",
    "audit_log",
    "background",
]
